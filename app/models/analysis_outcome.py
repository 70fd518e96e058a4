"""
Analysis Outcome Model
======================
Checkpointed result of the combined fetch + synthesize step.

Exactly one of `report` / `error_message` is set. The fetched file list is
deliberately not part of this model: it can be large and is only needed
inside the step that produced it.
"""
from typing import Optional

from pydantic import BaseModel, model_validator

from .report import Report


class AnalysisOutcome(BaseModel):
    files_found: int = 0
    report: Optional[Report] = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def check_exclusive(self) -> "AnalysisOutcome":
        if (self.report is None) == (self.error_message is None):
            raise ValueError("exactly one of report / error_message must be set")
        return self

    @property
    def succeeded(self) -> bool:
        return self.report is not None
