"""
Report Model
============
Pydantic models for the structured audit report returned by the model.

Fields:
    verdict_score       — letter grade (A–F with optional +/-) or "?" when degraded
    summary             — short architectural / quality summary
    tech_stack          — ordered list of detected languages and frameworks
    native_platform_fit — True if the stack runs natively on an edge runtime
    security_risks      — up to SECURITY_RISK_COUNT SecurityRisk entries

A Report attached to a completed job is always valid: the synthesizer only
ever hands out instances that passed validation, or degraded_report().
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.constants import (
    DEGRADED_SUMMARY,
    DEGRADED_VERDICT,
    SECURITY_RISK_COUNT,
)

VERDICT_PATTERN = r"^(?:[A-F][+-]?|\?)$"

Severity = Literal["critical", "high", "medium", "low"]


class SecurityRisk(BaseModel):
    severity: Severity
    file: str
    description: str
    snippet: Optional[str] = None
    line_number: Optional[int] = Field(default=None, ge=1)

    @field_validator("severity", mode="before")
    @classmethod
    def normalise_severity(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class Report(BaseModel):
    verdict_score: str = Field(pattern=VERDICT_PATTERN)
    summary: str
    tech_stack: List[str] = []
    native_platform_fit: bool = False
    security_risks: List[SecurityRisk] = []

    @field_validator("verdict_score", mode="before")
    @classmethod
    def normalise_verdict(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("security_risks")
    @classmethod
    def cap_security_risks(cls, v: List[SecurityRisk]) -> List[SecurityRisk]:
        # Best-effort target for the model; extra entries are dropped, never padded.
        return v[:SECURITY_RISK_COUNT]


def degraded_report() -> Report:
    """Fallback report used when the model never returns a parseable payload."""
    return Report(
        verdict_score=DEGRADED_VERDICT,
        summary=DEGRADED_SUMMARY,
        tech_stack=[],
        native_platform_fit=False,
        security_risks=[],
    )
