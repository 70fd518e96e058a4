"""
Report Synthesizer
==================
Turns fetched repository files into a structured, always-valid Report.

Flow:
    1. Build a budgeted prompt from the files (prompts.build_file_context)
    2. Ask the model for a JSON report
    3. Parse the answer:
         - StructuredOutput → validate directly
         - TextOutput       → strip fences, slice first '{' .. last '}',
                              json.loads, validate
    4. On failure, append the raw answer and a correction request to the
       conversation and ask again
    5. After SYNTHESIS_MAX_ATTEMPTS failed parses, return degraded_report()

Model output is untrusted. Parse and schema failures never escape this
module: the loop always ends with a Report. Transport failures
(ModelInvocationError) are not parse failures and do propagate.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from app.core.config import (
    MODEL_MAX_OUTPUT_TOKENS,
    PROMPT_MAX_FILE_CHARS,
    PROMPT_MAX_TOTAL_CHARS,
    SYNTHESIS_MAX_ATTEMPTS,
)
from app.llm.client import ModelOutput, StructuredOutput, TextOutput, normalize_output
from app.llm.prompts import build_correction_prompt, build_file_context, build_messages
from app.models.fetched_file import FetchedFile
from app.models.report import Report, degraded_report

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_MAX_ERROR_CHARS = 600


class ModelInvoker(Protocol):
    async def invoke(self, messages: List[Dict[str, str]], max_output_tokens: int) -> Any:
        ...


@dataclass
class ParseAttempt:
    """Outcome of parsing one model answer: a report or an error message."""
    report: Optional[Report] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.report is not None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def extract_json_text(text: str) -> str:
    """
    Strip markdown fences and keep the span from the first '{' to the last '}'.

    Raises
    ------
    ValueError
        If the text contains no object braces.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ValueError("No JSON object found in response")
    return cleaned[start:end + 1]


def output_as_text(output: ModelOutput) -> str:
    if isinstance(output, StructuredOutput):
        return json.dumps(output.value)
    return output.text


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "Schema validation failed: " + "; ".join(parts)


def parse_report(output: ModelOutput) -> ParseAttempt:
    """Parse one normalised model answer into a Report, without raising."""
    if isinstance(output, StructuredOutput):
        data: Any = output.value
    else:
        try:
            data = json.loads(extract_json_text(output.text))
        except RecursionError:
            return ParseAttempt(error="JSON nesting too deep to decode")
        except ValueError as e:
            return ParseAttempt(error=str(e)[:_MAX_ERROR_CHARS])

    if not isinstance(data, dict):
        return ParseAttempt(error=f"Expected a JSON object, got {type(data).__name__}")

    try:
        return ParseAttempt(report=Report.model_validate(data))
    except ValidationError as e:
        return ParseAttempt(error=_validation_message(e)[:_MAX_ERROR_CHARS])


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------
class ReportSynthesizer:
    """
    Builds the audit prompt, calls the model and repairs its answer.

    Parameters
    ----------
    model : ModelInvoker
        Anything with `async invoke(messages, max_output_tokens)`; LLMClient
        in production, a fake in tests.
    max_attempts : int
        Total model calls allowed per synthesis (default 3).
    max_total_chars / max_file_chars : int
        Global and per-file prompt budgets.
    """

    def __init__(
        self,
        model: ModelInvoker,
        max_attempts: int = SYNTHESIS_MAX_ATTEMPTS,
        max_total_chars: int = PROMPT_MAX_TOTAL_CHARS,
        max_file_chars: int = PROMPT_MAX_FILE_CHARS,
        max_output_tokens: int = MODEL_MAX_OUTPUT_TOKENS,
    ) -> None:
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.max_total_chars = max_total_chars
        self.max_file_chars = max_file_chars
        self.max_output_tokens = max_output_tokens

    def build_prompt(self, files: Sequence[FetchedFile]) -> str:
        return build_file_context(files, self.max_total_chars, self.max_file_chars)

    async def synthesize(self, repo_url: str, files: Sequence[FetchedFile]) -> Report:
        """Return a valid Report for `files`; degraded if the model never cooperates."""
        messages = build_messages(repo_url, self.build_prompt(files))

        for attempt in range(1, self.max_attempts + 1):
            output = normalize_output(
                await self.model.invoke(messages, self.max_output_tokens)
            )
            parsed = parse_report(output)
            if parsed.ok:
                logger.info("Report parsed on attempt %d/%d for %s", attempt, self.max_attempts, repo_url)
                return parsed.report

            logger.warning(
                "Attempt %d/%d returned an unusable report for %s: %s",
                attempt, self.max_attempts, repo_url, parsed.error,
            )
            messages = messages + [
                {"role": "assistant", "content": output_as_text(output)},
                {"role": "user", "content": build_correction_prompt(parsed.error)},
            ]

        logger.error("Giving up after %d attempts for %s, using degraded report", self.max_attempts, repo_url)
        return degraded_report()
