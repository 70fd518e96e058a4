"""
LLM Prompts
===========
Centralised store for the audit system prompt and prompt builders.

Prompt Design Rules:
    - The system prompt fixes the exact output schema
    - "Return raw JSON only" — no markdown, no commentary
    - Exactly three security risks are requested (best effort; the parsed
      report is capped, not padded)

Context Budgeting (build_file_context):
    - Files are added in list order (the fetcher puts the most useful first)
    - A file longer than the per-file budget is truncated with a marker
    - Once the running total exceeds the global budget, later file bodies
      are left out; their paths are listed so the model knows they exist
    - Pure function of its inputs: same files + budgets → same bytes
"""
import logging
from typing import List, Sequence

from app.core.config import PROMPT_MAX_FILE_CHARS, PROMPT_MAX_TOTAL_CHARS
from app.core.constants import SECURITY_RISK_COUNT, TRUNCATION_MARKER
from app.models.fetched_file import FetchedFile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------
REPORT_SCHEMA = (
    "{\n"
    '  "verdict_score": "<letter grade A, A-, B+, B, B-, C+, C, C-, D or F>",\n'
    '  "summary": "<2-4 sentences on architecture and code quality>",\n'
    '  "tech_stack": ["<language or framework>", ...],\n'
    '  "native_platform_fit": <true if the stack is edge-native (JS/TS, Rust/Wasm, Python Workers), '
    'false if legacy or incompatible (Java/Spring, PHP, ...)>,\n'
    '  "security_risks": [\n'
    "    {\n"
    '      "severity": "critical" | "high" | "medium" | "low",\n'
    '      "file": "<path>",\n'
    '      "description": "<what is wrong and why it matters>",\n'
    '      "snippet": "<optional offending code>",\n'
    '      "line_number": <optional integer>\n'
    "    }\n"
    "  ]\n"
    "}"
)

SYSTEM_PROMPT = (
    "You are a senior engineer auditing a candidate's code repository.\n"
    "Identify the languages and frameworks used, rate the overall code quality, "
    "and state explicitly whether the tech stack is edge-native or legacy/incompatible.\n"
    "\n"
    f"List exactly {SECURITY_RISK_COUNT} security risks, most severe first. "
    "If the code is clean, report the three weakest spots with severity \"low\".\n"
    "\n"
    "RESPONSE FORMAT — respond with ONLY a JSON object matching this schema:\n"
    f"{REPORT_SCHEMA}\n"
    "\n"
    "No other text. No markdown code fences. Just the raw JSON object."
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def _file_block(path: str, content: str) -> str:
    return f"File: {path}\n```\n{content}\n```"


def build_file_context(
    files: Sequence[FetchedFile],
    max_total_chars: int = PROMPT_MAX_TOTAL_CHARS,
    max_file_chars: int = PROMPT_MAX_FILE_CHARS,
) -> str:
    """
    Build the budgeted file section of the user prompt.

    Parameters
    ----------
    files : sequence of FetchedFile
        Files in priority order.
    max_total_chars : int
        Global budget. Checked before each file, so the body can overshoot
        by at most one file block.
    max_file_chars : int
        Per-file budget; longer contents are cut and marked.

    Returns
    -------
    str
        Deterministic prompt body.
    """
    blocks: List[str] = []
    omitted: List[str] = []
    total = 0

    for f in files:
        if total > max_total_chars:
            omitted.append(f.path)
            continue

        content = f.content
        if len(content) > max_file_chars:
            content = content[:max_file_chars] + TRUNCATION_MARKER
        elif f.truncated:
            content = content + TRUNCATION_MARKER

        block = _file_block(f.path, content)
        blocks.append(block)
        total += len(block)

    if omitted:
        logger.info("Prompt budget reached: %d file(s) listed without content", len(omitted))
        blocks.append(
            "Files omitted for length (not shown):\n"
            + "\n".join(f"- {path}" for path in omitted)
        )

    return "\n\n".join(blocks)


def build_user_prompt(repo_url: str, file_context: str) -> str:
    return f"Analyze this repository: {repo_url}\n\n{file_context}"


def build_messages(repo_url: str, file_context: str) -> List[dict]:
    """Initial conversation: system schema + repository contents."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(repo_url, file_context)},
    ]


def build_correction_prompt(error: str) -> str:
    return (
        "Your previous response was invalid JSON.\n"
        f"Error: {error}\n"
        "Return ONLY the corrected JSON object matching the schema. "
        "No markdown, no commentary."
    )
