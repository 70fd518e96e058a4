"""
Prompt Budget Tests
===================
build_file_context must be deterministic, order-preserving and bounded.
"""
from app.core.constants import TRUNCATION_MARKER
from app.llm.prompts import SYSTEM_PROMPT, build_correction_prompt, build_file_context, build_messages
from app.models.fetched_file import FetchedFile


def _files(*sizes):
    return [FetchedFile(path=f"src/f{i}.py", content=str(i) * size) for i, size in enumerate(sizes)]


def test_small_files_included_in_full_and_in_order():
    files = _files(100, 200, 50)
    body = build_file_context(files, max_total_chars=10_000, max_file_chars=1_000)

    for f in files:
        assert f"File: {f.path}\n```\n{f.content}\n```" in body
    positions = [body.index(f"File: {f.path}") for f in files]
    assert positions == sorted(positions)
    assert TRUNCATION_MARKER not in body


def test_prompt_body_is_deterministic():
    files = _files(300, 4000, 900, 5000)
    first = build_file_context(files, max_total_chars=5_000, max_file_chars=2_000)
    second = build_file_context(list(files), max_total_chars=5_000, max_file_chars=2_000)
    assert first == second


def test_long_file_truncated_with_marker_not_dropped():
    files = _files(50, 500)
    body = build_file_context(files, max_total_chars=10_000, max_file_chars=100)

    assert "File: src/f1.py" in body
    assert ("1" * 100 + TRUNCATION_MARKER) in body
    assert "1" * 101 not in body


def test_files_after_global_budget_listed_without_content():
    files = _files(400, 400, 400, 400)
    body = build_file_context(files, max_total_chars=500, max_file_chars=1_000)

    # f0 (under budget) and f1 (budget checked before adding) are included
    assert "File: src/f0.py" in body
    assert "File: src/f1.py" in body
    assert "File: src/f2.py" not in body
    assert "2" * 400 not in body
    assert "Files omitted for length" in body
    assert "- src/f2.py" in body
    assert "- src/f3.py" in body


def test_overshoot_bounded_by_one_file_block():
    files = _files(*([900] * 20))
    body = build_file_context(files, max_total_chars=2_000, max_file_chars=1_000)
    included = body.split("Files omitted for length")[0]
    assert len(included) <= 2_000 + 1_000 + 100


def test_already_truncated_file_gets_marker():
    files = [FetchedFile(path="big.js", content="x" * 20, truncated=True)]
    body = build_file_context(files, max_total_chars=1_000, max_file_chars=1_000)
    assert body.endswith(TRUNCATION_MARKER + "\n```")


def test_empty_file_list_gives_empty_body():
    assert build_file_context([], 1_000, 100) == ""


def test_messages_carry_schema_and_repo():
    messages = build_messages("https://github.com/acme/widget", "File: a\n```\nx\n```")
    assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert messages[1]["role"] == "user"
    assert "https://github.com/acme/widget" in messages[1]["content"]
    assert '"security_risks"' in SYSTEM_PROMPT
    assert "exactly 3" in SYSTEM_PROMPT


def test_correction_prompt_quotes_error():
    prompt = build_correction_prompt("Expecting value: line 1 column 1 (char 0)")
    assert "invalid JSON" in prompt
    assert "Expecting value: line 1 column 1 (char 0)" in prompt
