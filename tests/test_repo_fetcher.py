"""
Repo Fetcher Tests
==================
GitHub API is simulated with httpx.MockTransport, no network.
"""
import asyncio

import httpx
import pytest

from app.services.repo_fetcher import GitHubRepoFetcher, RepoFetchError
from app.utils.ignore_rules import is_ignored_path, prioritise_paths
from app.utils.repo_reference import is_valid_repo_reference, parse_repo_reference

from conftest import REPO_URL

CONTENTS = {
    "README.md": b"# Widget\nA tiny worker.",
    "package.json": b'{"name": "widget"}',
    "src/app.ts": b"export const app = () => 1;\n",
    "src/data.txt": b"\x00\x01\x02binary",
    "node_modules/left-pad/index.js": b"module.exports = 1",
    "package-lock.json": b"{}",
    "logo.png": b"\x89PNG",
}

TREE = [
    {"path": "src", "type": "tree"},
    {"path": "huge.sql", "type": "blob", "size": 5_000_000},
] + [{"path": p, "type": "blob", "size": len(c)} for p, c in CONTENTS.items()]


def _transport(repo_status=200, file_status=None, seen=None):
    file_status = file_status or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        path = request.url.path
        if path == "/repos/acme/widget":
            if repo_status != 200:
                return httpx.Response(repo_status, json={"message": "nope"})
            return httpx.Response(200, json={"default_branch": "trunk"})
        if path == "/repos/acme/widget/git/trees/trunk":
            assert request.url.params["recursive"] == "1"
            return httpx.Response(200, json={"tree": TREE, "truncated": False})
        prefix = "/repos/acme/widget/contents/"
        if path.startswith(prefix):
            name = path[len(prefix):]
            assert request.url.params["ref"] == "trunk"
            if name in file_status:
                return httpx.Response(file_status[name])
            return httpx.Response(200, content=CONTENTS[name])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _fetch(fetcher, url=REPO_URL, token=None):
    return asyncio.run(fetcher.fetch(url, token))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------
def test_fetch_filters_and_orders_files():
    files = _fetch(GitHubRepoFetcher(github_token="", transport=_transport()))

    assert [f.path for f in files] == ["README.md", "package.json", "src/app.ts"]
    assert files[0].content == "# Widget\nA tiny worker."
    assert not any(f.truncated for f in files)


def test_max_files_cap():
    files = _fetch(GitHubRepoFetcher(github_token="", max_files=2, transport=_transport()))
    assert [f.path for f in files] == ["README.md", "package.json"]


def test_per_file_byte_cap_truncates():
    files = _fetch(GitHubRepoFetcher(github_token="", max_file_bytes=8, transport=_transport()))
    readme = files[0]
    assert readme.truncated is True
    assert readme.content == "# Widget"


def test_batch_width_does_not_change_result():
    narrow = _fetch(GitHubRepoFetcher(github_token="", batch_size=1, transport=_transport()))
    wide = _fetch(GitHubRepoFetcher(github_token="", batch_size=50, transport=_transport()))
    assert narrow == wide


def test_unreadable_file_is_skipped():
    transport = _transport(file_status={"package.json": 500})
    files = _fetch(GitHubRepoFetcher(github_token="", transport=transport))
    assert [f.path for f in files] == ["README.md", "src/app.ts"]


def test_token_sent_as_authorization_header():
    seen = []
    _fetch(GitHubRepoFetcher(github_token="", transport=_transport(seen=seen)), token="secret")
    assert seen
    assert all(r.headers["Authorization"] == "token secret" for r in seen)


def test_anonymous_requests_have_no_authorization():
    seen = []
    _fetch(GitHubRepoFetcher(github_token="", transport=_transport(seen=seen)))
    assert all("Authorization" not in r.headers for r in seen)


# ---------------------------------------------------------------------------
# Typed errors
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("status, expected", [(404, 404), (401, 401), (403, 403), (500, 502)])
def test_repo_level_http_errors_are_typed(status, expected):
    fetcher = GitHubRepoFetcher(github_token="", transport=_transport(repo_status=status))
    with pytest.raises(RepoFetchError) as exc_info:
        _fetch(fetcher)
    assert exc_info.value.status == expected
    assert exc_info.value.message


def test_not_found_message_names_repo():
    fetcher = GitHubRepoFetcher(github_token="", transport=_transport(repo_status=404))
    with pytest.raises(RepoFetchError, match="acme/widget"):
        _fetch(fetcher)


def test_invalid_url_rejected_before_any_request():
    seen = []
    fetcher = GitHubRepoFetcher(github_token="", transport=_transport(seen=seen))
    with pytest.raises(RepoFetchError) as exc_info:
        _fetch(fetcher, url="https://gitlab.com/acme/widget")
    assert exc_info.value.status == 400
    assert seen == []


def test_timeout_is_typed():
    def handler(request):
        raise httpx.ReadTimeout("slow upstream", request=request)

    fetcher = GitHubRepoFetcher(github_token="", transport=httpx.MockTransport(handler))
    with pytest.raises(RepoFetchError) as exc_info:
        _fetch(fetcher)
    assert exc_info.value.status == 504


# ---------------------------------------------------------------------------
# Ignore rules / references
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("path, ignored", [
    ("src/main.py", False),
    ("Dockerfile", False),
    ("node_modules/react/index.js", True),
    ("vendor/github.com/x/y.go", True),
    ("yarn.lock", True),
    ("web/package-lock.json", True),
    ("dist/bundle.min.js", True),
    ("assets/logo.png", True),
    ("docs/guide.md", False),
])
def test_is_ignored_path(path, ignored):
    assert is_ignored_path(path) is ignored


def test_prioritise_paths_puts_readme_and_manifests_first():
    paths = ["src/z.py", "pyproject.toml", "a.py", "README.md", "pkg/setup.py"]
    assert prioritise_paths(paths) == ["README.md", "pyproject.toml", "pkg/setup.py", "a.py", "src/z.py"]


@pytest.mark.parametrize("url, expected", [
    ("https://github.com/acme/widget", ("acme", "widget")),
    ("https://github.com/acme/widget.git", ("acme", "widget")),
    ("https://github.com/acme/widget/", ("acme", "widget")),
    ("  https://www.github.com/acme/my.repo  ", ("acme", "my.repo")),
    ("https://github.com/acme", None),
    ("ftp://github.com/acme/widget", None),
    ("not a url", None),
])
def test_parse_repo_reference(url, expected):
    ref = parse_repo_reference(url)
    assert (tuple(ref) if ref else None) == expected
    assert is_valid_repo_reference(url) is (expected is not None)


@pytest.mark.parametrize("path", ["docs/C#/intro.md", "notes/why?.md", "src/100%.ts"])
def test_reserved_characters_in_path_are_escaped(path):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/repos/acme/widget":
            return httpx.Response(200, json={"default_branch": "main"})
        if request.url.path == "/repos/acme/widget/git/trees/main":
            return httpx.Response(200, json={"tree": [{"path": path, "type": "blob", "size": 5}]})
        if request.url.path == f"/repos/acme/widget/contents/{path}":
            assert request.url.params["ref"] == "main"
            return httpx.Response(200, content=b"hello")
        return httpx.Response(404)

    files = _fetch(GitHubRepoFetcher(github_token="", transport=httpx.MockTransport(handler)))

    assert [(f.path, f.content) for f in files] == [(path, "hello")]
    assert seen[-1].url.fragment == ""
