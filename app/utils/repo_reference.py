"""
Repo Reference
==============
Parsing and validation of GitHub repository references.

Accepted forms:
    https://github.com/<owner>/<repo>
    https://github.com/<owner>/<repo>.git
    https://github.com/<owner>/<repo>/
"""
import re
from typing import NamedTuple, Optional

_GITHUB_URL_RE = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[\w.\-]+)/(?P<repo>[\w.\-]+?)(?:\.git)?/?$"
)


class RepoRef(NamedTuple):
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_repo_reference(repo_url: str) -> Optional[RepoRef]:
    """Return (owner, repo) for a GitHub URL, or None if it isn't one."""
    match = _GITHUB_URL_RE.match((repo_url or "").strip())
    if not match:
        return None
    return RepoRef(match.group("owner"), match.group("repo"))


def is_valid_repo_reference(repo_url: str) -> bool:
    return parse_repo_reference(repo_url) is not None
