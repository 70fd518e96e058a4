"""
Repo Fetcher
============
Bounded, filtered listing of text files for a GitHub repository.

Flow:
    1. Parse owner/repo from the URL (invalid → RepoFetchError 400)
    2. Resolve the default branch          GET /repos/{owner}/{repo}
    3. List the tree recursively           GET /repos/{owner}/{repo}/git/trees/{branch}?recursive=1
    4. Filter (ignore_rules) and prioritise paths, cap at MAX_FILES
    5. Fetch raw contents in batches of FETCH_BATCH_SIZE (asyncio.gather)
    6. Drop binary-looking blobs, truncate each file to MAX_FILE_BYTES

Contract relied on by the orchestrator:
    - Returns a single aggregated list; partial batches are never exposed.
    - At most `max_files` files, each at most `max_file_bytes` bytes of text.
    - Repository-level failures raise RepoFetchError(status, message).
      A single unreadable file is skipped, not fatal.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.core.config import (
    FETCH_BATCH_SIZE,
    FETCH_TIMEOUT_SECONDS,
    GITHUB_TOKEN,
    MAX_FILE_BYTES,
    MAX_FILES,
)
from app.models.fetched_file import FetchedFile
from app.utils.ignore_rules import is_ignored_path, prioritise_paths
from app.utils.repo_reference import RepoRef, parse_repo_reference

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

# Blobs above this are generated data, not source worth auditing
_MAX_BLOB_BYTES = 1_000_000
_BINARY_SNIFF_BYTES = 8000


class RepoFetchError(Exception):
    """Typed fetch failure. `message` is shown to the user as-is."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"RepoFetchError(status={self.status}, message={self.message!r})"


def _error_from_status(status: int, ref: RepoRef) -> RepoFetchError:
    if status == 404:
        return RepoFetchError(404, f"Repository not found: {ref.full_name}")
    if status == 401:
        return RepoFetchError(401, "Unauthorized: GitHub rejected the configured token")
    if status == 403:
        return RepoFetchError(403, "Access forbidden or GitHub rate limit exceeded")
    return RepoFetchError(502, f"GitHub API error: HTTP {status}")


class GitHubRepoFetcher:
    """
    Fetches a bounded set of text files from a GitHub repository.

    Parameters
    ----------
    github_token : str or None
        Optional token; anonymous requests are used otherwise.
    max_files : int
        Upper bound on the number of files returned.
    max_file_bytes : int
        Per-file byte cap; longer files are truncated.
    timeout_seconds : float
        Per-request timeout.
    batch_size : int
        How many file contents are requested concurrently.
    transport : httpx.AsyncBaseTransport or None
        Custom transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        github_token: Optional[str] = GITHUB_TOKEN,
        max_files: int = MAX_FILES,
        max_file_bytes: int = MAX_FILE_BYTES,
        timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
        batch_size: int = FETCH_BATCH_SIZE,
        api_base: str = GITHUB_API,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.github_token = github_token or ""
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes
        self.timeout_seconds = timeout_seconds
        self.batch_size = max(1, batch_size)
        self.api_base = api_base.rstrip("/")
        self._transport = transport

    def _headers(self, token: str) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "EdgeInsight-Audit",
        }
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers(token),
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
            follow_redirects=True,
        )

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def fetch(self, repo_url: str, token: Optional[str] = None) -> List[FetchedFile]:
        """
        Return the filtered, capped file list for `repo_url`.

        Raises
        ------
        RepoFetchError
            Invalid reference, repository not found, unauthorized,
            upstream failure or timeout.
        """
        ref = parse_repo_reference(repo_url)
        if ref is None:
            raise RepoFetchError(400, f"Invalid GitHub URL: {repo_url}")

        async with self._client(token or self.github_token) as client:
            try:
                meta = await self._get_json(client, f"/repos/{ref.full_name}")
                branch = meta.get("default_branch") or "main"
                tree = await self._get_json(
                    client,
                    f"/repos/{ref.full_name}/git/trees/{quote(branch)}",
                    params={"recursive": "1"},
                )
            except httpx.HTTPStatusError as e:
                raise _error_from_status(e.response.status_code, ref) from e
            except httpx.TimeoutException as e:
                raise RepoFetchError(504, f"Timed out fetching {ref.full_name}") from e
            except httpx.RequestError as e:
                raise RepoFetchError(502, f"Could not reach GitHub: {e}") from e

            if tree.get("truncated"):
                logger.warning("Tree listing for %s was truncated by GitHub", ref.full_name)

            paths = self.select_paths(tree.get("tree", []))
            logger.info("Selected %d file(s) from %s@%s", len(paths), ref.full_name, branch)

            files: List[FetchedFile] = []
            for start in range(0, len(paths), self.batch_size):
                batch = paths[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(self._fetch_file(client, ref, branch, p) for p in batch)
                )
                files.extend(f for f in results if f is not None)

        logger.info("Fetched %d file(s) from %s", len(files), ref.full_name)
        return files

    def select_paths(self, entries: List[Dict[str, Any]]) -> List[str]:
        """Filter tree entries to auditable blobs, prioritise, and cap."""
        candidates = [
            entry["path"]
            for entry in entries
            if entry.get("type") == "blob"
            and entry.get("path")
            and int(entry.get("size") or 0) <= _MAX_BLOB_BYTES
            and not is_ignored_path(entry["path"])
        ]
        return prioritise_paths(candidates)[: self.max_files]

    # -------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------
    async def _get_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        resp = await client.get(f"{self.api_base}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def _fetch_file(
        self,
        client: httpx.AsyncClient,
        ref: RepoRef,
        branch: str,
        path: str,
    ) -> Optional[FetchedFile]:
        url = f"{self.api_base}/repos/{ref.full_name}/contents/{quote(path)}"
        try:
            resp = await client.get(
                url,
                params={"ref": branch},
                headers={"Accept": "application/vnd.github.raw"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Skipping %s: %s", path, e)
            return None

        raw = resp.content
        if b"\x00" in raw[:_BINARY_SNIFF_BYTES]:
            logger.debug("Skipping binary file %s", path)
            return None

        truncated = len(raw) > self.max_file_bytes
        if truncated:
            raw = raw[: self.max_file_bytes]
        return FetchedFile(
            path=path,
            content=raw.decode("utf-8", errors="ignore" if truncated else "replace"),
            truncated=truncated,
        )
