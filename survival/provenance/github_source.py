"""GitHub-backed diff and blame sources."""

from __future__ import annotations

import logging
import time
from typing import Optional

import requests
from github import (
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)
from github.Auth import Token

from survival.core.errors import (
    AuthenticationFailure,
    BlameUnavailable,
    DiffUnavailable,
    FileUnavailable,
    RateLimited,
    SourceError,
)
from survival.models.domain import BlameEntry, CurrentLine, PatchFile, PullRequestContext, PullRequestPatch
from survival.provenance.diff_parser import parse_patch, split_lines

_logger = logging.getLogger(__name__)

BLAME_QUERY = """
query($owner: String!, $name: String!, $path: String!) {
  repository(owner: $owner, name: $name) {
    defaultBranchRef {
      target {
        ... on Commit {
          blame(path: $path) {
            ranges {
              startingLine
              endingLine
              commit {
                oid
                url
                author { name user { login } }
                associatedPullRequests(first: 1) { nodes { number url } }
              }
            }
          }
        }
      }
    }
  }
}
"""


def _retry_after(exc: GithubException) -> float | None:
    headers = getattr(exc, "headers", None) or {}
    value = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def translate_github_error(exc: Exception, fallback: type[SourceError], context: str) -> SourceError:
    """Map PyGithub / transport failures onto the survival error taxonomy."""

    if isinstance(exc, BadCredentialsException):
        return AuthenticationFailure(f"GitHub rejected the repository credentials while {context}")
    if isinstance(exc, RateLimitExceededException):
        return RateLimited(f"GitHub rate limit exceeded while {context}", retry_after=_retry_after(exc))
    if isinstance(exc, GithubException):
        if exc.status == 401:
            return AuthenticationFailure(f"GitHub rejected the repository credentials while {context}")
        if exc.status in (403, 429) and "rate limit" in str(exc).lower():
            return RateLimited(f"GitHub rate limit exceeded while {context}", retry_after=_retry_after(exc))
    return fallback(f"{context}: {exc}")


class _GitHubClientMixin:
    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        timeout_seconds: int = 15,
        cache_ttl_seconds: int = 300,
    ) -> None:
        auth = Token(token)
        # survival.services.retry owns the retry budget.
        if base_url:
            self._client = Github(auth=auth, base_url=base_url.rstrip("/"), timeout=timeout_seconds, retry=None)
        else:
            self._client = Github(auth=auth, timeout=timeout_seconds, retry=None)
        self._cache_ttl = max(cache_ttl_seconds, 30)


class GitHubDiffSource(_GitHubClientMixin):
    """Reads pull request files, patches and commits through the REST API."""

    def get_patch(self, pr: PullRequestContext) -> PullRequestPatch:
        context = f"fetching the diff of {pr.repo_full_name}#{pr.pr_number}"
        try:
            repo = self._client.get_repo(pr.repo_full_name)
            pull = repo.get_pull(pr.pr_number)
            merge_commit_sha = pull.merge_commit_sha if pull.merged else None
            commit_shas = [commit.sha for commit in pull.get_commits()]
            files = [self._to_patch_file(item) for item in pull.get_files()]
        except (GithubException, requests.RequestException) as exc:
            raise translate_github_error(exc, DiffUnavailable, context) from exc
        return PullRequestPatch(
            pr_id=pr.pr_id,
            merge_commit_sha=merge_commit_sha,
            commit_shas=commit_shas,
            files=files,
        )

    @staticmethod
    def _to_patch_file(item) -> PatchFile:
        patch_text = getattr(item, "patch", None)
        added, removed = parse_patch(patch_text)
        additions = getattr(item, "additions", 0) or 0
        deletions = getattr(item, "deletions", 0) or 0
        return PatchFile(
            file_path=item.filename,
            previous_path=getattr(item, "previous_filename", None),
            status=getattr(item, "status", None) or "modified",
            additions=additions,
            deletions=deletions,
            added_lines=added,
            removed_lines=removed,
            has_patch=patch_text is not None or (additions == 0 and deletions == 0),
        )


class GitHubBlameSource(_GitHubClientMixin):
    """Reads HEAD file contents and GraphQL blame ranges, cached per file."""

    def __init__(self, token: str, **kwargs) -> None:
        super().__init__(token, **kwargs)
        self._content_cache: dict[tuple[str, str], tuple[float, Optional[list[CurrentLine]]]] = {}
        self._blame_cache: dict[tuple[str, str], tuple[float, dict[int, BlameEntry]]] = {}

    def get_current_file(self, repo: str, file_path: str) -> Optional[list[CurrentLine]]:
        key = (repo, file_path)
        cached = self._content_cache.get(key)
        now = time.monotonic()
        if cached and cached[0] > now:
            return cached[1]
        lines = self._fetch_current_file(repo, file_path)
        self._content_cache[key] = (now + self._cache_ttl, lines)
        return lines

    def get_blame(self, repo: str, file_path: str, line_number: int) -> Optional[BlameEntry]:
        return self._blame_map(repo, file_path).get(line_number)

    def _fetch_current_file(self, repo_full_name: str, file_path: str) -> Optional[list[CurrentLine]]:
        context = f"reading {file_path} in {repo_full_name}"
        try:
            repo = self._client.get_repo(repo_full_name)
            content_file = repo.get_contents(file_path)
        except UnknownObjectException:
            _logger.debug("File %s no longer exists in %s", file_path, repo_full_name)
            return None
        except (GithubException, requests.RequestException) as exc:
            raise translate_github_error(exc, FileUnavailable, context) from exc
        if isinstance(content_file, list):
            raise FileUnavailable(f"{context}: path is a directory")
        if getattr(content_file, "encoding", None) == "none":
            raise FileUnavailable(f"{context}: file too large for the contents API")
        try:
            text = content_file.decoded_content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FileUnavailable(f"{context}: binary file") from exc
        return [CurrentLine(line_number=idx, content=line) for idx, line in enumerate(split_lines(text), start=1)]

    def _blame_map(self, repo_full_name: str, file_path: str) -> dict[int, BlameEntry]:
        key = (repo_full_name, file_path)
        cached = self._blame_cache.get(key)
        now = time.monotonic()
        if cached and cached[0] > now:
            return cached[1]
        ranges = self._fetch_blame_ranges(repo_full_name, file_path)
        blame_map: dict[int, BlameEntry] = {}
        for blame_range in ranges:
            entry = self._to_blame_entry(blame_range.get("commit") or {})
            if entry is None:
                continue
            for line_number in range(int(blame_range["startingLine"]), int(blame_range["endingLine"]) + 1):
                blame_map[line_number] = entry
        self._blame_cache[key] = (now + self._cache_ttl, blame_map)
        return blame_map

    def _fetch_blame_ranges(self, repo_full_name: str, file_path: str) -> list[dict]:
        owner, _, name = repo_full_name.partition("/")
        context = f"fetching blame for {file_path} in {repo_full_name}"
        try:
            _, payload = self._client.requester.graphql_query(
                BLAME_QUERY, {"owner": owner, "name": name, "path": file_path}
            )
        except (GithubException, requests.RequestException) as exc:
            raise translate_github_error(exc, BlameUnavailable, context) from exc
        if payload.get("errors"):
            raise BlameUnavailable(f"{context}: {payload['errors']}")
        target = (
            ((payload.get("data") or {}).get("repository") or {}).get("defaultBranchRef") or {}
        ).get("target") or {}
        blame = target.get("blame")
        if blame is None:
            raise BlameUnavailable(f"{context}: no blame data on the default branch")
        return list(blame.get("ranges") or [])

    @staticmethod
    def _to_blame_entry(commit: dict) -> BlameEntry | None:
        oid = commit.get("oid")
        if not oid:
            return None
        author = commit.get("author") or {}
        user = author.get("user") or {}
        pulls = ((commit.get("associatedPullRequests") or {}).get("nodes")) or []
        origin = pulls[0] if pulls else {}
        return BlameEntry(
            commit_sha=oid,
            commit_url=commit.get("url"),
            author_username=user.get("login"),
            author_name=author.get("name"),
            origin_pr_number=origin.get("number"),
            origin_pr_url=origin.get("url"),
        )
