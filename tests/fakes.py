"""In-memory diff/blame sources and record builders shared by the tests."""

from __future__ import annotations

import threading
from collections import Counter
from typing import Iterable, Optional

import fakeredis

from survival.core.errors import DiffUnavailable
from survival.models.directory import ProjectRecord, PullRequestRecord, SprintRecord, TaskRecord, UserRecord
from survival.models.domain import (
    AddedLine,
    BlameEntry,
    CurrentLine,
    PatchFile,
    PullRequestContext,
    PullRequestPatch,
)
from survival.repositories.directory_store import RedisProjectDirectory
from survival.repositories.redis_store import RedisAnalysisStore
from survival.services.retry import RetryPolicy

REPO = "acme/shop"


def fast_retry(max_tries: int = 3) -> RetryPolicy:
    return RetryPolicy(max_tries=max_tries, max_time=5, base_seconds=0, rate_limit_factor=1)


def blame(sha: str, login: str = "dev", name: str = "Dev Eloper", origin_pr: int | None = None) -> BlameEntry:
    return BlameEntry(
        commit_sha=sha,
        commit_url=f"https://github.com/{REPO}/commit/{sha}",
        author_username=login,
        author_name=name,
        origin_pr_number=origin_pr,
        origin_pr_url=f"https://github.com/{REPO}/pull/{origin_pr}" if origin_pr else None,
    )


def patch_file(path: str, added: Iterable[tuple[int, str]], status: str = "modified", **kwargs) -> PatchFile:
    added_lines = [AddedLine(content=content, post_merge_line_number=number) for number, content in added]
    kwargs.setdefault("additions", len(added_lines))
    return PatchFile(file_path=path, status=status, added_lines=added_lines, **kwargs)


def pr_context(pr_id: str = "pr-1", number: int = 1, **overrides) -> PullRequestContext:
    payload = {
        "pr_id": pr_id,
        "pr_number": number,
        "pr_url": f"https://github.com/{REPO}/pull/{number}",
        "pr_title": f"PR {number}",
        "repo_full_name": REPO,
        "task_id": "task-1",
        "task_name": "Checkout",
        "sprint_id": "sprint-1",
        "sprint_name": "Sprint 1",
        "author_id": "user-1",
        "author_name": "Alice Example",
        "author_username": "alice",
    }
    payload.update(overrides)
    return PullRequestContext(**payload)


class InMemoryDiffSource:
    """Serves canned patches; ``failures`` are raised (in order) before a PR's patch is returned."""

    def __init__(
        self,
        patches: dict[str, PullRequestPatch] | None = None,
        failures: dict[str, list[Exception]] | None = None,
    ) -> None:
        self.patches = patches or {}
        self.failures = failures or {}
        self.calls: Counter[str] = Counter()
        self._lock = threading.Lock()

    def get_patch(self, pr: PullRequestContext) -> PullRequestPatch:
        with self._lock:
            self.calls[pr.pr_id] += 1
            pending = self.failures.get(pr.pr_id)
            if pending:
                raise pending.pop(0)
        if pr.pr_id not in self.patches:
            raise DiffUnavailable(f"no diff for {pr.pr_id}")
        return self.patches[pr.pr_id]


class InMemoryBlameSource:
    """HEAD contents and per-line blame keyed by (repo, path)."""

    def __init__(self) -> None:
        self.files: dict[tuple[str, str], list[CurrentLine]] = {}
        self.blame: dict[tuple[str, str], dict[int, BlameEntry]] = {}
        self.failures: dict[tuple[str, str], list[Exception]] = {}
        self.calls: Counter[tuple[str, str]] = Counter()
        self._lock = threading.Lock()

    def set_file(self, path: str, lines: Iterable[tuple[str, Optional[BlameEntry]]], repo: str = REPO) -> None:
        key = (repo, path)
        self.files[key] = []
        self.blame[key] = {}
        for number, (content, entry) in enumerate(lines, start=1):
            self.files[key].append(CurrentLine(line_number=number, content=content))
            if entry is not None:
                self.blame[key][number] = entry

    def get_current_file(self, repo: str, file_path: str) -> Optional[list[CurrentLine]]:
        key = (repo, file_path)
        with self._lock:
            self.calls[key] += 1
            pending = self.failures.get(key)
            if pending:
                raise pending.pop(0)
        return self.files.get(key)

    def get_blame(self, repo: str, file_path: str, line_number: int) -> Optional[BlameEntry]:
        return self.blame.get((repo, file_path), {}).get(line_number)


def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


def seed_project(
    directory: RedisProjectDirectory,
    project_id: str = "proj-1",
    prs: Iterable[PullRequestRecord] = (),
    sprint: SprintRecord | None = None,
    task_id: str = "task-1",
    status: str = "DONE",
) -> None:
    directory.upsert_project(ProjectRecord(project_id=project_id, name="Shop"))
    directory.upsert_task(
        project_id,
        TaskRecord(
            task_id=task_id,
            name="Checkout",
            status=status,
            sprints=[sprint or SprintRecord(sprint_id="sprint-1", name="Sprint 1")],
            pull_requests=list(prs),
        ),
    )
    directory.upsert_user(UserRecord(user_id="user-1", full_name="Alice Example", github_username="alice"))


def merged_pr(pr_id: str = "pr-1", number: int = 1, **overrides) -> PullRequestRecord:
    payload = {
        "pr_id": pr_id,
        "pr_number": number,
        "url": f"https://github.com/{REPO}/pull/{number}",
        "title": f"PR {number}",
        "repo_full_name": REPO,
        "merged": True,
        "author_id": "user-1",
        "author_name": "Alice Example",
        "author_username": "alice",
    }
    payload.update(overrides)
    return PullRequestRecord(**payload)


def build_store() -> tuple[RedisAnalysisStore, RedisProjectDirectory]:
    client = fake_redis()
    return RedisAnalysisStore(client), RedisProjectDirectory(client)
