"""Collaborator contracts consumed by the survival engine."""

from __future__ import annotations

from typing import Optional, Protocol

from survival.models.directory import ProjectRecord, TaskRecord, UserRecord
from survival.models.domain import BlameEntry, CurrentLine, PullRequestContext, PullRequestPatch


class DiffSource(Protocol):
    """Provides a pull request's patch and merge metadata."""

    def get_patch(self, pr: PullRequestContext) -> PullRequestPatch:  # pragma: no cover - interface
        ...


class BlameSource(Protocol):
    """Reads files and line attribution at the current HEAD of a repository."""

    def get_current_file(self, repo: str, file_path: str) -> Optional[list[CurrentLine]]:  # pragma: no cover
        ...

    def get_blame(self, repo: str, file_path: str, line_number: int) -> Optional[BlameEntry]:  # pragma: no cover
        ...


class ProjectDirectory(Protocol):
    """Narrow read-only view of projects, tasks and users."""

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:  # pragma: no cover - interface
        ...

    def done_tasks(self, project_id: str) -> list[TaskRecord]:  # pragma: no cover - interface
        ...

    def find_user_by_username(self, login: str) -> Optional[UserRecord]:  # pragma: no cover - interface
        ...
