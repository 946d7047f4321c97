"""Read-only projections of project, task and user data owned by the surrounding application."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProjectRecord(BaseModel):
    project_id: str
    name: str


class UserRecord(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    username: Optional[str] = None
    github_username: Optional[str] = None


class SprintRecord(BaseModel):
    sprint_id: str
    name: Optional[str] = None


class PullRequestRecord(BaseModel):
    pr_id: str
    pr_number: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    repo_full_name: Optional[str] = None
    merged: bool = False
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_username: Optional[str] = None


class TaskRecord(BaseModel):
    task_id: str
    name: Optional[str] = None
    status: str = "DONE"
    sprints: list[SprintRecord] = Field(default_factory=list, description="Active sprints, first one wins.")
    pull_requests: list[PullRequestRecord] = Field(default_factory=list)
