"""Domain data models for the code survival analysis service."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def survival_rate(surviving: int, deleted: int) -> float:
    """Percentage of contributed lines still present; 100.0 when nothing was contributed."""

    total = surviving + deleted
    if total <= 0:
        return 100.0
    return surviving * 100.0 / total


class RunStatus(str, Enum):
    """Lifecycle states for an analysis run. DONE and FAILED are terminal."""

    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    FAILED = "FAILED"


class LineStatus(str, Enum):
    """Classification of a displayed line relative to the analysed pull request."""

    SURVIVING = "SURVIVING"
    CURRENT = "CURRENT"
    DELETED = "DELETED"


class PullRequestContext(BaseModel):
    """Flat per-PR projection supplied by enumeration; no live entity graph."""

    pr_id: str
    pr_number: int
    pr_url: Optional[str] = None
    pr_title: Optional[str] = None
    repo_full_name: str
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    sprint_id: Optional[str] = None
    sprint_name: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_username: Optional[str] = None


class AddedLine(BaseModel):
    content: str
    post_merge_line_number: int = Field(..., description="Line number in the file at the PR's merge commit.")


class RemovedLine(BaseModel):
    content: str
    base_line_number: int


class PatchFile(BaseModel):
    """One file of a pull request diff."""

    file_path: str
    previous_path: Optional[str] = None
    status: str = Field("modified", description="added, modified, removed or renamed, as reported by the diff.")
    additions: int = 0
    deletions: int = 0
    added_lines: list[AddedLine] = Field(default_factory=list)
    removed_lines: list[RemovedLine] = Field(default_factory=list)
    has_patch: bool = Field(True, description="False when the diff source could not provide hunks (binary, oversize).")


class PullRequestPatch(BaseModel):
    pr_id: str
    merge_commit_sha: Optional[str] = None
    commit_shas: list[str] = Field(default_factory=list, description="SHAs of the commits on the PR branch.")
    files: list[PatchFile] = Field(default_factory=list)

    @property
    def relevant_shas(self) -> set[str]:
        shas = set(self.commit_shas)
        if self.merge_commit_sha:
            shas.add(self.merge_commit_sha)
        return shas


class CurrentLine(BaseModel):
    line_number: int
    content: str


class BlameEntry(BaseModel):
    """Attribution of the commit that last touched a line at HEAD."""

    commit_sha: str
    commit_url: Optional[str] = None
    author_username: Optional[str] = None
    author_name: Optional[str] = None
    origin_pr_number: Optional[int] = None
    origin_pr_url: Optional[str] = None


class ResolvedLine(BaseModel):
    """A classified line as produced by the provenance resolver."""

    line_number: Optional[int] = Field(None, description="Current line number; null for deleted lines.")
    original_line_number: Optional[int] = Field(
        None, description="Position in the merge commit; null for lines not contributed by the PR."
    )
    content: str
    status: LineStatus
    display_order: int = 0
    commit_sha: Optional[str] = None
    commit_url: Optional[str] = None
    author_full_name: Optional[str] = None
    author_username: Optional[str] = None
    pr_file_url: Optional[str] = None
    origin_pr_number: Optional[int] = None
    origin_pr_url: Optional[str] = None


class AnalysisLine(ResolvedLine):
    """Persisted line row; append-only."""

    file_id: str


class AnalysisFile(BaseModel):
    """One file touched by one PR within one run; append-only."""

    file_id: str
    run_id: str
    pr_id: str
    pr_number: Optional[int] = None
    pr_title: Optional[str] = None
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    sprint_id: Optional[str] = None
    sprint_name: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_username: Optional[str] = None
    file_path: str
    status: str
    additions: int = 0
    deletions: int = 0
    surviving_lines: int = 0
    deleted_lines: int = 0
    current_lines: int = 0
    analyzed: bool = True
    note: Optional[str] = Field(None, description="Why the file could not be analysed, when analyzed is false.")

    @property
    def survival_rate(self) -> float:
        return survival_rate(self.surviving_lines, self.deleted_lines)


class AnalysisRun(BaseModel):
    """Aggregate record for one analysis execution over a project."""

    run_id: str
    project_id: str
    started_by: str
    status: RunStatus = RunStatus.IN_PROGRESS
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_prs: int = 0
    processed_prs: int = 0
    total_files: int = 0
    total_surviving_lines: int = 0
    total_deleted_lines: int = 0
    error_message: Optional[str] = None

    @property
    def progress_percent(self) -> int:
        if not self.total_prs:
            return 0
        return self.processed_prs * 100 // self.total_prs

    @property
    def survival_rate(self) -> float:
        return survival_rate(self.total_surviving_lines, self.total_deleted_lines)

    @property
    def is_terminal(self) -> bool:
        return self.status in {RunStatus.DONE, RunStatus.FAILED}
