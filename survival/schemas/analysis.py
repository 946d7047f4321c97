"""API schemas for starting analysis runs and reading their results."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from survival.models.analytics import AnalysisResults, AuthorSummary, SprintSummary, SurvivalTotals
from survival.models.domain import AnalysisFile, AnalysisLine, AnalysisRun, LineStatus, RunStatus
from survival.services.file_analyzer import FileAnalysis


class StartAnalysisRequest(BaseModel):
    """Request body for POST /v1/project-analyses/projects/{project_id}/start."""

    started_by: str = Field(..., description="Identifier of the user starting the run.")


class RunStatusResponse(BaseModel):
    """Run status and progress, as polled by clients."""

    analysis_id: str
    project_id: str
    started_by: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_prs: int
    processed_prs: int
    progress_percent: int
    total_files: int
    total_surviving_lines: int
    total_deleted_lines: int
    survival_rate: float
    error_message: Optional[str] = None
    status_url: Optional[str] = None

    @classmethod
    def from_run(cls, run: AnalysisRun, status_url: str | None = None) -> "RunStatusResponse":
        return cls(
            analysis_id=run.run_id,
            project_id=run.project_id,
            started_by=run.started_by,
            status=run.status,
            started_at=run.started_at,
            completed_at=run.completed_at,
            total_prs=run.total_prs,
            processed_prs=run.processed_prs,
            progress_percent=run.progress_percent,
            total_files=run.total_files,
            total_surviving_lines=run.total_surviving_lines,
            total_deleted_lines=run.total_deleted_lines,
            survival_rate=run.survival_rate,
            error_message=run.error_message,
            status_url=status_url,
        )


class FileSummary(BaseModel):
    file_id: str
    pr_id: str
    pr_number: Optional[int] = None
    pr_title: Optional[str] = None
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    sprint_id: Optional[str] = None
    sprint_name: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    file_path: str
    status: str
    additions: int
    deletions: int
    surviving_lines: int
    deleted_lines: int
    current_lines: int
    survival_rate: float
    analyzed: bool = True
    note: Optional[str] = None

    @classmethod
    def from_file(cls, file: AnalysisFile) -> "FileSummary":
        return cls(
            **file.model_dump(exclude={"run_id", "author_username"}),
            survival_rate=file.survival_rate,
        )


class LineDetail(BaseModel):
    """One line of a file view; line_number is null for DELETED lines."""

    line_number: Optional[int] = None
    original_line_number: Optional[int] = None
    content: str
    status: LineStatus
    display_order: int
    commit_sha: Optional[str] = None
    commit_url: Optional[str] = None
    author_full_name: Optional[str] = None
    author_username: Optional[str] = None
    pr_file_url: Optional[str] = None
    origin_pr_number: Optional[int] = None
    origin_pr_url: Optional[str] = None

    @classmethod
    def from_line(cls, line: AnalysisLine) -> "LineDetail":
        return cls(**line.model_dump(exclude={"file_id"}))


class FileDetailResponse(BaseModel):
    file: FileSummary
    lines: list[LineDetail] = Field(default_factory=list)

    @classmethod
    def from_analysis(cls, analysis: FileAnalysis) -> "FileDetailResponse":
        return cls(
            file=FileSummary.from_file(analysis.file),
            lines=[LineDetail.from_line(line) for line in analysis.lines],
        )


class ResultsResponse(BaseModel):
    """Response payload for /v1/project-analyses/{analysis_id}/results."""

    run: RunStatusResponse
    files: list[FileSummary] = Field(default_factory=list)
    author_summaries: list[AuthorSummary] = Field(default_factory=list)
    sprint_summaries: list[SprintSummary] = Field(default_factory=list)
    totals: SurvivalTotals

    @classmethod
    def from_results(cls, results: AnalysisResults) -> "ResultsResponse":
        return cls(
            run=RunStatusResponse.from_run(results.run),
            files=[FileSummary.from_file(file) for file in results.files],
            author_summaries=results.author_summaries,
            sprint_summaries=results.sprint_summaries,
            totals=results.totals,
        )
