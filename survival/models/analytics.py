"""Read-side summary models for survival reporting."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from survival.models.domain import AnalysisFile, AnalysisRun


class AuthorSummary(BaseModel):
    """Surviving and deleted line totals for one author within a run."""

    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_username: Optional[str] = None
    surviving_lines: int = 0
    deleted_lines: int = 0
    file_count: int = 0
    survival_rate: float = 100.0


class SprintSummary(BaseModel):
    """Surviving and deleted line totals for one sprint within a run."""

    sprint_id: Optional[str] = None
    sprint_name: Optional[str] = None
    surviving_lines: int = 0
    deleted_lines: int = 0
    file_count: int = 0
    survival_rate: float = 100.0


class SurvivalTotals(BaseModel):
    surviving_lines: int = 0
    deleted_lines: int = 0
    current_lines: int = 0
    file_count: int = 0
    survival_rate: float = 100.0


class AnalysisResults(BaseModel):
    """Full results with summaries and the (optionally filtered) file list."""

    run: AnalysisRun
    files: list[AnalysisFile] = Field(default_factory=list)
    author_summaries: list[AuthorSummary] = Field(default_factory=list)
    sprint_summaries: list[SprintSummary] = Field(default_factory=list)
    totals: SurvivalTotals = Field(
        default_factory=SurvivalTotals, description="Grand totals across the unfiltered file set."
    )
