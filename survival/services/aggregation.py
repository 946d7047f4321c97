"""Per-author, per-sprint and grand-total survival summaries for a finished run."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from survival.core.errors import AnalysisNotComplete, AnalysisNotFound
from survival.models.analytics import AnalysisResults, AuthorSummary, SprintSummary, SurvivalTotals
from survival.models.domain import AnalysisFile, RunStatus, survival_rate
from survival.repositories.redis_store import RedisAnalysisStore


class AnalysisAggregator:
    """Recomputes summaries from persisted file records on every query."""

    def __init__(self, store: RedisAnalysisStore) -> None:
        self._store = store

    def results(
        self,
        run_id: str,
        sprint_id: str | None = None,
        author_id: str | None = None,
    ) -> AnalysisResults:
        run = self._store.get_run(run_id)
        if run is None:
            raise AnalysisNotFound(f"Analysis {run_id} not found")
        if run.status != RunStatus.DONE:
            raise AnalysisNotComplete("Analysis is not complete yet")

        files = self._store.list_files(run_id)
        filtered = [
            file
            for file in files
            if (sprint_id is None or file.sprint_id == sprint_id)
            and (author_id is None or file.author_id == author_id)
        ]
        in_sprint = [file for file in files if sprint_id is None or file.sprint_id == sprint_id]
        return AnalysisResults(
            run=run,
            files=filtered,
            author_summaries=self.author_summaries(in_sprint),
            sprint_summaries=self.sprint_summaries(files),
            totals=self.totals(files),
        )

    @staticmethod
    def author_summaries(files: Iterable[AnalysisFile]) -> list[AuthorSummary]:
        grouped: dict[Optional[str], AuthorSummary] = {}
        for file in files:
            summary = grouped.get(file.author_id)
            if summary is None:
                summary = grouped[file.author_id] = AuthorSummary(
                    author_id=file.author_id,
                    author_name=file.author_name,
                    author_username=file.author_username,
                )
            _accumulate(summary, file)
        ordered = sorted(grouped.values(), key=lambda s: (-s.surviving_lines, s.author_name or "", s.author_id or ""))
        for summary in ordered:
            summary.survival_rate = survival_rate(summary.surviving_lines, summary.deleted_lines)
        return ordered

    @staticmethod
    def sprint_summaries(files: Iterable[AnalysisFile]) -> list[SprintSummary]:
        grouped: dict[Optional[str], SprintSummary] = defaultdict(SprintSummary)
        for file in files:
            summary = grouped[file.sprint_id]
            summary.sprint_id = file.sprint_id
            summary.sprint_name = summary.sprint_name or file.sprint_name
            _accumulate(summary, file)
        # files without a sprint are reported last
        ordered = sorted(grouped.values(), key=lambda s: (s.sprint_id is None, s.sprint_name or "", s.sprint_id or ""))
        for summary in ordered:
            summary.survival_rate = survival_rate(summary.surviving_lines, summary.deleted_lines)
        return ordered

    @staticmethod
    def totals(files: Iterable[AnalysisFile]) -> SurvivalTotals:
        totals = SurvivalTotals()
        for file in files:
            totals.surviving_lines += file.surviving_lines
            totals.deleted_lines += file.deleted_lines
            totals.current_lines += file.current_lines
            totals.file_count += 1
        totals.survival_rate = survival_rate(totals.surviving_lines, totals.deleted_lines)
        return totals


def _accumulate(summary: AuthorSummary | SprintSummary, file: AnalysisFile) -> None:
    summary.surviving_lines += file.surviving_lines
    summary.deleted_lines += file.deleted_lines
    summary.file_count += 1
