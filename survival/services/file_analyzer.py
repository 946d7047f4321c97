"""Per-file survival analysis for one pull request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from hashlib import sha256

from survival.core.config import settings
from survival.core.errors import AuthenticationFailure, SourceError
from survival.core.identifiers import new_file_id
from survival.models.domain import (
    AnalysisFile,
    AnalysisLine,
    BlameEntry,
    LineStatus,
    PatchFile,
    PullRequestContext,
    PullRequestPatch,
)
from survival.provenance.sources import BlameSource
from survival.services.resolver import LineProvenanceResolver
from survival.services.retry import RetryPolicy
from survival.telemetry import record_degraded_file

_logger = logging.getLogger(__name__)


def pr_file_url(pr_url: str | None, file_path: str) -> str | None:
    if not pr_url:
        return None
    anchor = sha256(file_path.encode("utf-8")).hexdigest()
    return f"{pr_url.rstrip('/')}/files#diff-{anchor}"


@dataclass
class FileAnalysis:
    file: AnalysisFile
    lines: list[AnalysisLine] = field(default_factory=list)


class FileAnalyzer:
    """Fetches HEAD content and blame for a PR file and classifies its lines."""

    def __init__(
        self,
        blame_source: BlameSource,
        resolver: LineProvenanceResolver | None = None,
        retry_policy: RetryPolicy | None = None,
        web_url: str | None = None,
    ) -> None:
        self._blame_source = blame_source
        self._resolver = resolver or LineProvenanceResolver()
        self._retry = retry_policy or RetryPolicy()
        self._web_url = (web_url or settings.github_web_url).rstrip("/")

    def analyze(
        self,
        run_id: str,
        pr: PullRequestContext,
        patch: PullRequestPatch,
        patch_file: PatchFile,
    ) -> FileAnalysis:
        """Analyse one file; source failures yield a degraded record instead of raising.

        AuthenticationFailure is the exception: it is fatal for the run and propagates.
        """

        record = self._base_record(run_id, pr, patch_file)
        if patch_file.status == "removed":
            return FileAnalysis(file=record)
        if not patch_file.has_patch:
            return self._degraded(record, "diff hunks unavailable for this file")

        try:
            current = self._retry.call(self._blame_source.get_current_file, pr.repo_full_name, patch_file.file_path)
            blame: dict[int, BlameEntry] = {}
            for line in current or []:
                entry = self._retry.call(
                    self._blame_source.get_blame, pr.repo_full_name, patch_file.file_path, line.line_number
                )
                if entry is not None:
                    blame[line.line_number] = entry
        except AuthenticationFailure:
            raise
        except SourceError as exc:
            return self._degraded(record, exc.message, exc.code)

        if current is None:
            _logger.debug("%s was removed after PR #%s merged", patch_file.file_path, pr.pr_number)

        resolved = self._resolver.resolve(
            patch_file,
            current,
            blame,
            patch.relevant_shas,
            deleted_attribution=self._merge_attribution(pr, patch),
            pr_file_url=pr_file_url(pr.pr_url, patch_file.file_path),
        )
        lines = [AnalysisLine(file_id=record.file_id, **line.model_dump()) for line in resolved]
        record.surviving_lines = sum(1 for line in lines if line.status == LineStatus.SURVIVING)
        record.deleted_lines = sum(1 for line in lines if line.status == LineStatus.DELETED)
        record.current_lines = sum(1 for line in lines if line.status == LineStatus.CURRENT)
        return FileAnalysis(file=record, lines=lines)

    @staticmethod
    def _base_record(run_id: str, pr: PullRequestContext, patch_file: PatchFile) -> AnalysisFile:
        return AnalysisFile(
            file_id=new_file_id(),
            run_id=run_id,
            pr_id=pr.pr_id,
            pr_number=pr.pr_number,
            pr_title=pr.pr_title,
            task_id=pr.task_id,
            task_name=pr.task_name,
            sprint_id=pr.sprint_id,
            sprint_name=pr.sprint_name,
            author_id=pr.author_id,
            author_name=pr.author_name,
            author_username=pr.author_username,
            file_path=patch_file.file_path,
            status=patch_file.status,
            additions=patch_file.additions,
            deletions=patch_file.deletions,
        )

    def _degraded(self, record: AnalysisFile, note: str, reason: str = "DIFF_UNAVAILABLE") -> FileAnalysis:
        _logger.warning("File %s of PR %s left unanalysed: %s", record.file_path, record.pr_id, note)
        record_degraded_file(reason)
        record.analyzed = False
        record.note = note
        return FileAnalysis(file=record)

    def _merge_attribution(self, pr: PullRequestContext, patch: PullRequestPatch) -> BlameEntry | None:
        if not patch.merge_commit_sha:
            return None
        return BlameEntry(
            commit_sha=patch.merge_commit_sha,
            commit_url=f"{self._web_url}/{pr.repo_full_name}/commit/{patch.merge_commit_sha}",
            author_username=pr.author_username,
            author_name=pr.author_name,
        )
