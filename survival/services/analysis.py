"""Service orchestration for project-wide survival analysis runs."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks

from survival.core.config import settings
from survival.core.errors import (
    AnalysisNotFound,
    AuthenticationFailure,
    InconsistentInput,
    ProjectNotFound,
    SourceError,
    SurvivalError,
)
from survival.core.identifiers import new_run_id
from survival.models.directory import PullRequestRecord, SprintRecord, TaskRecord
from survival.models.domain import AnalysisFile, AnalysisRun, PullRequestContext, RunStatus
from survival.provenance.sources import DiffSource, ProjectDirectory
from survival.repositories.redis_store import RedisAnalysisStore
from survival.services.file_analyzer import FileAnalysis, FileAnalyzer
from survival.services.retry import RetryPolicy
from survival.telemetry import increment_runs_started, record_pr_processed, record_run_duration

_logger = logging.getLogger(__name__)

MAX_WORKERS = 32


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PullRequestOutcome:
    """What a worker reports back to the coordinator for one PR."""

    pr_id: str
    file_count: int = 0
    surviving_lines: int = 0
    deleted_lines: int = 0
    fatal: Optional[SurvivalError] = None
    skipped: bool = False

    def add(self, file: AnalysisFile) -> None:
        self.file_count += 1
        self.surviving_lines += file.surviving_lines
        self.deleted_lines += file.deleted_lines


class AnalysisOrchestrator:
    """Starts runs, fans PRs out to a bounded worker pool and finalizes run status."""

    def __init__(
        self,
        store: RedisAnalysisStore,
        directory: ProjectDirectory,
        diff_source: DiffSource,
        file_analyzer: FileAnalyzer,
        retry_policy: RetryPolicy | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._store = store
        self._directory = directory
        self._diff_source = diff_source
        self._file_analyzer = file_analyzer
        self._retry = retry_policy or RetryPolicy()
        workers = max_workers if max_workers is not None else settings.worker_concurrency
        self._max_workers = min(max(workers, 1), MAX_WORKERS)

    def start_run(
        self,
        project_id: str,
        user_id: str,
        background_tasks: BackgroundTasks | None = None,
    ) -> AnalysisRun:
        """Create an IN_PROGRESS run, enumerate its PRs and schedule processing.

        Raises AnalysisAlreadyRunning (from the store's conditional insert) when
        the project already has a run in progress; no run row is created then.
        """

        project = self._directory.get_project(project_id)
        if project is None:
            raise ProjectNotFound(f"Project {project_id} not found")

        run = AnalysisRun(run_id=new_run_id(), project_id=project_id, started_by=user_id, started_at=_now())
        self._store.create_run(run)
        increment_runs_started()
        _logger.info("Starting analysis %s for project %s", run.run_id, project.name)

        try:
            contexts = self.enumerate_pull_requests(project_id)
        except Exception as exc:
            self._store.finalize_run(run.run_id, RunStatus.FAILED, f"Failed to enumerate pull requests: {exc}")
            raise
        self._store.set_total_prs(run.run_id, len(contexts))
        run.total_prs = len(contexts)
        _logger.info("Found %s unique merged PRs to analyze for run %s", len(contexts), run.run_id)

        if background_tasks is not None:
            background_tasks.add_task(self.execute_run, run.run_id, contexts)
            return run
        self.execute_run(run.run_id, contexts)
        return self._store.get_run(run.run_id) or run

    def enumerate_pull_requests(self, project_id: str) -> list[PullRequestContext]:
        """Unique merged PRs linked to DONE tasks, as flat context records.

        PRs that cannot be analysed (no repository or number) are logged and left
        out of the total so progress can still reach 100%.
        """

        contexts: list[PullRequestContext] = []
        seen: set[str] = set()
        tasks = self._directory.done_tasks(project_id)
        _logger.info("Found %s DONE tasks in project %s", len(tasks), project_id)
        for task in tasks:
            sprint = task.sprints[0] if task.sprints else None
            for pr in task.pull_requests:
                if not pr.merged or pr.pr_id in seen:
                    continue
                seen.add(pr.pr_id)
                try:
                    contexts.append(self._to_context(task, sprint, pr))
                except InconsistentInput as exc:
                    _logger.warning("Skipping PR %s of task %s: %s", pr.pr_id, task.task_id, exc.message)
        return contexts

    def execute_run(self, run_id: str, contexts: list[PullRequestContext]) -> None:
        """Process every PR of a run; this thread is the only writer of run progress."""

        started = time.perf_counter()
        status = RunStatus.FAILED
        try:
            fatal = self._process_all(run_id, contexts)
            if fatal is not None:
                _logger.error("Analysis %s aborted: %s", run_id, fatal.message)
                self._store.finalize_run(run_id, RunStatus.FAILED, fatal.message)
                return
            run = self._store.get_run(run_id)
            if run is None:
                raise AnalysisNotFound(f"Analysis {run_id} disappeared while running")
            if run.processed_prs != run.total_prs:
                message = f"Processed {run.processed_prs} of {run.total_prs} pull requests"
                self._store.finalize_run(run_id, RunStatus.FAILED, message)
                return
            self._store.finalize_run(run_id, RunStatus.DONE)
            status = RunStatus.DONE
            _logger.info(
                "Analysis %s complete: %s files, %s surviving lines, %s deleted lines",
                run_id,
                run.total_files,
                run.total_surviving_lines,
                run.total_deleted_lines,
            )
        except Exception as exc:  # pragma: no cover - defensive catch for background jobs
            _logger.exception("Analysis %s failed", run_id)
            self._store.finalize_run(run_id, RunStatus.FAILED, str(exc))
        finally:
            record_run_duration(time.perf_counter() - started, status.value)

    def _process_all(self, run_id: str, contexts: list[PullRequestContext]) -> Optional[SurvivalError]:
        if not contexts:
            return None
        abort = threading.Event()
        fatal: Optional[SurvivalError] = None
        workers = min(self._max_workers, len(contexts))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="survival-worker") as pool:
            futures = [pool.submit(self._process_pull_request, run_id, pr, abort) for pr in contexts]
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                outcome: PullRequestOutcome = future.result()
                if outcome.fatal is not None:
                    if fatal is None:
                        fatal = outcome.fatal
                        abort.set()
                        for pending in futures:
                            pending.cancel()
                    continue
                if outcome.skipped:
                    continue
                self._store.record_pr_processed(
                    run_id,
                    file_count=outcome.file_count,
                    surviving_lines=outcome.surviving_lines,
                    deleted_lines=outcome.deleted_lines,
                )
                record_pr_processed()
        return fatal

    def _process_pull_request(
        self,
        run_id: str,
        pr: PullRequestContext,
        abort: threading.Event,
    ) -> PullRequestOutcome:
        """Worker body. Never raises: failures become partial outcomes or a fatal signal."""

        outcome = PullRequestOutcome(pr_id=pr.pr_id)
        if abort.is_set():
            outcome.skipped = True
            return outcome
        _logger.info("Analyzing PR #%s: %s", pr.pr_number, pr.pr_title)
        try:
            patch = self._retry.call(self._diff_source.get_patch, pr)
            # persisted only once every file of the PR is analysed
            analyses = [self._file_analyzer.analyze(run_id, pr, patch, patch_file) for patch_file in patch.files]
            for analysis in analyses:
                self._store.add_file(analysis.file, analysis.lines)
                outcome.add(analysis.file)
        except AuthenticationFailure as exc:
            outcome.fatal = exc
        except SourceError as exc:
            _logger.warning("PR #%s in %s left unanalysed: %s", pr.pr_number, pr.repo_full_name, exc.message)
        except Exception:
            _logger.exception("Error analyzing PR %s", pr.pr_id)
        return outcome

    @staticmethod
    def _to_context(task: TaskRecord, sprint: SprintRecord | None, pr: PullRequestRecord) -> PullRequestContext:
        if not pr.repo_full_name or "/" not in pr.repo_full_name:
            raise InconsistentInput(f"pull request {pr.pr_id} has no linked repository")
        if pr.pr_number is None:
            raise InconsistentInput(f"pull request {pr.pr_id} has no number")
        return PullRequestContext(
            pr_id=pr.pr_id,
            pr_number=pr.pr_number,
            pr_url=pr.url,
            pr_title=pr.title,
            repo_full_name=pr.repo_full_name,
            task_id=task.task_id,
            task_name=task.name,
            sprint_id=sprint.sprint_id if sprint else None,
            sprint_name=sprint.name if sprint else None,
            author_id=pr.author_id,
            author_name=pr.author_name,
            author_username=pr.author_username,
        )

    def get_run(self, run_id: str) -> AnalysisRun | None:
        return self._store.get_run(run_id)

    def latest_run(self, project_id: str) -> AnalysisRun | None:
        return self._store.latest_run(project_id)

    def list_runs(self, project_id: str) -> list[AnalysisRun]:
        return self._store.list_runs(project_id)

    def pr_file_details(self, run_id: str, pr_id: str) -> list[FileAnalysis]:
        """Stored per-file line views of one PR, with author names resolved from the directory."""

        if self._store.get_run(run_id) is None:
            raise AnalysisNotFound(f"Analysis {run_id} not found")
        files = self._store.list_files_for_pr(run_id, pr_id)
        if not files:
            raise AnalysisNotFound(f"No file data found for PR {pr_id} in analysis {run_id}")

        full_names: dict[str, Optional[str]] = {}
        details: list[FileAnalysis] = []
        for file in files:
            lines = self._store.get_lines(file.file_id)
            for line in lines:
                login = line.author_username
                if not login:
                    continue
                if login not in full_names:
                    user = self._directory.find_user_by_username(login)
                    full_names[login] = user.full_name if user else None
                line.author_full_name = full_names[login] or line.author_full_name
            details.append(FileAnalysis(file=file, lines=lines))
        return details
