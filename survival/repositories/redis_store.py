"""Redis-backed persistence for analysis runs, files and lines."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from redis import Redis

from survival.core.errors import AnalysisAlreadyRunning
from survival.models.domain import AnalysisFile, AnalysisLine, AnalysisRun, RunStatus

_logger = logging.getLogger(__name__)


def _timestamp(dt: datetime) -> float:
    return dt.timestamp()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RedisAnalysisStore:
    """Stores the run / file / line hierarchy in Redis.

    The run record is a hash so that progress counters can be bumped with
    HINCRBY inside a MULTI block. The one-active-run-per-project rule lives in
    Redis as an active-run key written together with the run hash under WATCH,
    which keeps it correct across service instances.

    Files and lines are append-only lists.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    def create_run(self, run: AnalysisRun) -> None:
        """Insert a new IN_PROGRESS run, failing if the project already has one."""

        active_key = self._active_key(run.project_id)

        def _apply(pipe) -> Optional[str]:
            holder = pipe.get(active_key)
            if holder:
                if pipe.hget(self._run_key(holder), "status") == RunStatus.IN_PROGRESS.value:
                    return holder
                _logger.warning("Releasing stale active-run lock %s for project %s", holder, run.project_id)
            pipe.multi()
            pipe.set(active_key, run.run_id)
            pipe.hset(self._run_key(run.run_id), mapping=self._run_to_hash(run))
            pipe.zadd(self._project_runs_key(run.project_id), {run.run_id: _timestamp(run.started_at)})
            return None

        holder = self._client.transaction(_apply, active_key, value_from_callable=True)
        if holder:
            raise AnalysisAlreadyRunning(run.project_id, holder)

    def active_run_id(self, project_id: str) -> Optional[str]:
        return self._client.get(self._active_key(project_id))

    def has_run_in_progress(self, project_id: str) -> bool:
        holder = self.active_run_id(project_id)
        if not holder:
            return False
        run = self.get_run(holder)
        return run is not None and not run.is_terminal

    def set_total_prs(self, run_id: str, total_prs: int) -> None:
        self._client.hset(self._run_key(run_id), "total_prs", total_prs)

    def get_run(self, run_id: str) -> Optional[AnalysisRun]:
        data = self._client.hgetall(self._run_key(run_id))
        if not data:
            return None
        return AnalysisRun.model_validate(data)

    def list_runs(self, project_id: str) -> list[AnalysisRun]:
        """All runs of a project, newest first."""

        ids = self._client.zrevrange(self._project_runs_key(project_id), 0, -1)
        if not ids:
            return []
        pipeline = self._client.pipeline()
        for run_id in ids:
            pipeline.hgetall(self._run_key(run_id))
        return [AnalysisRun.model_validate(blob) for blob in pipeline.execute() if blob]

    def latest_run(self, project_id: str) -> Optional[AnalysisRun]:
        ids = self._client.zrevrange(self._project_runs_key(project_id), 0, 0)
        if not ids:
            return None
        return self.get_run(ids[0])

    def record_pr_processed(
        self,
        run_id: str,
        *,
        file_count: int = 0,
        surviving_lines: int = 0,
        deleted_lines: int = 0,
    ) -> int:
        """Atomically bump processed_prs and roll the PR's totals into the run."""

        key = self._run_key(run_id)
        pipeline = self._client.pipeline(transaction=True)
        pipeline.hincrby(key, "processed_prs", 1)
        pipeline.hincrby(key, "total_files", file_count)
        pipeline.hincrby(key, "total_surviving_lines", surviving_lines)
        pipeline.hincrby(key, "total_deleted_lines", deleted_lines)
        processed, *_ = pipeline.execute()
        return int(processed)

    def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        error_message: Optional[str] = None,
    ) -> Optional[AnalysisRun]:
        """Move an IN_PROGRESS run to a terminal state exactly once and release the project lock."""

        if status == RunStatus.IN_PROGRESS:
            raise ValueError("finalize_run requires a terminal status")
        run_key = self._run_key(run_id)

        def _apply(pipe) -> bool:
            current = pipe.hget(run_key, "status")
            project_id = pipe.hget(run_key, "project_id")
            if current != RunStatus.IN_PROGRESS.value:
                return False
            active_key = self._active_key(project_id)
            holder = pipe.get(active_key)
            pipe.multi()
            pipe.hset(run_key, mapping={"status": status.value, "completed_at": _now().isoformat()})
            if error_message:
                pipe.hset(run_key, "error_message", error_message[:1000])
            if holder == run_id:
                pipe.delete(active_key)
            return True

        changed = self._client.transaction(_apply, run_key, value_from_callable=True)
        if not changed:
            _logger.info("Run %s already terminal; ignoring transition to %s", run_id, status.value)
        return self.get_run(run_id)

    def add_file(self, file: AnalysisFile, lines: Iterable[AnalysisLine]) -> None:
        payload = [line.model_dump_json() for line in lines]
        pipeline = self._client.pipeline()
        pipeline.rpush(self._files_key(file.run_id), file.model_dump_json())
        if payload:
            pipeline.rpush(self._lines_key(file.file_id), *payload)
        pipeline.execute()

    def list_files(self, run_id: str) -> list[AnalysisFile]:
        entries = self._client.lrange(self._files_key(run_id), 0, -1)
        return [AnalysisFile.model_validate_json(entry) for entry in entries]

    def list_files_for_pr(self, run_id: str, pr_id: str) -> list[AnalysisFile]:
        return [file for file in self.list_files(run_id) if file.pr_id == pr_id]

    def get_lines(self, file_id: str) -> list[AnalysisLine]:
        entries = self._client.lrange(self._lines_key(file_id), 0, -1)
        lines = [AnalysisLine.model_validate_json(entry) for entry in entries]
        lines.sort(key=lambda line: line.display_order)
        return lines

    @staticmethod
    def _run_to_hash(run: AnalysisRun) -> dict[str, str | int]:
        return run.model_dump(mode="json", exclude_none=True)

    @staticmethod
    def _run_key(run_id: str) -> str:
        return f"analysis:run:{run_id}"

    @staticmethod
    def _files_key(run_id: str) -> str:
        return f"analysis:run:{run_id}:files"

    @staticmethod
    def _lines_key(file_id: str) -> str:
        return f"analysis:file:{file_id}:lines"

    @staticmethod
    def _project_runs_key(project_id: str) -> str:
        return f"analysis:project:{project_id}:runs"

    @staticmethod
    def _active_key(project_id: str) -> str:
        return f"analysis:project:{project_id}:active"
