from __future__ import annotations

import time
from typing import Callable, Dict

import httpx

TERMINAL_STATUSES = frozenset({"DONE", "FAILED"})


class RunTimeout(TimeoutError):
    """Raised when a run does not reach a terminal status in time."""


class SurvivalClient:
    """Lightweight synchronous client for the Code Survival API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized_base = base_url.rstrip("/") + "/"
        self._client = httpx.Client(
            base_url=normalized_base,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> "SurvivalClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def start_analysis(self, project_id: str, started_by: str) -> dict:
        response = self._client.post(
            f"project-analyses/projects/{project_id}/start",
            json={"started_by": started_by},
        )
        response.raise_for_status()
        return response.json()

    def get_run(self, analysis_id: str) -> dict:
        response = self._client.get(f"project-analyses/{analysis_id}")
        response.raise_for_status()
        return response.json()

    def latest_run(self, project_id: str) -> dict | None:
        response = self._client.get(f"project-analyses/projects/{project_id}/latest")
        response.raise_for_status()
        if response.status_code == 204:
            return None
        return response.json()

    def list_runs(self, project_id: str) -> list[dict]:
        response = self._client.get(f"project-analyses/projects/{project_id}")
        response.raise_for_status()
        return response.json()

    def get_results(
        self,
        analysis_id: str,
        *,
        sprint_id: str | None = None,
        author_id: str | None = None,
    ) -> dict:
        params = {}
        if sprint_id:
            params["sprint_id"] = sprint_id
        if author_id:
            params["author_id"] = author_id
        response = self._client.get(f"project-analyses/{analysis_id}/results", params=params)
        response.raise_for_status()
        return response.json()

    def get_pr_files(self, analysis_id: str, pr_id: str) -> list[dict]:
        response = self._client.get(f"project-analyses/{analysis_id}/prs/{pr_id}/files")
        response.raise_for_status()
        return response.json()

    def wait_for_run(
        self,
        analysis_id: str,
        *,
        poll_interval: float = 2.0,
        timeout: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> dict:
        """Poll run progress until the run is DONE or FAILED."""

        deadline = time.monotonic() + timeout
        while True:
            run = self.get_run(analysis_id)
            if run["status"] in TERMINAL_STATUSES:
                return run
            if time.monotonic() >= deadline:
                raise RunTimeout(
                    f"Analysis {analysis_id} still {run['status']} at {run.get('progress_percent', 0)}%"
                )
            sleep(poll_interval)

    def healthcheck(self) -> dict:
        response = self._client.get("healthz")
        response.raise_for_status()
        return response.json()
