from __future__ import annotations

from fastapi.testclient import TestClient

from survival.core.errors import AuthenticationFailure
from survival.dependencies import get_aggregator, get_orchestrator, get_store
from survival.main import create_app
from survival.models.domain import PullRequestPatch
from survival.services.aggregation import AnalysisAggregator
from survival.services.analysis import AnalysisOrchestrator
from survival.services.file_analyzer import FileAnalyzer
from survival.services.resolver import LineProvenanceResolver, MatchPolicy

from tests.fakes import (
    InMemoryBlameSource,
    InMemoryDiffSource,
    blame,
    build_store,
    fast_retry,
    merged_pr,
    patch_file,
    seed_project,
)


def _build_test_client(diff: InMemoryDiffSource | None = None):
    # Reset cached dependencies to avoid cross-test contamination.
    get_store.cache_clear()
    get_orchestrator.cache_clear()
    get_aggregator.cache_clear()

    store, directory = build_store()
    seed_project(directory, prs=[merged_pr("pr-1", 1)])
    diff = diff or InMemoryDiffSource(
        {
            "pr-1": PullRequestPatch(
                pr_id="pr-1",
                merge_commit_sha="m1",
                commit_shas=["c1"],
                files=[patch_file("src/cart.py", [(1, "total = 0"), (2, "tax = 0")])],
            )
        }
    )
    blame_source = InMemoryBlameSource()
    blame_source.set_file("src/cart.py", [("total = 0", blame("c1", login="alice")), ("tax = 1", blame("c7"))])
    analyzer = FileAnalyzer(blame_source, resolver=LineProvenanceResolver(MatchPolicy()), retry_policy=fast_retry())
    orchestrator = AnalysisOrchestrator(store, directory, diff, analyzer, retry_policy=fast_retry(), max_workers=2)
    aggregator = AnalysisAggregator(store)

    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    return TestClient(app), store


def test_full_analysis_flow_via_api():
    client, _ = _build_test_client()

    assert client.get("/v1/project-analyses/projects/proj-1/latest").status_code == 204

    started = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-1"})
    assert started.status_code == 202
    body = started.json()
    analysis_id = body["analysis_id"]
    assert body["status"] == "IN_PROGRESS"
    assert body["total_prs"] == 1
    assert body["status_url"].endswith(f"/v1/project-analyses/{analysis_id}")

    status_response = client.get(f"/v1/project-analyses/{analysis_id}")
    assert status_response.status_code == 200
    run = status_response.json()
    assert run["status"] == "DONE"
    assert run["progress_percent"] == 100
    assert run["survival_rate"] == 50.0

    latest = client.get("/v1/project-analyses/projects/proj-1/latest").json()
    assert latest["analysis_id"] == analysis_id
    history = client.get("/v1/project-analyses/projects/proj-1").json()
    assert [item["analysis_id"] for item in history] == [analysis_id]

    results = client.get(f"/v1/project-analyses/{analysis_id}/results").json()
    assert results["totals"]["surviving_lines"] == 1
    assert results["totals"]["deleted_lines"] == 1
    assert results["files"][0]["file_path"] == "src/cart.py"
    assert results["author_summaries"][0]["author_id"] == "user-1"
    assert results["sprint_summaries"][0]["sprint_id"] == "sprint-1"

    filtered = client.get(f"/v1/project-analyses/{analysis_id}/results", params={"sprint_id": "other"}).json()
    assert filtered["files"] == []
    assert filtered["totals"]["file_count"] == 1

    files = client.get(f"/v1/project-analyses/{analysis_id}/prs/pr-1/files")
    assert files.status_code == 200
    detail = files.json()[0]
    assert detail["file"]["surviving_lines"] == 1
    assert [line["status"] for line in detail["lines"]] == ["SURVIVING", "DELETED", "CURRENT"]
    assert detail["lines"][0]["author_full_name"] == "Alice Example"
    assert detail["lines"][1]["line_number"] is None


def test_start_conflicts_while_run_in_progress():
    client, store = _build_test_client()
    first = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-1"}).json()
    store._client.hset(f"analysis:run:{first['analysis_id']}", "status", "IN_PROGRESS")
    store._client.set("analysis:project:proj-1:active", first["analysis_id"])

    conflict = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-2"})
    assert conflict.status_code == 409


def test_results_conflict_until_done():
    client, store = _build_test_client()
    first = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-1"}).json()
    store._client.hset(f"analysis:run:{first['analysis_id']}", "status", "IN_PROGRESS")

    response = client.get(f"/v1/project-analyses/{first['analysis_id']}/results")
    assert response.status_code == 409
    assert response.json()["detail"] == "Analysis is not complete yet"


def test_not_found_responses():
    client, _ = _build_test_client()
    assert client.post("/v1/project-analyses/projects/nope/start", json={"started_by": "u"}).status_code == 404
    assert client.get("/v1/project-analyses/ar_missing").status_code == 404
    assert client.get("/v1/project-analyses/ar_missing/results").status_code == 404

    started = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-1"}).json()
    assert client.get(f"/v1/project-analyses/{started['analysis_id']}/prs/pr-404/files").status_code == 404


def test_failed_run_reports_error_message():
    diff = InMemoryDiffSource(failures={"pr-1": [AuthenticationFailure("token revoked")]})
    client, _ = _build_test_client(diff)

    started = client.post("/v1/project-analyses/projects/proj-1/start", json={"started_by": "user-1"}).json()
    run = client.get(f"/v1/project-analyses/{started['analysis_id']}").json()
    assert run["status"] == "FAILED"
    assert "token revoked" in run["error_message"]


def test_healthcheck():
    client, _ = _build_test_client()
    assert client.get("/healthz").json() == {"status": "ok"}
