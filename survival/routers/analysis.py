"""API routes for project analysis runs, results and per-PR file views."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status

from survival.core.config import settings
from survival.core.errors import AnalysisAlreadyRunning, AnalysisNotComplete, AnalysisNotFound, ProjectNotFound
from survival.dependencies import get_aggregator, get_orchestrator
from survival.schemas.analysis import (
    FileDetailResponse,
    ResultsResponse,
    RunStatusResponse,
    StartAnalysisRequest,
)
from survival.services.aggregation import AnalysisAggregator
from survival.services.analysis import AnalysisOrchestrator


router = APIRouter(prefix=f"{settings.api_v1_prefix}/project-analyses", tags=["project-analyses"])


def _status_url(analysis_id: str) -> str:
    return f"{settings.service_base_url}{settings.api_v1_prefix}/project-analyses/{analysis_id}"


@router.post(
    "/projects/{project_id}/start",
    response_model=RunStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def start_analysis(
    project_id: str,
    payload: StartAnalysisRequest,
    background_tasks: BackgroundTasks,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> RunStatusResponse:
    try:
        run = orchestrator.start_run(project_id, payload.started_by, background_tasks=background_tasks)
    except ProjectNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    except AnalysisAlreadyRunning as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    return RunStatusResponse.from_run(run, status_url=_status_url(run.run_id))


@router.get(
    "/projects/{project_id}/latest",
    response_model=RunStatusResponse,
    responses={status.HTTP_204_NO_CONTENT: {"description": "The project has no analysis runs yet."}},
)
def get_latest_analysis(
    project_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    run = orchestrator.latest_run(project_id)
    if not run:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return RunStatusResponse.from_run(run, status_url=_status_url(run.run_id))


@router.get("/projects/{project_id}", response_model=list[RunStatusResponse])
def list_project_analyses(
    project_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> list[RunStatusResponse]:
    return [RunStatusResponse.from_run(run) for run in orchestrator.list_runs(project_id)]


@router.get("/{analysis_id}", response_model=RunStatusResponse)
def get_analysis_status(
    analysis_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> RunStatusResponse:
    run = orchestrator.get_run(analysis_id)
    if not run:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    return RunStatusResponse.from_run(run, status_url=_status_url(run.run_id))


@router.get("/{analysis_id}/results", response_model=ResultsResponse)
def get_analysis_results(
    analysis_id: str,
    sprint_id: Optional[str] = Query(None, description="Restrict files and author summaries to one sprint."),
    author_id: Optional[str] = Query(None, description="Restrict files to one PR author."),
    aggregator: AnalysisAggregator = Depends(get_aggregator),
) -> ResultsResponse:
    try:
        results = aggregator.results(analysis_id, sprint_id=sprint_id, author_id=author_id)
    except AnalysisNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    except AnalysisNotComplete as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    return ResultsResponse.from_results(results)


@router.get("/{analysis_id}/prs/{pr_id}/files", response_model=list[FileDetailResponse])
def get_pr_file_details(
    analysis_id: str,
    pr_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> list[FileDetailResponse]:
    try:
        details = orchestrator.pr_file_details(analysis_id, pr_id)
    except AnalysisNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    return [FileDetailResponse.from_analysis(detail) for detail in details]
