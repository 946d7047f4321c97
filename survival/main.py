"""Application entrypoint for the Code Survival service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from survival.core.config import settings
from survival.routers import analysis
from survival.telemetry import configure_metrics, shutdown_metrics, collect_prometheus_metrics


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_metrics()
    yield
    shutdown_metrics()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Code Survival Analysis",
        description="Measures how much code from merged pull requests survives unchanged at HEAD.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(analysis.router)

    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    if settings.otel_exporter.lower().strip() == "prometheus":

        @app.get("/metrics", tags=["metrics"])
        def metrics_endpoint() -> PlainTextResponse:
            payload, content_type = collect_prometheus_metrics()
            return PlainTextResponse(payload, media_type=content_type)

    return app


app = create_app()
