"""FastAPI application entrypoint for docsite service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError, load_config
from ..orchestrator import Orchestrator, RunSummary

_STATUS_BY_ERROR: Dict[str, int] = {
    "StructuralError": 422,
    "FatalBackendError": 502,
    "TransientBackendError": 503,
    "OutputWriteError": 500,
}


class PlanRequest(BaseModel):
    path: str


class BuildRequest(BaseModel):
    path: str
    concurrency: Optional[int] = None
    destructive: Optional[bool] = None


class CleanRequest(BaseModel):
    path: str
    destructive: Optional[bool] = None


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def _respond(summary: RunSummary) -> JSONResponse:
    status_code = 200
    if summary.fatal:
        status_code = _STATUS_BY_ERROR.get(summary.error_kind or "", 400)
    elif summary.cancelled:
        status_code = 503
    return JSONResponse(status_code=status_code, content=summary.to_dict())


async def _run_blocking(func: Callable[[], RunSummary]) -> RunSummary:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing docsite operations."""

    app = FastAPI(title="docsite service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        # Lazy-instantiate per request to keep state predictable.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/plan")
    async def plan(
        payload: PlanRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        summary = await _run_blocking(lambda: orchestrator.run_plan(payload.path))
        return _respond(summary)

    @app.post("/build")
    async def build(
        payload: BuildRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        def _run_build() -> RunSummary:
            root = Path(payload.path).expanduser().resolve()
            if not root.is_dir():
                raise FileNotFoundError(f"Project path not found: {payload.path}")
            config = load_config(root)
            if payload.concurrency is not None:
                if payload.concurrency < 1:
                    raise ConfigError("concurrency must be at least 1")
                config.concurrency = payload.concurrency
            return orchestrator.run_build_all(
                payload.path, config=config, destructive=payload.destructive
            )

        summary = await _run_blocking(_run_build)
        return _respond(summary)

    @app.post("/clean")
    async def clean(
        payload: CleanRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        summary = await _run_blocking(
            lambda: orchestrator.run_clean(payload.path, destructive=payload.destructive)
        )
        return _respond(summary)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)
