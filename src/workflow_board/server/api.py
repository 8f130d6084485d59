"""FastAPI web server for the workflow board."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..config import build_service, get_dashboard_config, load_board_config
from ..services.base import TaskService
from ..task_engine.engine import WorkflowEngine
from .board_api import create_board_router

_DASHBOARD_KEY = "__dashboard__"


def create_app(
    project_dir: Optional[Path] = None,
    service: Optional[TaskService] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Directory holding `.workflow_board/` (config and, for the
            local backend, the task store). Defaults to the working directory.
        service: Collaborator to use instead of the one the config selects.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    project_dir = (project_dir or Path.cwd()).resolve()
    config, err = load_board_config(project_dir)
    if err:
        logger.warning("Ignoring unreadable board config: {}", err)
    if service is None:
        service = build_service(project_dir, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.service.aclose()

    app = FastAPI(
        title="Workflow Board",
        description="Stage pipelines, boards and dashboards over a task service",
        version="1.0.0",
        lifespan=lifespan,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.project_dir = project_dir
    app.state.service = service
    app.state.engines = {}

    def _get_engine(project_id: Optional[str] = None) -> WorkflowEngine:
        """One engine per project so in-flight actions are shared across requests."""
        key = project_id or _DASHBOARD_KEY
        engine = app.state.engines.get(key)
        if engine is None:
            engine = WorkflowEngine(app.state.service)
            app.state.engines[key] = engine
        return engine

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Workflow Board",
            "version": "1.0.0",
            "status": "running",
        }

    app.include_router(create_board_router(_get_engine, get_dashboard_config(config)))
    return app
