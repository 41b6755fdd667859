"""HTTP API and dashboard for Dev Maestro."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .board import TaskBoard
from .config import ConfigHolder
from .dashboard import render_dashboard
from .errors import (
    ConfigurationError,
    InvalidStatusError,
    MaestroError,
    PersistenceError,
    PlanFileMissingError,
    TaskNotFoundError,
)
from .models import STATUS_BACKLOG
from .overrides import FAVICON_MEDIA_TYPES, custom_stylesheets, resolve_favicon, resolve_stylesheet

logger = logging.getLogger("maestro.api")

router = APIRouter()


class StatusUpdateRequest(BaseModel):
    """New status for a task."""

    status: str = Field(min_length=1, description="backlog, in_progress (or in-progress), blocked, review or done")


class TaskCreateRequest(BaseModel):
    """New task heading to append to the plan."""

    title: str = Field(min_length=1, description="Task title without status markers")
    prefix: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]+$", description="Identifier prefix")
    status: str = Field(default=STATUS_BACKLOG, description="Initial status")
    body: Optional[str] = Field(default=None, description="Markdown placed under the heading")


class PlanLocationRequest(BaseModel):
    """Plan file path or project directory containing one."""

    path: str = Field(min_length=1)


def get_board(request: Request) -> TaskBoard:
    return request.app.state.board


# ----------------------------------------------------------------------
# API routes
# ----------------------------------------------------------------------


@router.get("/status")
def get_status(board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Service and plan file status."""
    return board.status()


@router.get("/master-plan")
def get_master_plan(board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Raw plan file content."""
    return board.master_plan()


@router.get("/tasks")
def list_tasks(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    board: TaskBoard = Depends(get_board),
) -> Dict[str, Any]:
    """Tasks in document order, optionally filtered by status."""
    return board.list_tasks(status_filter)


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreateRequest, board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Append a task to the plan file."""
    try:
        return board.add_task(payload.title, prefix=payload.prefix, status=payload.status, body=payload.body)
    except InvalidStatusError:
        raise
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/tasks/grouped")
def grouped_tasks(board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Tasks grouped by status column."""
    return board.grouped_tasks()


@router.get("/task/{task_id}")
def get_task(task_id: str, board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    return board.get_task(task_id)


@router.post("/task/{task_id}/status")
def update_task_status(
    task_id: str,
    payload: StatusUpdateRequest,
    board: TaskBoard = Depends(get_board),
) -> Dict[str, Any]:
    """Change a task's status by rewriting its heading."""
    return board.update_status(task_id, payload.status)


@router.get("/next-id")
def next_id(prefix: Optional[str] = Query(default=None, pattern=r"^[A-Za-z]+$"), board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    return board.next_id(prefix)


@router.post("/config/reload")
def reload_config(board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Re-read environment variables and local/config.json."""
    return board.reload_config()


@router.post("/config/plan")
def set_plan(payload: PlanLocationRequest, board: TaskBoard = Depends(get_board)) -> Dict[str, Any]:
    """Switch to another plan file."""
    return board.set_plan_path(payload.path)


# ----------------------------------------------------------------------
# Error mapping
# ----------------------------------------------------------------------


def _error_response(status_code: int, kind: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "kind": kind})


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskNotFoundError)
    async def _task_not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, "not_found", exc)

    @app.exception_handler(PlanFileMissingError)
    async def _plan_missing(request: Request, exc: PlanFileMissingError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, "plan_missing", exc)

    @app.exception_handler(InvalidStatusError)
    async def _invalid_status(request: Request, exc: InvalidStatusError) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, "invalid_status", exc)

    @app.exception_handler(ConfigurationError)
    async def _bad_config(request: Request, exc: ConfigurationError) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, "configuration", exc)

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "persistence", exc)

    @app.exception_handler(MaestroError)
    async def _maestro_error(request: Request, exc: MaestroError) -> JSONResponse:
        logger.error(f"Unhandled Dev Maestro error on {request.url.path}: {exc}")
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal", exc)


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------


def create_app(holder: Optional[ConfigHolder] = None) -> FastAPI:
    """Build the FastAPI application around a configuration holder."""
    holder = holder or ConfigHolder()
    app = FastAPI(
        title="Dev Maestro",
        description="Task board for MASTER_PLAN.md",
        version=__version__,
    )
    app.state.board = TaskBoard(holder)
    app.include_router(router, prefix="/api", tags=["tasks"])
    _register_error_handlers(app)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def dashboard(board: TaskBoard = Depends(get_board)) -> HTMLResponse:
        config = board.config
        plan_path = str(config.plan_path) if config.plan_path else None
        try:
            grouped = board.grouped_tasks()
        except PlanFileMissingError as exc:
            html = render_dashboard(None, plan_path=plan_path, stylesheets=custom_stylesheets(config), error=str(exc))
            return HTMLResponse(html, status_code=status.HTTP_404_NOT_FOUND)
        html = render_dashboard(
            grouped["groups"],
            plan_path=plan_path,
            stylesheets=custom_stylesheets(config),
            completion_rate=grouped["completion_rate"],
        )
        return HTMLResponse(html)

    @app.get("/favicon.{extension}", include_in_schema=False)
    def favicon(extension: str, board: TaskBoard = Depends(get_board)) -> FileResponse:
        path = resolve_favicon(board.config, extension)
        if path is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No favicon")
        return FileResponse(path, media_type=FAVICON_MEDIA_TYPES[extension])

    @app.get("/local/css/{name}", include_in_schema=False)
    def local_stylesheet(name: str, board: TaskBoard = Depends(get_board)) -> FileResponse:
        path = resolve_stylesheet(board.config, name)
        if path is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Stylesheet {name} not found")
        return FileResponse(path, media_type="text/css")

    return app
