# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the note proxy.

This module provides the webhook surface of the proxy:

- ``POST /periodic/{vault}/{period}``: append raw markdown to a periodic note
- ``POST /periodic/{vault}/flush``: retry every queued note of a vault
- ``GET /queue/{vault}``: inspect notes still waiting for delivery
- ``GET /health`` and ``GET /db-test``: store connectivity (no authentication)
- ``GET /metrics``: Prometheus exposition

Every route except the health probes requires ``Authorization: Bearer <token>``
when a token is configured.

Example:
    Creating and running the API application::

        from note_proxy.core import NoteProxyCore
        from note_proxy.api import create_app

        core = NoteProxyCore(NoteProxyDb("/data/notes.db"))
        app = create_app(core, api_token="secret-token")

        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

from typing import AsyncContextManager, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, ConfigDict, Field

from .core import NoteProxyCore
from .errors import StorageError
from .logger import get_logger
from .models import ErrorKind, FlushReport, NoteDeliveryResult

logger = get_logger("NoteProxyApi")

MISSING_TOKEN_MESSAGE = "Missing or invalid Authorization header. Provide 'Bearer <token>'"
INVALID_TOKEN_MESSAGE = "Invalid bearer token"

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationFailed(Exception):
    """Raised by :func:`require_token`, rendered as a 401 JSON body."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


async def require_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """Validate the bearer token carried in the ``Authorization`` header.

    When no token has been configured through :func:`create_app` the
    dependency is bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed(MISSING_TOKEN_MESSAGE)
    if credentials.credentials != expected:
        raise AuthenticationFailed(INVALID_TOKEN_MESSAGE)


auth_dependency = Depends(require_token)


class ApiResponse(BaseModel):
    """Base schema shared by the webhook responses."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str


class NoteResponse(ApiResponse):
    vault: str
    period: Optional[str] = None
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    error: Optional[str] = None


class FlushResponse(ApiResponse):
    vault: str
    total_notes: int = Field(default=0, alias="totalNotes")
    success_count: int = Field(default=0, alias="successCount")
    failure_count: int = Field(default=0, alias="failureCount")
    errors: Optional[List[str]] = None


class QueuedNoteInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    note: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class QueueResponse(BaseModel):
    success: bool = True
    vault: str
    count: int
    notes: List[QueuedNoteInfo]


def _note_status(result: NoteDeliveryResult) -> int:
    """HTTP status for a single-note result."""
    match result.error_kind:
        case None:
            return 200
        case ErrorKind.VALIDATION:
            return 400
        case ErrorKind.NOT_FOUND:
            return 404
        case ErrorKind.REJECTED if result.status_code and result.status_code >= 400:
            return result.status_code
        case ErrorKind.STORAGE:
            return 500
        case _:
            return 502


def _flush_status(report: FlushReport) -> int:
    if report.error_kind is ErrorKind.NOT_FOUND:
        return 404
    if report.error_kind is ErrorKind.STORAGE:
        return 500
    return 200


def _note_response(result: NoteDeliveryResult) -> JSONResponse:
    body = NoteResponse(
        success=result.success,
        message=result.message,
        vault=result.vault,
        period=result.period,
        status_code=result.status_code,
        error=result.error if result.error_kind in (ErrorKind.REJECTED, ErrorKind.TRANSPORT) else None,
    )
    return JSONResponse(
        status_code=_note_status(result),
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


def _flush_response(report: FlushReport) -> JSONResponse:
    body = FlushResponse(
        success=report.success,
        message=report.message,
        vault=report.vault,
        total_notes=report.total_notes,
        success_count=report.success_count,
        failure_count=report.failure_count,
        errors=report.errors,
    )
    return JSONResponse(status_code=_flush_status(report), content=body.model_dump(by_alias=True))


def create_app(
    core: NoteProxyCore,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    core:
        Instance of :class:`note_proxy.core.NoteProxyCore` running the
        delivery pipelines.
    api_token:
        Secret compared with the bearer token of every protected request.
        ``None`` disables the check; production entry points refuse to
        start without one.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    api = FastAPI(title="Periodic Note Proxy", lifespan=lifespan)
    api.state.api_token = api_token
    api.state.core = core

    router = APIRouter(dependencies=[auth_dependency])

    @api.exception_handler(AuthenticationFailed)
    async def authentication_failed_handler(request: Request, exc: AuthenticationFailed):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=401,
            content={"success": False, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @api.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "An error occurred while accessing the database", "error": str(exc)},
        )

    @api.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "An unexpected error occurred while processing the request"},
        )

    async def _health() -> JSONResponse:
        healthy, payload = await core.health()
        return JSONResponse(status_code=200 if healthy else 503, content=payload)

    @api.get("/health")
    async def health():
        """Store connectivity check (no authentication required)."""
        return await _health()

    @api.get("/db-test")
    async def db_test():
        """Alias of ``/health`` kept for existing monitors."""
        return await _health()

    # Registered before the {period} route so "flush" is never taken as a period.
    @router.post("/periodic/{vault}/flush")
    async def flush(vault: str):
        """Retry delivery of every note queued for ``vault`` to its daily note."""
        report = await core.flush(vault)
        return _flush_response(report)

    @router.post("/periodic/{vault}/{period}")
    async def append_note(vault: str, period: str, request: Request):
        """Append the raw request body to the ``period`` note of ``vault``."""
        body = await request.body()
        content = body.decode("utf-8", errors="replace")
        result = await core.deliver_note(vault, period, content)
        return _note_response(result)

    @router.get("/queue/{vault}", response_model=QueueResponse)
    async def list_queue(vault: str):
        """List notes still waiting for delivery, oldest first."""
        notes = await core.list_queue(vault)
        return QueueResponse(
            vault=vault,
            count=len(notes),
            notes=[QueuedNoteInfo(id=n.id, note=n.note, created_at=n.created_at) for n in notes],
        )

    @router.get("/metrics")
    async def metrics():
        """Expose Prometheus metrics collected by the pipelines."""
        return Response(content=core.metrics.generate_latest(), media_type=CONTENT_TYPE_LATEST)

    api.include_router(router)
    return api


__all__ = ["create_app", "require_token"]
