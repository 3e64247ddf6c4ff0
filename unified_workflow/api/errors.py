"""Maps workflow errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from unified_workflow.errors import (
    AuthorizationError,
    BackendTimeout,
    ConflictError,
    NotFoundError,
    RepositoryError,
    ValidationError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses must precede their bases
STATUS_CODES: list[tuple[type[WorkflowError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (AuthorizationError, 403),
    (ConflictError, 409),
    (BackendTimeout, 503),
    (RepositoryError, 500),
]


def status_code_for(exc: WorkflowError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def workflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")

    content: dict = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    """Install one handler for the whole WorkflowError hierarchy."""
    app.add_exception_handler(WorkflowError, workflow_error_handler)
