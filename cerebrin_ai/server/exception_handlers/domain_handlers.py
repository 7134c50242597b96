"""
Domain Exception Handlers.

Translate the control plane's error taxonomy into HTTP status codes so
endpoints can let domain errors propagate.
"""

from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cerebrin_ai.core.errors import (
    BudgetExceeded,
    ConflictError,
    ControlPlaneError,
    IdentityNotFound,
    InvalidStateError,
    NotFoundError,
    ProviderError,
    WorkspaceMissing,
)
from cerebrin_ai.core.logging_config import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR: Dict[Type[ControlPlaneError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    IdentityNotFound: status.HTTP_404_NOT_FOUND,
    WorkspaceMissing: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    BudgetExceeded: status.HTTP_402_PAYMENT_REQUIRED,
    ProviderError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: ControlPlaneError) -> int:
    for error_type in type(exc).__mro__:
        code = STATUS_BY_ERROR.get(error_type)  # type: ignore[arg-type]
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def control_plane_exception_handler(request: Request, exc: ControlPlaneError) -> JSONResponse:
    code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {code} {type(exc).__name__}: {exc}")
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ConflictError) and exc.existing is not None:
        content["pipeline_id"] = exc.existing.id
    return JSONResponse(status_code=code, content=content)


def register_domain_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ControlPlaneError, control_plane_exception_handler)
