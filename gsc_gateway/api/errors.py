"""
Error responses - the single place where gateway errors become HTTP.

Shape: {"success": false, "error": message, "code": kind, "details"?: {...}}
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from structlog import get_logger

from gsc_gateway.exceptions import ErrorKind, GatewayError, RateLimitError
from gsc_gateway.observability.metrics import metrics

logger = get_logger(__name__)

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


def error_headers(error: GatewayError) -> dict[str, str]:
    """Extra response headers per error kind."""
    match error.kind:
        case ErrorKind.RATE_LIMIT:
            assert isinstance(error, RateLimitError)
            return {
                "X-RateLimit-Remaining": str(error.remaining),
                "X-RateLimit-Reset": str(error.reset_epoch_ms),
            }
        case ErrorKind.AUTH:
            return {"WWW-Authenticate": "Bearer"}
        case (
            ErrorKind.VALIDATION
            | ErrorKind.PERMISSION
            | ErrorKind.INSUFFICIENT_CREDITS
            | ErrorKind.UPSTREAM
            | ErrorKind.DATABASE
        ):
            return {}


def error_body(error: GatewayError) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": error.message,
        "code": error.kind.value,
    }
    details = error.details()
    if details is not None:
        body["details"] = details
    return body


def error_response(error: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error_body(error),
        headers=error_headers(error),
    )


async def gateway_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for GatewayError."""
    assert isinstance(exc, GatewayError)
    metrics.record_error(exc.kind.value, request.url.path)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_error",
        path=request.url.path,
        code=exc.kind.value,
        status_code=exc.status_code,
        error=exc.message,
    )
    return error_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything outside the taxonomy is an internal error in the same shape."""
    metrics.record_error(type(exc).__name__, request.url.path)
    logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "code": INTERNAL_ERROR_CODE},
    )
