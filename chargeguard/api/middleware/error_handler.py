"""Global exception handling."""

import re

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from chargeguard.shared.errors import ChargeGuardError

logger = structlog.get_logger()


def _error_code(exc: ChargeGuardError) -> str:
    name = type(exc).__name__.removesuffix("Error")
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _body(error: str, message: str, request_id: str) -> dict:
    return {"error": error, "message": message, "request_id": request_id}


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")

    if isinstance(exc, ChargeGuardError):
        code = _error_code(exc)
        if exc.status_code >= 500:
            logger.error("domain_error", request_id=request_id, error=code, message=exc.message)
        else:
            logger.warning("domain_error", request_id=request_id, error=code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_body(code, exc.message, request_id),
        )

    if isinstance(exc, ValueError):
        logger.warning("bad_request", request_id=request_id, error=str(exc))
        return JSONResponse(status_code=400, content=_body("bad_request", str(exc), request_id))

    if isinstance(exc, PermissionError):
        logger.warning("forbidden", request_id=request_id, error=str(exc))
        return JSONResponse(status_code=403, content=_body("forbidden", str(exc), request_id))

    if isinstance(exc, LookupError):
        logger.warning("not_found", request_id=request_id, error=str(exc))
        return JSONResponse(status_code=404, content=_body("not_found", str(exc), request_id))

    logger.exception("unhandled_exception", request_id=request_id, error=str(exc))
    return JSONResponse(
        status_code=500,
        content=_body("internal_server_error", "An unexpected error occurred", request_id),
    )
