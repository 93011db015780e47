"""
Global Error Handlers

Render exceptions as the standard error envelope:

    {"error": {"code", "message", "details", "trace_id", "timestamp"}}
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ....core.idempotency.models import IdempotencyConflictError, InvalidIdempotencyKey
from ..error_codes import ErrorCode, get_status_code
from ..exceptions import APIException
from ..responses import ErrorBody, ErrorDetail
from .trace import get_request_trace_id

logger = logging.getLogger(__name__)


def _error_response(
    code: ErrorCode,
    message: str,
    trace_id: str,
    details: Optional[List[ErrorDetail]] = None,
    status_code: Optional[int] = None,
) -> JSONResponse:
    body = ErrorBody(code=code.value, message=message, details=details, trace_id=trace_id)
    return JSONResponse(
        status_code=status_code or get_status_code(code),
        content={"error": body.model_dump(mode="json")}
    )


def register_error_handlers(app: FastAPI):
    """
    Register all error handlers on the FastAPI app.

    Handles:
    - APIException (custom API errors)
    - IdempotencyConflictError / InvalidIdempotencyKey (domain errors)
    - RequestValidationError (FastAPI validation, reported as 400)
    - Exception (catch-all, reported as 500 without internals)
    """

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        trace_id = exc.trace_id or get_request_trace_id(request)
        logger.warning(
            "API Error: %s - %s", exc.code.value, exc.message,
            extra={"trace_id": trace_id, "error_code": exc.code.value, "path": request.url.path}
        )
        return _error_response(exc.code, exc.message, trace_id, exc.details, exc.status_code)

    @app.exception_handler(IdempotencyConflictError)
    async def idempotency_conflict_handler(request: Request, exc: IdempotencyConflictError):
        trace_id = get_request_trace_id(request)
        logger.warning(
            "Idempotency key reused with a different payload",
            extra={"trace_id": trace_id, "idempotency_key": exc.key, "user_id": exc.user_id}
        )
        return _error_response(ErrorCode.IDEMPOTENCY_KEY_CONFLICT, str(exc), trace_id)

    @app.exception_handler(InvalidIdempotencyKey)
    async def invalid_key_handler(request: Request, exc: InvalidIdempotencyKey):
        details = [ErrorDetail(field="idempotency_key", message=str(exc), code="invalid")]
        return _error_response(
            ErrorCode.VALIDATION_ERROR, "Request validation failed", get_request_trace_id(request), details
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        trace_id = get_request_trace_id(request)

        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                code=error["type"]
            )
            for error in exc.errors()
        ]

        logger.warning(
            "Validation Error: %d field(s)", len(details),
            extra={"trace_id": trace_id, "path": request.url.path}
        )
        return _error_response(ErrorCode.VALIDATION_ERROR, "Request validation failed", trace_id, details)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        trace_id = get_request_trace_id(request)
        logger.error(
            "Unhandled Exception: %s: %s", type(exc).__name__, exc,
            exc_info=exc,
            extra={"trace_id": trace_id, "path": request.url.path}
        )
        # Don't expose internal details
        return _error_response(ErrorCode.INTERNAL_ERROR, "An internal error occurred", trace_id)
