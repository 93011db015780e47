"""
API Exception Classes

Exceptions that the error handlers render as the standard error envelope.
"""

from typing import List, Optional

from .error_codes import ErrorCode, get_status_code
from .responses import ErrorDetail


class APIException(Exception):
    """
    Base exception for API errors.

    The registered error handlers catch these and return standardized
    error responses.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        self.trace_id = trace_id
        self.status_code = get_status_code(code)
        super().__init__(message)


class NotFoundError(APIException):
    """
    Resource not found error.

    HTTP Status: 404
    """

    def __init__(
        self,
        resource: str,
        resource_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"

        code_map = {
            "Newsletter issue": ErrorCode.ISSUE_NOT_FOUND,
            "Delivery task": ErrorCode.DELIVERY_TASK_NOT_FOUND,
        }
        super().__init__(code=code_map.get(resource, ErrorCode.NOT_FOUND), message=message, trace_id=trace_id)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(APIException):
    """
    Conflict error (reused key, invalid state).

    HTTP Status: 409
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFLICT,
        trace_id: Optional[str] = None
    ):
        super().__init__(code=code, message=message, trace_id=trace_id)


class UnauthorizedError(APIException):
    """HTTP 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
            trace_id=trace_id
        )


class DatabaseError(APIException):
    """
    Database operation error.

    HTTP Status: 500
    """

    def __init__(
        self,
        message: str = "A database error occurred",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.DATABASE_ERROR,
            message=message,
            trace_id=trace_id
        )
