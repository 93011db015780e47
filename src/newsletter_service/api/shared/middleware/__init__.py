"""
Shared API Middleware

Cross-cutting concerns for all endpoints:
- Error handling with standardized responses
- Trace ID propagation
- Operator authentication
"""

from .auth import AuthMiddleware, get_current_operator, is_auth_required, require_operator
from .error_handler import register_error_handlers
from .trace import TraceMiddleware, get_request_trace_id, get_trace_id

__all__ = [
    # Error handling
    "register_error_handlers",
    # Trace
    "TraceMiddleware",
    "get_trace_id",
    "get_request_trace_id",
    # Auth
    "AuthMiddleware",
    "get_current_operator",
    "require_operator",
    "is_auth_required",
]
