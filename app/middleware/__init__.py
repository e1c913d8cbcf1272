"""
미들웨어 패키지
"""
from .error_middleware import ErrorHandlingMiddleware, RequestBodyCaptureMiddleware, register_exception_handlers
from .logging_middleware import LoggingMiddleware
from .rate_limit_middleware import RateLimitMiddleware

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestBodyCaptureMiddleware",
    "LoggingMiddleware",
    "RateLimitMiddleware",
    "register_exception_handlers",
]
