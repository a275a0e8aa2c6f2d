"""Middleware module for the clinicomm API."""

from .error_handler import ErrorHandlerMiddleware
from .request_logging import RequestLoggingMiddleware
from .tenant import TenantContextMiddleware

__all__ = ["ErrorHandlerMiddleware", "RequestLoggingMiddleware", "TenantContextMiddleware"]
