"""
Error handling utilities for API routes.

Maps messaging core exceptions onto HTTP status codes in one place so every
route translates them the same way.
"""

from fastapi import HTTPException

from clinicomm.core.logging.logger import get_logger
from clinicomm.messaging.errors import ClinicommError

logger = get_logger(__name__)


def to_http_exception(exc: Exception, operation_name: str) -> HTTPException:
    """
    Translate an exception raised by a service call.

    ClinicommError carries its own status code, ValueError means a bad
    request, anything else is an internal error with a generic detail.
    """
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, ClinicommError):
        logger.warning(f"{operation_name} failed ({exc.status_code}): {exc.message}")
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    if isinstance(exc, ValueError):
        logger.warning(f"Validation error in {operation_name}: {exc}")
        return HTTPException(status_code=400, detail=str(exc))

    logger.error(f"Unexpected error in {operation_name}: {exc}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {operation_name}")
