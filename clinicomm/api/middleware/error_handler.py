"""
Global error handling middleware with tenant and context awareness.

Turns unhandled exceptions into structured JSON 500 responses; webhook paths
get their own shape so providers see a consistent body.
"""

import time
import traceback
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catches unhandled exceptions and answers with a JSON 500.

    Debug details (exception type, message, traceback) are only included in
    development.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except HTTPException as http_exc:
            self._log_http_exception(request, http_exc)
            raise

        except Exception as exc:
            return self._handle_unexpected_exception(request, exc)

    def _log_http_exception(self, request: Request, exc: HTTPException) -> None:
        logger = get_logger(__name__)
        logger.warning(
            f"HTTP {exc.status_code} - {request.method} {request.url.path} - "
            f"Detail: {exc.detail}"
        )

    def _handle_unexpected_exception(self, request: Request, exc: Exception) -> JSONResponse:
        logger = get_logger(__name__)
        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )

        if self._is_webhook_endpoint(request.url.path):
            return self._create_webhook_error_response(exc)
        return self._create_api_error_response(exc)

    def _is_webhook_endpoint(self, path: str) -> bool:
        return path.startswith("/webhook/")

    def _create_webhook_error_response(self, exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "success": False,
            "message": "Webhook processing failed",
            "type": "webhook_error",
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        return JSONResponse(status_code=500, content=error_response)

    def _create_api_error_response(self, exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=error_response)
