"""
Request and response logging middleware.

Logs method, path, status and timing with the tenant/user prefix set by
TenantContextMiddleware. Webhook bodies are never logged.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every non-health request and its response with timing."""

    SKIP_PATHS = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico")

    def __init__(self, app, log_requests: bool = True, log_responses: bool = True):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.sensitive_headers = {
            "authorization",
            "x-api-key",
            "cookie",
            "set-cookie",
            "x-hub-signature-256",
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        logger = get_logger(__name__)
        skip = self._should_skip_logging(request.url.path)

        if self.log_requests and not skip:
            safe_headers = {
                k: v
                for k, v in request.headers.items()
                if k.lower() not in self.sensitive_headers
            }
            logger.info(
                f"Incoming {request.method} {request.url.path}",
                extra={
                    "request": {
                        "query_params": dict(request.query_params),
                        "headers": safe_headers,
                        "client_host": request.client.host if request.client else "unknown",
                        "is_webhook": request.url.path.startswith("/webhook/"),
                    }
                },
            )

        response = await call_next(request)
        process_time_ms = round((time.time() - start_time) * 1000, 2)

        if settings.is_development:
            response.headers["X-Process-Time"] = str(process_time_ms)

        if self.log_responses and not skip:
            status_code = response.status_code
            if status_code >= 500:
                log = logger.error
            elif status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                f"Response {status_code} for {request.method} {request.url.path} "
                f"({process_time_ms}ms)"
            )

        return response

    def _should_skip_logging(self, path: str) -> bool:
        return path.startswith(self.SKIP_PATHS)
