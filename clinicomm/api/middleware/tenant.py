"""
Tenant context middleware.

Reads the caller's clinic and user from the X-Tenant-ID / X-User-ID headers
set by the upstream auth layer and puts them into the logging context and
request.state. Authentication itself happens upstream.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from clinicomm.core.logging.context import clear_request_context, set_request_context
from clinicomm.core.logging.logger import get_logger

logger = get_logger(__name__)

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Propagate tenant and user identity from headers into the request context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        tenant_id = request.headers.get(TENANT_HEADER) or None
        user_id = request.headers.get(USER_HEADER) or None

        if tenant_id and not self._is_valid_id(tenant_id):
            logger.warning(f"Ignoring malformed tenant id header: {tenant_id!r}")
            tenant_id = None

        request.state.tenant_id = tenant_id
        request.state.user_id = user_id
        clear_request_context()
        set_request_context(tenant_id=tenant_id, user_id=user_id)

        try:
            return await call_next(request)
        finally:
            clear_request_context()

    def _is_valid_id(self, value: str) -> bool:
        if not 1 <= len(value) <= 64:
            return False
        return value.replace("_", "").replace("-", "").isalnum()
