"""
Service dependency injection for API routes.

Every service is built once by the messaging plugin and stored on app.state;
these helpers only fetch it, so tests can swap app.state entries freely.
"""

from fastapi import HTTPException, Request

from clinicomm.api.controllers.webhook_controller import WebhookController
from clinicomm.messaging.dispatcher import OutboundDispatcher
from clinicomm.messaging.reactions import ReactionService
from clinicomm.realtime.hub import ConnectionHub
from clinicomm.store.conversation_store import ConversationStore


def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise RuntimeError(f"app.state.{name} is not initialised - is MessagingPlugin installed?")
    return service


async def get_store(request: Request) -> ConversationStore:
    return _state(request, "conversation_store")


async def get_dispatcher(request: Request) -> OutboundDispatcher:
    return _state(request, "outbound_dispatcher")


async def get_reaction_service(request: Request) -> ReactionService:
    return _state(request, "reaction_service")


async def get_webhook_controller(request: Request) -> WebhookController:
    return _state(request, "webhook_controller")


def get_connection_hub(app) -> ConnectionHub:
    """Hub lookup for WebSocket routes, which receive the app rather than a Request."""
    hub = getattr(app.state, "connection_hub", None)
    if hub is None:
        raise RuntimeError("app.state.connection_hub is not initialised")
    return hub


async def require_tenant(request: Request) -> str:
    """
    Caller's clinic id, set by TenantContextMiddleware from X-Tenant-ID.

    Raises:
        HTTPException 401: If the header was absent or malformed
    """
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(status_code=401, detail="X-Tenant-ID header is required")
    return tenant_id


async def optional_user(request: Request) -> str | None:
    return getattr(request.state, "user_id", None)
