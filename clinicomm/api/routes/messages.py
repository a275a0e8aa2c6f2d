"""
Messaging API endpoints.

- POST /api/messages/send: Send a message on any channel
- POST /api/messages/reaction: Toggle the caller's reaction on a message
- GET  /api/messages/{conversation_id}: Paginated history grouped by date

Router configuration:
- Prefix: /messages
- Tags: ["Messages"]
- Full URL: /api/messages/ (when included with /api prefix)
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinicomm.api.dependencies.services import (
    get_dispatcher,
    get_reaction_service,
    get_store,
    optional_user,
    require_tenant,
)
from clinicomm.api.utils.error_helpers import to_http_exception
from clinicomm.core.logging.logger import get_logger
from clinicomm.messaging.dispatcher import OutboundDispatcher
from clinicomm.messaging.reactions import ReactionService
from clinicomm.messaging.requests import ReactionRequest, SendRequest
from clinicomm.models.schemas import MessageHistoryPage, PopulatedMessage
from clinicomm.store.conversation_store import ConversationStore

router = APIRouter(
    prefix="/messages",
    tags=["Messages"],
    responses={
        400: {"description": "Bad Request - Missing fields or misconfigured provider"},
        401: {"description": "Unauthorized - Missing tenant header"},
        403: {"description": "Forbidden - Record belongs to another clinic"},
        404: {"description": "Not Found - Conversation, provider or message missing"},
        500: {"description": "Internal Server Error"},
    },
)


@router.post(
    "/send",
    response_model=PopulatedMessage,
    summary="Send Message",
    description="Persist and send a message through the conversation's channel provider",
)
async def send_message(
    request: SendRequest,
    tenant_id: str = Depends(require_tenant),
    user_id: str | None = Depends(optional_user),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> PopulatedMessage:
    """
    Send a message and return it populated.

    A provider failure does not fail the request: the message comes back with
    status "failed" and the provider's error code and message.
    """
    logger = get_logger(__name__)
    try:
        message = await dispatcher.dispatch(request, tenant_id, user_id)
    except Exception as e:
        raise to_http_exception(e, "send message") from e

    logger.info(f"Send request finished with status {message.status.value}")
    return message


@router.post(
    "/reaction",
    summary="Toggle Reaction",
    description="Add, replace or remove the caller's reaction on a WhatsApp message",
)
async def toggle_reaction(
    request: ReactionRequest,
    tenant_id: str = Depends(require_tenant),
    user_id: str | None = Depends(optional_user),
    reactions: ReactionService = Depends(get_reaction_service),
) -> dict[str, Any]:
    try:
        return await reactions.toggle(request, tenant_id, user_id)
    except Exception as e:
        raise to_http_exception(e, "toggle reaction") from e


@router.get(
    "/{conversation_id}",
    response_model=MessageHistoryPage,
    summary="Conversation History",
    description="Newest page first; groups ordered oldest date first",
)
async def get_conversation_messages(
    conversation_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    tenant_id: str = Depends(require_tenant),
    store: ConversationStore = Depends(get_store),
) -> MessageHistoryPage:
    conversation = await store.get_conversation(tenant_id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await store.grouped_history(tenant_id, conversation_id, page=page, limit=limit)
