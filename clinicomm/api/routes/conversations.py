"""
Conversation API endpoints.

- GET  /api/conversations: Paginated listing with unread counts
- POST /api/conversations/{conversation_id}/read: Clear the unread list
- POST /api/conversations/{conversation_id}/assign: Change or clear the owner
- GET  /api/conversations/{conversation_id}/whatsapp-window: 24h session window
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from clinicomm.api.dependencies.services import get_store, require_tenant
from clinicomm.api.utils.error_helpers import to_http_exception
from clinicomm.domain.session_window import compute_session_window
from clinicomm.messaging.requests import AssignRequest
from clinicomm.models.enums import Channel
from clinicomm.models.schemas import ConversationPage, SessionWindow
from clinicomm.store.conversation_store import ConversationStore

router = APIRouter(
    prefix="/conversations",
    tags=["Conversations"],
    responses={
        400: {"description": "Bad Request - Conversation cannot be assigned"},
        401: {"description": "Unauthorized - Missing tenant header"},
        404: {"description": "Not Found - Conversation missing"},
    },
)


@router.get("", response_model=ConversationPage, summary="List Conversations")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, description="Matches lead name or phone"),
    status: str = Query("all", description="all, read, unread, active, trashed or blocked"),
    owner_id: str | None = Query(None),
    tenant_id: str = Depends(require_tenant),
    store: ConversationStore = Depends(get_store),
) -> ConversationPage:
    try:
        return await store.list_conversations(
            tenant_id,
            page=page,
            limit=limit,
            search=search,
            status=status,
            owner_id=owner_id,
        )
    except Exception as e:
        raise to_http_exception(e, "list conversations") from e


@router.post("/{conversation_id}/read", summary="Mark Conversation Read")
async def mark_conversation_read(
    conversation_id: str,
    tenant_id: str = Depends(require_tenant),
    store: ConversationStore = Depends(get_store),
) -> dict:
    conversation = await store.get_conversation(tenant_id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    cleared = await store.mark_read(tenant_id, conversation_id)
    return {"success": True, "cleared": cleared}


@router.post("/{conversation_id}/assign", summary="Assign Conversation")
async def assign_conversation(
    conversation_id: str,
    request: AssignRequest,
    tenant_id: str = Depends(require_tenant),
    store: ConversationStore = Depends(get_store),
) -> dict:
    """Set the clinic user who receives this conversation's incoming messages."""
    try:
        assigned = await store.assign_owner(tenant_id, conversation_id, request.owner_id)
    except Exception as e:
        raise to_http_exception(e, "assign conversation") from e
    if assigned is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    conversation, previous_owner_id = assigned
    changed = previous_owner_id != request.owner_id
    if not changed:
        message = "Conversation already assigned to this owner"
    elif request.owner_id:
        message = "Conversation assigned successfully"
    else:
        message = "Conversation unassigned successfully"
    return {
        "success": True,
        "message": message,
        "data": {
            "conversation_id": conversation.id,
            "owner_id": conversation.owner_id,
            "previous_owner_id": previous_owner_id,
            "changed": changed,
        },
    }


@router.get(
    "/{conversation_id}/whatsapp-window",
    response_model=SessionWindow,
    response_model_by_alias=True,
    summary="WhatsApp Session Window",
)
async def whatsapp_session_window(
    conversation_id: str,
    tenant_id: str = Depends(require_tenant),
    store: ConversationStore = Depends(get_store),
) -> SessionWindow:
    """Whether free-form WhatsApp messages may be sent, and for how long (HH:MM)."""
    conversation = await store.get_conversation(tenant_id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    last_incoming_at = await store.latest_incoming_at(conversation_id, Channel.WHATSAPP)
    return compute_session_window(last_incoming_at)
