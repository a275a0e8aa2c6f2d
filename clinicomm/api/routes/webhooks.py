"""
WhatsApp webhook routes.

Routes handle HTTP concerns (query parameters, JSON parsing) and delegate to
the WebhookController held on app.state.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from clinicomm.api.controllers.webhook_controller import WebhookController
from clinicomm.api.dependencies.services import get_webhook_controller
from clinicomm.core.logging.logger import get_logger

router = APIRouter(
    prefix="/webhook",
    tags=["Webhooks"],
    responses={
        400: {"description": "Bad Request - Invalid webhook payload"},
        403: {"description": "Forbidden - Webhook verification failed"},
        500: {"description": "Internal Server Error"},
    },
)


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    controller: WebhookController = Depends(get_webhook_controller),
):
    """
    Meta subscription handshake.

    Returns the challenge as plain text when hub.mode is "subscribe" and the
    token matches WHATSAPP_VERIFY_TOKEN, otherwise 403.
    """
    return controller.verify_webhook(hub_mode, hub_verify_token, hub_challenge)


@router.post("/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    controller: WebhookController = Depends(get_webhook_controller),
) -> dict[str, bool]:
    """Acknowledge immediately; events are processed in the background."""
    try:
        payload = await request.json()
    except ValueError as e:
        logger = get_logger(__name__)
        logger.error(f"Failed to parse webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    return controller.process_webhook(payload)
