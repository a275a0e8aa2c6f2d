"""
WhatsApp webhook payload parser.

Walks every entry[].changes[] of a Cloud API webhook body and returns the
typed events it contains, in payload order. Nothing here touches storage.
"""

from typing import Any

from pydantic import ValidationError

from clinicomm.core.logging.logger import get_logger

from .events import (
    MEDIA_MESSAGE_TYPES,
    InboundMessageEvent,
    MessageStatusEvent,
    ReactionEvent,
    TemplateStatusEvent,
    WebhookEvent,
)

logger = get_logger(__name__)

TEMPLATE_STATUS_FIELD = "message_template_status_update"
MESSAGES_FIELD = "messages"


def _contact_name(contacts: list[dict[str, Any]], wa_id: str | None) -> str | None:
    """Profile name of the contact matching wa_id, else of the first contact."""
    for contact in contacts:
        if wa_id and contact.get("wa_id") == wa_id:
            return (contact.get("profile") or {}).get("name")
    if contacts:
        return (contacts[0].get("profile") or {}).get("name")
    return None


def _parse_template_status(value: dict[str, Any]) -> list[WebhookEvent]:
    return [
        TemplateStatusEvent(
            provider_template_id=str(value["message_template_id"]),
            event=value["event"],
            reason=value.get("reason"),
        )
    ]


def _parse_statuses(value: dict[str, Any], phone_number_id: str | None) -> list[WebhookEvent]:
    events: list[WebhookEvent] = []
    for item in value.get("statuses") or []:
        try:
            events.append(
                MessageStatusEvent(
                    phone_number_id=phone_number_id,
                    provider_message_id=item["id"],
                    status=item["status"],
                    recipient_id=item.get("recipient_id"),
                    timestamp=item.get("timestamp"),
                    errors=item.get("errors") or [],
                )
            )
        except (KeyError, ValidationError) as e:
            logger.warning(f"Skipping unparseable status item: {e}")
    return events


def _parse_message(
    message: dict[str, Any],
    phone_number_id: str,
    display_phone_number: str | None,
    contacts: list[dict[str, Any]],
) -> WebhookEvent:
    message_type = message.get("type", "unknown")
    sender = message["from"]

    if message_type == "reaction":
        reaction = message.get("reaction") or {}
        return ReactionEvent(
            phone_number_id=phone_number_id,
            **{"from": sender},
            reacted_message_id=reaction["message_id"],
            emoji=reaction.get("emoji") or "",
        )

    fields: dict[str, Any] = {}
    if message_type == "text":
        fields["text"] = (message.get("text") or {}).get("body")
    elif message_type in MEDIA_MESSAGE_TYPES:
        media = message.get(message_type) or {}
        fields["media_id"] = media.get("id")
        fields["mime_type"] = media.get("mime_type")
        fields["caption"] = media.get("caption")
        fields["filename"] = media.get("filename")
    elif message_type == "location":
        location = message.get("location") or {}
        fields["location_name"] = location.get("name")
        fields["location_address"] = location.get("address")
    elif message_type == "button":
        fields["button_text"] = (message.get("button") or {}).get("text")
    elif message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        fields["interactive_title"] = reply.get("title")

    return InboundMessageEvent(
        phone_number_id=phone_number_id,
        display_phone_number=display_phone_number,
        **{"from": sender},
        profile_name=_contact_name(contacts, sender),
        provider_message_id=message["id"],
        type=message_type,
        timestamp=message.get("timestamp"),
        context_message_id=(message.get("context") or {}).get("id"),
        **fields,
    )


def _parse_messages_change(value: dict[str, Any]) -> list[WebhookEvent]:
    metadata = value.get("metadata") or {}
    phone_number_id = metadata.get("phone_number_id")
    events = _parse_statuses(value, phone_number_id)

    messages = value.get("messages") or []
    if messages and not phone_number_id:
        logger.warning("Messages change without metadata.phone_number_id, skipping")
        return events

    contacts = value.get("contacts") or []
    for message in messages:
        if message.get("status"):
            logger.debug(f"Ignoring outgoing message status on message {message.get('id')}")
            continue
        try:
            events.append(
                _parse_message(
                    message,
                    phone_number_id,
                    metadata.get("display_phone_number"),
                    contacts,
                )
            )
        except (KeyError, ValidationError) as e:
            logger.warning(f"Skipping unparseable message {message.get('id')}: {e}")
    return events


def parse_webhook(payload: dict[str, Any]) -> list[WebhookEvent]:
    """
    Flatten a WhatsApp webhook body into typed events.

    Unknown change fields and malformed items are logged and skipped, so a
    single bad item never hides the rest of the batch.

    Args:
        payload: Decoded JSON body of the webhook POST

    Returns:
        Events in the order they appear in the payload
    """
    events: list[WebhookEvent] = []
    if not isinstance(payload, dict):
        logger.warning(f"Webhook payload is not an object: {type(payload).__name__}")
        return events

    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            field = change.get("field")
            value = change.get("value") or {}
            try:
                if field == TEMPLATE_STATUS_FIELD:
                    events.extend(_parse_template_status(value))
                elif field == MESSAGES_FIELD:
                    events.extend(_parse_messages_change(value))
                else:
                    logger.info(f"Ignoring webhook change field '{field}'")
            except (KeyError, ValidationError) as e:
                logger.warning(f"Skipping unparseable '{field}' change: {e}")

    logger.debug(f"Parsed {len(events)} webhook events")
    return events
