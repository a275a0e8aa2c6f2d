"""Tests for flattening WhatsApp webhook bodies into typed events."""

from datetime import UTC, datetime

from clinicomm.webhooks import (
    InboundMessageEvent,
    MessageStatusEvent,
    ReactionEvent,
    TemplateStatusEvent,
    parse_webhook,
)


def messages_change(value: dict) -> dict:
    value.setdefault("messaging_product", "whatsapp")
    value.setdefault(
        "metadata", {"display_phone_number": "15550001111", "phone_number_id": "1234567890"}
    )
    return {"object": "whatsapp_business_account", "entry": [{"id": "WABA", "changes": [{"field": "messages", "value": value}]}]}


def test_template_status_change():
    events = parse_webhook(
        {
            "entry": [
                {
                    "changes": [
                        {
                            "field": "message_template_status_update",
                            "value": {
                                "event": "APPROVED",
                                "message_template_id": 987,
                                "message_template_name": "appointment_reminder",
                                "reason": "NONE",
                            },
                        }
                    ]
                }
            ]
        }
    )

    assert len(events) == 1
    assert isinstance(events[0], TemplateStatusEvent)
    assert events[0].provider_template_id == "987"
    assert events[0].event == "APPROVED"


def test_status_items_keep_errors_and_timestamp():
    events = parse_webhook(
        messages_change(
            {
                "statuses": [
                    {
                        "id": "wamid.A",
                        "status": "FAILED",
                        "timestamp": "1700000000",
                        "recipient_id": "5215512345678",
                        "errors": [{"code": 131026, "title": "Message undeliverable"}],
                    }
                ]
            }
        )
    )

    event = events[0]
    assert isinstance(event, MessageStatusEvent)
    assert event.status == "failed"
    assert event.phone_number_id == "1234567890"
    assert event.timestamp == datetime.fromtimestamp(1700000000, tz=UTC)
    assert event.errors[0].code == 131026
    assert event.errors[0].description == "Message undeliverable"


def test_text_message_with_contact_and_context():
    events = parse_webhook(
        messages_change(
            {
                "contacts": [{"profile": {"name": "Ana"}, "wa_id": "5215512345678"}],
                "messages": [
                    {
                        "from": "5215512345678",
                        "id": "wamid.IN1",
                        "timestamp": "1700000100",
                        "type": "text",
                        "text": {"body": "Hola, ¿tienen cita?"},
                        "context": {"from": "15550001111", "id": "wamid.OUT1"},
                    }
                ],
            }
        )
    )

    event = events[0]
    assert isinstance(event, InboundMessageEvent)
    assert event.from_ == "5215512345678"
    assert event.profile_name == "Ana"
    assert event.content == "Hola, ¿tienen cita?"
    assert event.context_message_id == "wamid.OUT1"
    assert event.has_media is False


def test_media_message_uses_caption_as_content():
    event = parse_webhook(
        messages_change(
            {
                "messages": [
                    {
                        "from": "5215512345678",
                        "id": "wamid.IMG",
                        "type": "document",
                        "document": {
                            "id": "media-1",
                            "mime_type": "application/pdf",
                            "caption": "Mis estudios",
                            "filename": "estudios.pdf",
                        },
                    }
                ]
            }
        )
    )[0]

    assert event.has_media is True
    assert event.media_id == "media-1"
    assert event.filename == "estudios.pdf"
    assert event.content == "Mis estudios"
    assert event.profile_name is None


def test_location_and_interactive_content():
    events = parse_webhook(
        messages_change(
            {
                "messages": [
                    {
                        "from": "1",
                        "id": "wamid.LOC",
                        "type": "location",
                        "location": {"name": "Clínica Sol", "address": "Av. Reforma 1"},
                    },
                    {
                        "from": "1",
                        "id": "wamid.BTN",
                        "type": "interactive",
                        "interactive": {"type": "button_reply", "button_reply": {"id": "b1", "title": "Confirmar"}},
                    },
                ]
            }
        )
    )

    assert events[0].content == "Clínica Sol, Av. Reforma 1"
    assert events[1].content == "Confirmar"


def test_reaction_message_becomes_reaction_event():
    event = parse_webhook(
        messages_change(
            {
                "messages": [
                    {
                        "from": "5215512345678",
                        "id": "wamid.R",
                        "type": "reaction",
                        "reaction": {"message_id": "wamid.OUT1"},
                    }
                ]
            }
        )
    )[0]

    assert isinstance(event, ReactionEvent)
    assert event.reacted_message_id == "wamid.OUT1"
    assert event.emoji == ""


def test_malformed_items_do_not_hide_the_rest():
    events = parse_webhook(
        messages_change(
            {
                "statuses": [{"status": "sent"}, {"id": "wamid.OK", "status": "sent"}],
                "messages": [
                    {"id": "wamid.NOFROM", "type": "text"},
                    {"from": "1", "id": "wamid.GOOD", "type": "text", "text": {"body": "hi"}},
                ],
            }
        )
    )

    assert [e.kind for e in events] == ["message_status", "inbound_message"]
    assert events[1].provider_message_id == "wamid.GOOD"


def test_messages_without_phone_number_id_are_skipped():
    payload = messages_change(
        {"messages": [{"from": "1", "id": "wamid.X", "type": "text", "text": {"body": "hi"}}]}
    )
    payload["entry"][0]["changes"][0]["value"]["metadata"] = {}

    assert parse_webhook(payload) == []


def test_unknown_fields_and_non_objects():
    assert parse_webhook({"entry": [{"changes": [{"field": "account_update", "value": {}}]}]}) == []
    assert parse_webhook([]) == []
    assert parse_webhook({}) == []
