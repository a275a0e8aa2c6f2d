"""Tests for the WhatsApp, SMS and email channel adapters with a mocked aiohttp session."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from clinicomm.messaging.adapters import BrevoEmailAdapter, TwilioSmsAdapter, WhatsAppAdapter
from clinicomm.messaging.adapters.whatsapp.client import WhatsAppClient
from clinicomm.messaging.adapters.whatsapp.templates import build_template_payload
from clinicomm.messaging.credentials import (
    ChannelContext,
    EmailCredentials,
    SmsCredentials,
    WhatsAppCredentials,
)
from clinicomm.messaging.errors import ProviderCallFailed, ProviderMisconfigured
from clinicomm.messaging.intents import IntentType, MessageIntent, TemplateSpec
from clinicomm.models.enums import Channel


def mock_session(status: int = 200, body=None):
    """aiohttp session double whose post() yields one canned response."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=str(body))

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=ctx)
    return session


def whatsapp_context() -> ChannelContext:
    return ChannelContext(
        tenant_id="clinic-1",
        provider_id="prov-wa",
        channel=Channel.WHATSAPP,
        credentials=WhatsAppCredentials(access_token="tok", phone_number_id="555"),
    )


def sms_context(**overrides) -> ChannelContext:
    credentials = {"account_sid": "AC1", "auth_token": "secret", "from_number": "+15550001"}
    credentials.update(overrides)
    return ChannelContext(
        tenant_id="clinic-1",
        provider_id="prov-sms",
        channel=Channel.SMS,
        credentials=SmsCredentials(**credentials),
    )


def email_context() -> ChannelContext:
    return ChannelContext(
        tenant_id="clinic-1",
        provider_id="prov-mail",
        channel=Channel.EMAIL,
        credentials=EmailCredentials(
            api_key="key", sender_email="desk@clinic.example", sender_name="Desk"
        ),
    )


def text_intent(channel=Channel.WHATSAPP, **kwargs) -> MessageIntent:
    return MessageIntent(type=IntentType.TEXT, channel=channel, to="5215512345678", **kwargs)


class TestWhatsAppPayloads:
    def setup_method(self):
        self.adapter = WhatsAppAdapter(MagicMock(), api_version="v21.0", base_url="https://graph.test")

    def test_text_payload_with_quote(self):
        payload = self.adapter.build_payload(
            text_intent(content="Hola", quoted_message_id="wamid.Q")
        )

        assert payload["type"] == "text"
        assert payload["text"] == {"preview_url": False, "body": "Hola"}
        assert payload["context"] == {"message_id": "wamid.Q"}
        assert payload["messaging_product"] == "whatsapp"

    def test_link_preview_is_opt_in(self):
        payload = self.adapter.build_payload(
            text_intent(content="https://clinic.example/cita", preview_url=True)
        )

        assert payload["text"]["preview_url"] is True

    def test_document_payload_keeps_caption_and_filename(self):
        payload = self.adapter.build_payload(
            MessageIntent(
                type=IntentType.MEDIA,
                channel=Channel.WHATSAPP,
                to="1",
                content="Sus resultados",
                media_url="https://cdn.example/r.pdf",
                media_type="application/pdf",
                filename="r.pdf",
            )
        )

        assert payload["type"] == "document"
        assert payload["document"] == {
            "link": "https://cdn.example/r.pdf",
            "caption": "Sus resultados",
            "filename": "r.pdf",
        }

    def test_audio_payload_has_no_caption(self):
        payload = self.adapter.build_payload(
            MessageIntent(
                type=IntentType.MEDIA,
                channel=Channel.WHATSAPP,
                to="1",
                content="ignored",
                media_url="https://cdn.example/a.ogg",
                media_type="audio/ogg",
            )
        )

        assert payload["audio"] == {"link": "https://cdn.example/a.ogg"}

    def test_reaction_payload(self):
        payload = self.adapter.build_payload(
            MessageIntent(
                type=IntentType.REACTION,
                channel=Channel.WHATSAPP,
                to="1",
                reaction_message_id="wamid.R",
                emoji="",
            )
        )

        assert payload["reaction"] == {"message_id": "wamid.R", "emoji": ""}
        assert "context" not in payload


class TestTemplatePayloads:
    def test_text_header_and_body_parameters(self):
        payload = build_template_payload(
            TemplateSpec(
                name="reminder",
                language="es_MX",
                is_header=True,
                header_type="TEXT",
                header_parameters=["Clínica Sol"],
                body_parameters=["Ana", "10:00"],
            )
        )

        assert payload["language"] == {"code": "es_MX"}
        assert payload["components"][0] == {
            "type": "header",
            "parameters": [{"type": "text", "text": "Clínica Sol"}],
        }
        assert payload["components"][1]["parameters"][1] == {"type": "text", "text": "10:00"}

    def test_media_header_uses_link(self):
        payload = build_template_payload(
            TemplateSpec(
                name="promo",
                is_header=True,
                header_type="image",
                media_url="https://cdn.example/p.png",
            )
        )

        assert payload["components"] == [
            {
                "type": "header",
                "parameters": [{"type": "image", "image": {"link": "https://cdn.example/p.png"}}],
            }
        ]

    def test_authentication_template_repeats_code_in_button(self):
        payload = build_template_payload(
            TemplateSpec(name="otp", category="AUTHENTICATION", body_parameters=["123456"])
        )

        button = payload["components"][-1]
        assert button["type"] == "button"
        assert button["sub_type"] == "url"
        assert button["parameters"] == [{"type": "text", "text": "123456"}]

    def test_template_without_parameters_has_no_components(self):
        assert "components" not in build_template_payload(TemplateSpec(name="hello_world"))


@pytest.mark.asyncio
class TestWhatsAppSend:
    async def test_success_wraps_send_in_typing_indicator(self):
        session = mock_session(200, {"messages": [{"id": "wamid.OK"}]})
        adapter = WhatsAppAdapter(session, api_version="v21.0", base_url="https://graph.test")

        response = await adapter.send(text_intent(content="Hola"), whatsapp_context())

        assert response.success is True
        assert response.provider_message_id == "wamid.OK"
        posted = [call.kwargs["json"] for call in session.post.call_args_list]
        assert [p["type"] for p in posted] == ["typing_indicator", "text", "typing_indicator"]
        assert session.post.call_args_list[1].args[0] == "https://graph.test/v21.0/555/messages"
        assert session.post.call_args_list[1].kwargs["headers"]["Authorization"] == "Bearer tok"

    @pytest.mark.parametrize(
        "error",
        [
            ProviderCallFailed("typing rejected", error_code="131000"),
            TimeoutError(),
            ValueError("non-JSON body"),
        ],
        ids=["provider_error", "timeout", "bad_json"],
    )
    @pytest.mark.parametrize("failing_state", ["typing", "paused"])
    async def test_typing_indicator_failure_does_not_abort_send(self, error, failing_state):
        sent = []

        async def post_message(client, payload):
            sent.append(payload["type"])
            if payload.get("typing_indicator", {}).get("type") == failing_state:
                raise error
            return {"messages": [{"id": "wamid.OK"}]}

        adapter = WhatsAppAdapter(MagicMock())
        with patch.object(WhatsAppClient, "post_message", post_message):
            response = await adapter.send(text_intent(content="Hola"), whatsapp_context())

        assert response.success is True
        assert response.provider_message_id == "wamid.OK"
        assert sent == ["typing_indicator", "text", "typing_indicator"]

    async def test_bulk_send_skips_typing_indicator(self):
        session = mock_session(200, {"messages": [{"id": "wamid.OK"}]})
        adapter = WhatsAppAdapter(session)

        await adapter.send(text_intent(content="Hola", conversational=False), whatsapp_context())

        assert session.post.call_count == 1

    async def test_graph_error_becomes_failure_response(self):
        session = mock_session(
            400, {"error": {"code": 131047, "message": "Re-engagement message"}}
        )
        adapter = WhatsAppAdapter(session)

        response = await adapter.send(text_intent(content="Hola"), whatsapp_context())

        assert response.success is False
        assert response.error_code == "131047"
        assert response.error_message == "Re-engagement message"

    async def test_missing_message_id_returns_none(self):
        adapter = WhatsAppAdapter(mock_session(200, {"messages": []}))

        assert await adapter.send(text_intent(content="x", conversational=False), whatsapp_context()) is None

    async def test_network_error_is_reported(self):
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        adapter = WhatsAppAdapter(session)

        response = await adapter.send(
            text_intent(content="x", conversational=False), whatsapp_context()
        )

        assert response.success is False
        assert response.error_code == "network_error"

    async def test_wrong_credentials_type(self):
        adapter = WhatsAppAdapter(mock_session())

        with pytest.raises(ProviderMisconfigured):
            await adapter.send(text_intent(content="x"), sms_context())


@pytest.mark.asyncio
class TestSmsSend:
    async def test_success_posts_form_with_basic_auth(self):
        session = mock_session(201, {"sid": "SM42", "status": "queued"})
        adapter = TwilioSmsAdapter(session, base_url="https://sms.test")

        response = await adapter.send(
            text_intent(Channel.SMS, content="Hola", media_url="https://cdn/x.png"),
            sms_context(),
        )

        assert response.provider_message_id == "SM42"
        call = session.post.call_args
        assert call.args[0] == "https://sms.test/2010-04-01/Accounts/AC1/Messages.json"
        assert call.kwargs["data"] == {
            "To": "5215512345678",
            "Body": "Hola",
            "From": "+15550001",
            "MediaUrl": "https://cdn/x.png",
        }
        assert call.kwargs["auth"].login == "AC1"

    async def test_messaging_service_takes_precedence_over_sender(self):
        adapter = TwilioSmsAdapter(MagicMock())

        form = adapter.build_form(
            text_intent(Channel.SMS, content="x"), sms_context(messaging_service_sid="MG1").credentials
        )

        assert form["MessagingServiceSid"] == "MG1"
        assert "From" not in form

    async def test_rejection_carries_provider_code(self):
        session = mock_session(400, {"code": 21211, "message": "Invalid 'To' Phone Number"})
        adapter = TwilioSmsAdapter(session)

        response = await adapter.send(text_intent(Channel.SMS, content="x"), sms_context())

        assert response.success is False
        assert response.error_code == "21211"

    async def test_reactions_are_unsupported(self):
        adapter = TwilioSmsAdapter(mock_session())

        response = await adapter.send(
            MessageIntent(
                type=IntentType.REACTION, channel=Channel.SMS, to="1", reaction_message_id="x"
            ),
            sms_context(),
        )

        assert response.success is False
        assert response.error_code == "unsupported"


@pytest.mark.asyncio
class TestEmailSend:
    async def test_success_returns_message_id(self):
        session = mock_session(201, {"messageId": "<abc@smtp>"})
        adapter = BrevoEmailAdapter(session, base_url="https://mail.test")

        response = await adapter.send(
            MessageIntent(
                type=IntentType.TEXT,
                channel=Channel.EMAIL,
                to="ana@example.com",
                subject="Resultados",
                content="Línea 1\n<b>Línea 2</b>",
            ),
            email_context(),
        )

        assert response.provider_message_id == "<abc@smtp>"
        call = session.post.call_args
        assert call.args[0] == "https://mail.test/v3/smtp/email"
        assert call.kwargs["headers"]["api-key"] == "key"
        payload = call.kwargs["json"]
        assert payload["sender"] == {"email": "desk@clinic.example", "name": "Desk"}
        assert payload["to"] == [{"email": "ana@example.com"}]
        assert payload["htmlContent"] == "Línea 1<br>&lt;b&gt;Línea 2&lt;/b&gt;"

    async def test_unauthorized_key(self):
        adapter = BrevoEmailAdapter(mock_session(401, {"code": "unauthorized", "message": "Key not found"}))

        response = await adapter.send(
            MessageIntent(type=IntentType.TEXT, channel=Channel.EMAIL, to="a@b.c", content="x"),
            email_context(),
        )

        assert response.success is False
        assert response.error_code == "unauthorized"
        assert response.error_message == "Key not found"
