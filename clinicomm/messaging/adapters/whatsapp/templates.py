"""
Template-to-component mapping for WhatsApp template sends.
"""

from typing import Any

from ...intents import TemplateSpec

MEDIA_HEADER_TYPES = {"image", "video", "document"}


def _text_parameters(values: list[str]) -> list[dict[str, str]]:
    return [{"type": "text", "text": str(value)} for value in values]


def build_template_components(template: TemplateSpec) -> list[dict[str, Any]]:
    """
    Assemble header, body and button components for a template send.

    - Header: only for templates declaring a header. Text headers take the
      header parameters; media headers link the caller-supplied media URL.
    - Body: when body parameters were given.
    - Button: authentication templates repeat the body parameters (the code)
      in their URL button.
    """
    components: list[dict[str, Any]] = []
    header_type = (template.header_type or "").lower()

    if template.is_header and header_type:
        if header_type == "text":
            if template.header_parameters:
                components.append(
                    {
                        "type": "header",
                        "parameters": _text_parameters(template.header_parameters),
                    }
                )
        elif header_type in MEDIA_HEADER_TYPES and template.media_url:
            components.append(
                {
                    "type": "header",
                    "parameters": [
                        {"type": header_type, header_type: {"link": template.media_url}}
                    ],
                }
            )

    body_parameters = _text_parameters(template.body_parameters)
    if body_parameters:
        components.append({"type": "body", "parameters": body_parameters})

    if (template.category or "").lower() == "authentication":
        components.append(
            {
                "type": "button",
                "sub_type": "url",
                "index": "0",
                "parameters": body_parameters,
            }
        )

    return components


def build_template_payload(template: TemplateSpec) -> dict[str, Any]:
    """Build the "template" object of a WhatsApp message payload."""
    payload: dict[str, Any] = {
        "name": template.name,
        "language": {"code": template.language or "en_US"},
    }
    components = build_template_components(template)
    if components:
        payload["components"] = components
    return payload
