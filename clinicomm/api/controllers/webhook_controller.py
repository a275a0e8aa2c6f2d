"""
Webhook controller.

Routes handle HTTP concerns (query params, JSON parsing); the controller
verifies subscriptions and hands payloads to the normalizer in background
tasks so the provider gets its 200 immediately.
"""

import asyncio
from typing import Any

from fastapi import HTTPException
from fastapi.responses import PlainTextResponse

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger
from clinicomm.processors.normalizer import WebhookNormalizer


class WebhookController:
    """
    Verification and background processing of WhatsApp webhooks.

    Background tasks are kept in a set until they finish so they are not
    garbage collected mid-flight, and can be awaited on shutdown.
    """

    def __init__(self, normalizer: WebhookNormalizer, verify_token: str | None = None):
        self.normalizer = normalizer
        self.verify_token = verify_token if verify_token is not None else settings.whatsapp_verify_token
        self.logger = get_logger(__name__)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def verify_webhook(
        self,
        hub_mode: str | None,
        hub_verify_token: str | None,
        hub_challenge: str | None,
    ) -> PlainTextResponse:
        """
        Answer Meta's subscription challenge.

        Raises:
            HTTPException 403: If the mode is not subscribe or the token does not match
        """
        if hub_mode == "subscribe" and self.verify_token and hub_verify_token == self.verify_token:
            self.logger.info("WhatsApp webhook verification successful")
            return PlainTextResponse(content=hub_challenge or "")

        self.logger.error(f"WhatsApp webhook verification failed (mode={hub_mode!r})")
        raise HTTPException(status_code=403, detail="Forbidden")

    def process_webhook(self, payload: dict[str, Any]) -> dict[str, bool]:
        """Schedule processing of a webhook body and acknowledge it."""
        task = asyncio.create_task(self._process_webhook_async(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.logger.debug("Webhook queued for background processing")
        return {"success": True}

    async def _process_webhook_async(self, payload: dict[str, Any]) -> None:
        try:
            await self.normalizer.process(payload)
        except Exception as e:
            # Nothing can be reported to the provider at this point
            self.logger.error(f"Webhook processing crashed: {e}", exc_info=True)

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight webhook tasks, used on shutdown."""
        if not self._tasks:
            return
        self.logger.info(f"Waiting for {len(self._tasks)} webhook tasks")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            self.logger.warning(f"Cancelled {len(pending)} unfinished webhook tasks")

    def get_health_status(self) -> dict[str, Any]:
        return {
            "verify_token_configured": bool(self.verify_token),
            "pending_tasks": self.pending_tasks,
        }
