"""
WhatsApp Cloud API HTTP client.

Thin wrapper over an injected aiohttp session: builds Graph URLs, adds the
bearer token and converts HTTP failures into ProviderCallFailed carrying the
Graph error code.
"""

from typing import Any

import aiohttp

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger

from ...errors import ProviderCallFailed


class WhatsAppUrlBuilder:
    """Builds URLs for WhatsApp Cloud API endpoints."""

    def __init__(self, base_url: str, api_version: str, phone_number_id: str):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.phone_number_id = phone_number_id

    def get_messages_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    def get_media_url(self, media_id: str) -> str:
        return f"{self.base_url}/{self.api_version}/{media_id}"


def _graph_error(body: Any) -> tuple[str | None, str | None]:
    """Extract (code, message) from a Graph API error body."""
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        code = error.get("code")
        return (str(code) if code is not None else None, error.get("message"))
    return None, None


class WhatsAppClient:
    """
    WhatsApp Cloud API client bound to one phone-number id.

    The aiohttp session is owned by the application lifespan and injected here;
    the client never creates or closes sessions.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        access_token: str,
        phone_number_id: str,
        api_version: str | None = None,
        base_url: str | None = None,
    ):
        self.session = session
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.logger = get_logger(__name__)
        self.url_builder = WhatsAppUrlBuilder(
            base_url or settings.whatsapp_base_url,
            api_version or settings.whatsapp_api_version,
            phone_number_id,
        )

    def _get_headers(self, include_content_type: bool = True) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if include_content_type:
            headers["Content-Type"] = "application/json"
        return headers

    async def _raise_for_response(
        self, response: aiohttp.ClientResponse, url: str
    ) -> None:
        if response.status < 400:
            return
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = await response.text()
        code, message = _graph_error(body)

        if response.status == 401:
            self.logger.error(
                f"🚨 WhatsApp access token rejected for phone id {self.phone_number_id} "
                f"(401). Update the provider credentials."
            )
        else:
            self.logger.error(
                f"WhatsApp HTTP {response.status} for phone id {self.phone_number_id}: {body}"
            )
            self.logger.debug(f"Failed URL: {url}")

        raise ProviderCallFailed(
            message or f"WhatsApp API returned HTTP {response.status}",
            error_code=code or str(response.status),
            http_status=response.status,
        )

    async def post_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST a payload to the messages endpoint.

        Raises:
            ProviderCallFailed: For HTTP errors and transport failures
        """
        url = self.url_builder.get_messages_url()
        self.logger.debug(f"Sending WhatsApp payload to {url}: {payload}")
        try:
            async with self.session.post(
                url, headers=self._get_headers(), json=payload
            ) as response:
                await self._raise_for_response(response, url)
                data = await response.json(content_type=None)
                self.logger.debug(f"Response: {data}")
                return data or {}
        except aiohttp.ClientError as err:
            self.logger.error(
                f"WhatsApp request failed for phone id {self.phone_number_id}: {err}"
            )
            raise ProviderCallFailed(str(err), error_code="network_error") from err

    async def get_media_info(self, media_id: str) -> dict[str, Any]:
        """
        Fetch media metadata (url, mime_type, file_size, sha256).

        Raises:
            ProviderCallFailed: For HTTP errors and transport failures
        """
        url = self.url_builder.get_media_url(media_id)
        try:
            async with self.session.get(url, headers=self._get_headers()) as response:
                await self._raise_for_response(response, url)
                return await response.json(content_type=None) or {}
        except aiohttp.ClientError as err:
            raise ProviderCallFailed(str(err), error_code="network_error") from err

    async def download(self, url: str) -> tuple[bytes, dict[str, str]]:
        """
        Download a media binary from a lookaside URL.

        Returns:
            Tuple of (content, response headers)
        """
        chunks: list[bytes] = []
        try:
            async with self.session.get(
                url, headers=self._get_headers(include_content_type=False)
            ) as response:
                await self._raise_for_response(response, url)
                async for chunk in response.content.iter_chunked(8192):
                    chunks.append(chunk)
                return b"".join(chunks), dict(response.headers)
        except aiohttp.ClientError as err:
            raise ProviderCallFailed(str(err), error_code="network_error") from err
