"""
Re-hosting of inbound WhatsApp media.

WhatsApp media URLs expire and require the clinic's token, so incoming media
is downloaded once and stored through a MediaUploader that returns a stable
URL.
"""

import asyncio
import re
import uuid
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import aiohttp

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger
from clinicomm.messaging.adapters.whatsapp.client import WhatsAppClient
from clinicomm.messaging.credentials import WhatsAppCredentials
from clinicomm.messaging.errors import ProviderCallFailed

CONTENT_DISPOSITION_FILENAME = re.compile(
    r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", re.IGNORECASE
)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/heic": "heic",
    "image/heif": "heif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/ogg": "ogg",
    "application/pdf": "pdf",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def extension_for(mime_type: str | None) -> str:
    if not mime_type:
        return "bin"
    base = mime_type.split(";", 1)[0].strip().lower()
    if base in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[base]
    subtype = base.split("/", 1)[-1]
    return subtype if subtype.isalnum() else "bin"


def resolve_filename(
    media_id: str,
    *,
    content_disposition: str | None = None,
    metadata: dict | None = None,
    url: str | None = None,
    mime_type: str | None = None,
) -> str:
    """
    Pick a filename for downloaded media.

    Order: content-disposition header, metadata filename/file_name/name,
    last URL path segment, then whatsapp_media_<id>.<ext>.
    """
    if content_disposition:
        match = CONTENT_DISPOSITION_FILENAME.search(content_disposition)
        if match:
            return unquote(match.group(1).strip())

    for key in ("filename", "file_name", "name"):
        value = (metadata or {}).get(key)
        if value:
            return str(value)

    if url:
        segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
        if segment:
            return unquote(segment)

    return f"whatsapp_media_{media_id}.{extension_for(mime_type)}"


def ensure_extension(filename: str, mime_type: str | None) -> str:
    """Append the MIME type's extension when filename has none."""
    if Path(filename).suffix:
        return filename
    return f"{filename}.{extension_for(mime_type)}"


class MediaUploader(Protocol):
    """Stores a binary and returns the URL it is served from."""

    async def upload(self, data: bytes, filename: str, content_type: str | None) -> str:
        ...


class LocalMediaUploader:
    """Writes media under a local directory served at base_url."""

    def __init__(self, media_dir: str | None = None, base_url: str | None = None):
        self.media_dir = Path(media_dir or settings.media_dir)
        self.base_url = (base_url or settings.media_base_url).rstrip("/")

    def _stored_name(self, filename: str) -> str:
        safe = _UNSAFE_FILENAME_CHARS.sub("_", Path(filename).name).strip("._") or "media"
        return f"{uuid.uuid4().hex[:12]}_{safe}"

    async def upload(self, data: bytes, filename: str, content_type: str | None) -> str:
        name = self._stored_name(filename)
        path = self.media_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_file = path.with_suffix(path.suffix + ".tmp")
        await asyncio.to_thread(temp_file.write_bytes, data)
        await asyncio.to_thread(temp_file.replace, path)
        return f"{self.base_url}/{name}"


class MediaRehoster:
    """
    Download WhatsApp media by id and store it through an uploader.

    Every failure (Graph error, network error, timeout, storage error) is
    logged and yields None so the message is still persisted without media.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        uploader: MediaUploader,
        timeout: float | None = None,
        api_version: str | None = None,
        base_url: str | None = None,
    ):
        self.session = session
        self.uploader = uploader
        self.timeout = timeout or settings.media_timeout_seconds
        self.api_version = api_version
        self.base_url = base_url
        self.logger = get_logger(__name__)

    async def rehost(
        self,
        media_id: str,
        credentials: WhatsAppCredentials,
        *,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> str | None:
        """
        Returns:
            Public URL of the stored copy, or None on any failure
        """
        client = WhatsAppClient(
            self.session,
            access_token=credentials.access_token,
            phone_number_id=credentials.phone_number_id,
            api_version=self.api_version,
            base_url=self.base_url,
        )
        try:
            async with asyncio.timeout(self.timeout):
                info = await client.get_media_info(media_id)
                url = info.get("url")
                if not url:
                    self.logger.warning(f"No download URL for media {media_id}")
                    return None

                data, headers = await client.download(url)
                content_type = (
                    headers.get("Content-Type") or info.get("mime_type") or mime_type
                )
                metadata = {"filename": filename, **info} if filename else info
                name = resolve_filename(
                    media_id,
                    content_disposition=headers.get("Content-Disposition"),
                    metadata=metadata,
                    url=url,
                    mime_type=info.get("mime_type") or mime_type,
                )
                name = ensure_extension(name, content_type)
                stored_url = await self.uploader.upload(data, name, content_type)
        except TimeoutError:
            self.logger.error(f"Media {media_id} re-host timed out after {self.timeout}s")
            return None
        except ProviderCallFailed as e:
            self.logger.error(f"Media {media_id} download failed: {e.message}")
            return None
        except OSError as e:
            self.logger.error(f"Media {media_id} could not be stored: {e}")
            return None
        except Exception as e:
            self.logger.error(f"Media {media_id} re-host failed: {e}", exc_info=True)
            return None

        self.logger.info(f"Re-hosted media {media_id} ({len(data)} bytes) at {stored_url}")
        return stored_url
