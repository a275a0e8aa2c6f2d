"""Tests for inbound media filename resolution and re-hosting."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from clinicomm.messaging.credentials import WhatsAppCredentials
from clinicomm.messaging.errors import ProviderCallFailed
from clinicomm.webhooks import LocalMediaUploader, MediaRehoster, resolve_filename
from clinicomm.webhooks.media import ensure_extension, extension_for

CREDENTIALS = WhatsAppCredentials(access_token="tok", phone_number_id="555")


class TestResolveFilename:
    def test_content_disposition_wins(self):
        name = resolve_filename(
            "m1",
            content_disposition='attachment; filename="receta.pdf"',
            metadata={"filename": "other.pdf"},
            url="https://lookaside.example/path/file.bin",
        )
        assert name == "receta.pdf"

    def test_encoded_content_disposition(self):
        name = resolve_filename("m1", content_disposition="attachment; filename*=UTF-8''mi%20receta.pdf")
        assert name == "mi receta.pdf"

    def test_metadata_keys_in_order(self):
        assert resolve_filename("m1", metadata={"file_name": "a.png", "name": "b.png"}) == "a.png"
        assert resolve_filename("m1", metadata={"name": "b.png"}) == "b.png"

    def test_url_segment(self):
        assert resolve_filename("m1", url="https://cdn.example/x/photo%201.jpg?token=1") == "photo 1.jpg"

    def test_fallback_uses_mime_extension(self):
        assert resolve_filename("m1", mime_type="image/jpeg") == "whatsapp_media_m1.jpg"
        assert resolve_filename("m2", mime_type="audio/ogg; codecs=opus") == "whatsapp_media_m2.ogg"
        assert resolve_filename("m3") == "whatsapp_media_m3.bin"

    def test_extension_for_unknown_subtype(self):
        assert extension_for("application/vnd.ms-excel") == "bin"
        assert extension_for("video/quicktime") == "quicktime"

    def test_ensure_extension_only_adds_missing_suffix(self):
        assert ensure_extension("attachments", "image/jpeg") == "attachments.jpg"
        assert ensure_extension("receta.pdf", "image/jpeg") == "receta.pdf"
        assert ensure_extension("blob", None) == "blob.bin"


@pytest.mark.asyncio
async def test_local_uploader_writes_file(tmp_path):
    uploader = LocalMediaUploader(media_dir=str(tmp_path), base_url="/media/")

    url = await uploader.upload(b"\x89PNG", "../../etc/foto final.png", "image/png")

    assert url.startswith("/media/")
    stored = tmp_path / url.rsplit("/", 1)[-1]
    assert stored.read_bytes() == b"\x89PNG"
    assert stored.name.endswith("_foto_final.png")
    assert not list(tmp_path.glob("*.tmp"))


def graph_client(info=None, download=None):
    client = MagicMock()
    client.get_media_info = AsyncMock(return_value=info)
    client.download = AsyncMock(return_value=download)
    return client


@pytest.mark.asyncio
class TestMediaRehoster:
    async def test_rehost_uploads_with_resolved_name(self):
        uploader = MagicMock()
        uploader.upload = AsyncMock(return_value="https://files.example/abc_photo.jpg")
        client = graph_client(
            info={"url": "https://lookaside.example/media?mid=1", "mime_type": "image/jpeg"},
            download=(b"jpeg-bytes", {"Content-Type": "image/jpeg"}),
        )
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            url = await rehoster.rehost("m1", CREDENTIALS)

        assert url == "https://files.example/abc_photo.jpg"
        client.get_media_info.assert_awaited_once_with("m1")
        uploader.upload.assert_awaited_once_with(b"jpeg-bytes", "media.jpg", "image/jpeg")

    async def test_caller_filename_is_preferred(self):
        uploader = MagicMock()
        uploader.upload = AsyncMock(return_value="/media/x")
        client = graph_client(
            info={"url": "https://lookaside.example/", "mime_type": "application/pdf"},
            download=(b"%PDF", {}),
        )
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            await rehoster.rehost("m1", CREDENTIALS, filename="estudios.pdf")

        assert uploader.upload.await_args.args[1] == "estudios.pdf"
        assert uploader.upload.await_args.args[2] == "application/pdf"

    async def test_missing_download_url(self):
        uploader = MagicMock()
        uploader.upload = AsyncMock()
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=graph_client(info={})):
            assert await rehoster.rehost("m1", CREDENTIALS) is None
        uploader.upload.assert_not_awaited()

    async def test_graph_failure_returns_none(self):
        client = graph_client()
        client.get_media_info.side_effect = ProviderCallFailed("expired", error_code="190")
        rehoster = MediaRehoster(MagicMock(), MagicMock())

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            assert await rehoster.rehost("m1", CREDENTIALS) is None

    async def test_storage_failure_returns_none(self):
        uploader = MagicMock()
        uploader.upload = AsyncMock(side_effect=PermissionError("read-only"))
        client = graph_client(info={"url": "https://x/y.png"}, download=(b"1", {}))
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            assert await rehoster.rehost("m1", CREDENTIALS) is None

    async def test_timeout_returns_none(self):
        async def slow_info(media_id):
            await asyncio.sleep(1)

        client = graph_client()
        client.get_media_info = AsyncMock(side_effect=slow_info)
        rehoster = MediaRehoster(MagicMock(), MagicMock(), timeout=0.01)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            assert await rehoster.rehost("m1", CREDENTIALS) is None

    async def test_lookaside_url_gets_extension_from_mime(self, tmp_path):
        uploader = LocalMediaUploader(media_dir=str(tmp_path), base_url="/media")
        client = graph_client(
            info={
                "url": "https://lookaside.fbsbx.com/whatsapp_business/attachments/?mid=42",
                "mime_type": "image/jpeg",
            },
            download=(b"jpeg-bytes", {"Content-Type": "image/jpeg"}),
        )
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            url = await rehoster.rehost("m1", CREDENTIALS)

        assert url.endswith("_attachments.jpg")
        assert (tmp_path / url.rsplit("/", 1)[-1]).read_bytes() == b"jpeg-bytes"

    async def test_remote_storage_error_returns_none(self):
        uploader = MagicMock()
        uploader.upload = AsyncMock(side_effect=aiohttp.ClientConnectionError("storage down"))
        client = graph_client(info={"url": "https://x/y.png"}, download=(b"1", {}))
        rehoster = MediaRehoster(MagicMock(), uploader)

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            assert await rehoster.rehost("m1", CREDENTIALS) is None

    async def test_non_json_media_info_returns_none(self):
        client = graph_client()
        client.get_media_info.side_effect = ValueError("non-JSON body")
        rehoster = MediaRehoster(MagicMock(), MagicMock())

        with patch("clinicomm.webhooks.media.WhatsAppClient", return_value=client):
            assert await rehoster.rehost("m1", CREDENTIALS) is None
