"""
Application assembly.

`create_app()` builds the production FastAPI app from the standard plugins.
Uvicorn loads it with `--factory`.
"""

from pathlib import Path

from fastapi import FastAPI
from starlette.staticfiles import StaticFiles

from clinicomm.database import adapter_for_url
from clinicomm.models.tables import ALL_MODELS
from clinicomm.webhooks.media import MediaUploader

from .config.settings import settings
from .factory import ClinicommBuilder
from .plugins import CorePlugin, DatabasePlugin, MessagingPlugin, RedisPlugin


def create_app(
    database_url: str | None = None,
    redis_url: str | None = None,
    media_uploader: MediaUploader | None = None,
) -> FastAPI:
    """
    Build the clinicomm application.

    Redis is used for presence when a URL is given or REDIS_URL is set;
    otherwise presence lives in process memory. Re-hosted media is served
    from MEDIA_DIR when MEDIA_BASE_URL is a local path.

    Args:
        database_url: Overrides DATABASE_URL
        redis_url: Overrides REDIS_URL
        media_uploader: Custom storage for re-hosted WhatsApp media
    """
    database_url = database_url or settings.database_url
    redis_url = redis_url or settings.redis_url

    builder = ClinicommBuilder().add_plugin(CorePlugin())
    builder.add_plugin(
        DatabasePlugin(database_url, adapter_for_url(database_url), models=ALL_MODELS)
    )
    if redis_url:
        builder.add_plugin(RedisPlugin(redis_url))
    builder.add_plugin(MessagingPlugin(media_uploader=media_uploader))

    builder.configure(
        title="Clinicomm",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app = builder.build()

    if media_uploader is None and settings.media_base_url.startswith("/"):
        Path(settings.media_dir).mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.media_base_url,
            StaticFiles(directory=settings.media_dir, check_dir=False),
            name="media",
        )

    return app
