"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_api_logger
from clinicomm.persistence.redis.redis_client import RedisClient

logger = get_api_logger()
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Liveness probe with environment information."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": {
            "environment": settings.environment,
            "version": settings.version,
            "log_level": settings.log_level,
        },
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> dict[str, Any]:
    """Dependency status: database, redis, presence and webhook backlog."""
    start_time = time.time()
    state = request.app.state

    database_ok = False
    adapter = getattr(state, "db_adapter", None)
    engine = getattr(state, "db_engine", None)
    if adapter is not None and engine is not None:
        database_ok = await adapter.health_check(engine)

    redis_status = "not_configured"
    if RedisClient.is_configured():
        try:
            await RedisClient.get("presence")
            redis_status = "healthy"
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            redis_status = "unhealthy"

    hub = getattr(state, "connection_hub", None)
    controller = getattr(state, "webhook_controller", None)
    healthy = database_ok and redis_status != "unhealthy"

    detailed_data = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": time.time(),
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
        "application": {
            "name": "clinicomm",
            "version": settings.version,
            "environment": settings.environment,
            "is_development": settings.is_development,
        },
        "services": {
            "database": "healthy" if database_ok else "unhealthy",
            "redis": redis_status,
            "presence_backend": getattr(state, "presence_backend", None),
            "active_connections": hub.active_connections if hub else 0,
            "webhooks": controller.get_health_status() if controller else None,
            "channels": [c.value for c in state.adapter_registry.channels]
            if getattr(state, "adapter_registry", None)
            else [],
        },
        "configuration": {
            "whatsapp_api_version": settings.whatsapp_api_version,
            "send_timeout_seconds": settings.send_timeout_seconds,
            "stale_sweep_interval_seconds": settings.stale_sweep_interval_seconds,
        },
    }

    logger.info(f"Detailed health check completed - Status: {detailed_data['status']}")
    return detailed_data
