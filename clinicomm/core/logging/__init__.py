from .context import (
    clear_request_context,
    get_current_tenant_context,
    get_current_user_context,
    set_request_context,
)
from .logger import (
    ContextLogger,
    get_api_logger,
    get_app_logger,
    get_logger,
    setup_app_logging,
    setup_logging,
)

__all__ = [
    "ContextLogger",
    "clear_request_context",
    "get_api_logger",
    "get_app_logger",
    "get_current_tenant_context",
    "get_current_user_context",
    "get_logger",
    "set_request_context",
    "setup_app_logging",
    "setup_logging",
]
