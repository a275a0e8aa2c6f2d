from .services import (
    get_connection_hub,
    get_dispatcher,
    get_reaction_service,
    get_store,
    get_webhook_controller,
    optional_user,
    require_tenant,
)

__all__ = [
    "get_connection_hub",
    "get_dispatcher",
    "get_reaction_service",
    "get_store",
    "get_webhook_controller",
    "optional_user",
    "require_tenant",
]
