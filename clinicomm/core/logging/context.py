"""
Request context management using contextvars for automatic propagation.

The tenant and user are set once per request (middleware) or per webhook event
(normalizer) and picked up by every ContextLogger created afterwards.
"""

from contextvars import ContextVar

_tenant_context: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_user_context: ContextVar[str | None] = ContextVar("user_id", default=None)


def set_request_context(
    tenant_id: str | None = None,
    user_id: str | None = None,
) -> None:
    """
    Set the request context for the current async context.

    Args:
        tenant_id: Clinic identifier the request acts on behalf of
        user_id: Clinic user (or lead phone, for webhooks) driving the request
    """
    if tenant_id is not None:
        _tenant_context.set(tenant_id)
    if user_id is not None:
        _user_context.set(user_id)


def get_current_tenant_context() -> str | None:
    """Get the current tenant ID from context variables."""
    return _tenant_context.get()


def get_current_user_context() -> str | None:
    """Get the current user ID from context variables."""
    return _user_context.get()


def clear_request_context() -> None:
    """Clear the request context."""
    _tenant_context.set(None)
    _user_context.set(None)
