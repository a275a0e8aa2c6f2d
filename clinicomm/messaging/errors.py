"""
Exceptions raised by the messaging core.

Routes translate them into HTTP status codes; webhook processing logs them
and moves on to the next event.
"""


class ClinicommError(Exception):
    """Base exception for messaging core errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ClinicommError):
    status_code = 404


class ConversationNotFound(NotFoundError):
    """No conversation matches the request and none can be derived from a lead."""


class ProviderNotFound(NotFoundError):
    """The conversation's channel has no provider account for this clinic."""


class MessageNotFound(NotFoundError):
    pass


class TemplateNotFound(NotFoundError):
    pass


class ProviderMisconfigured(ClinicommError):
    """The provider exists but lacks credentials required by its channel."""

    status_code = 400


class RecipientUnavailable(ClinicommError):
    """The lead has no address (phone or email) for the requested channel."""

    status_code = 400


class TenantMismatch(ClinicommError):
    """The record belongs to a different clinic than the caller."""

    status_code = 403


class ProviderCallFailed(ClinicommError):
    """The provider rejected the request or could not be reached."""

    status_code = 502

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        http_status: int | None = None,
    ):
        self.error_code = error_code
        self.http_status = http_status
        super().__init__(message)
