"""
Error taxonomy for the messaging app.

Validation and authorization errors are raised straight to the caller.
Store errors wrap database failures so the scheduler can catch them per
conversation. ``MediaDeletionFailure`` is never propagated past the
code that deletes a message; it is logged and the deletion continues.
"""


class MessagingError(Exception):
    """Base class for every error raised by the messaging app."""

    default_detail = "Messaging operation failed."
    code = "messaging_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidPairError(MessagingError):
    default_detail = "A conversation requires two distinct users."
    code = "invalid_pair"


class InvalidMessageError(MessagingError):
    default_detail = "Message payload does not match its type."
    code = "invalid_message"


class CommunicationNotPermittedError(MessagingError):
    default_detail = "Cannot send message. Communication not established."
    code = "communication_not_permitted"


class NotFoundError(MessagingError):
    default_detail = "Message not found."
    code = "not_found"


class UnauthorizedError(MessagingError):
    default_detail = "Only the sender may delete this message."
    code = "unauthorized"


class InvalidRetentionConfigError(MessagingError):
    default_detail = "Retention count is out of range."
    code = "invalid_retention_config"


class StoreError(MessagingError):
    default_detail = "Message store error."
    code = "store_error"


class StoreTimeoutError(StoreError):
    default_detail = "Message store did not answer in time."
    code = "store_timeout"


class StoreUnavailableError(StoreError):
    default_detail = "Message store is unavailable."
    code = "store_unavailable"


class MediaDeletionFailure(MessagingError):
    default_detail = "Media file could not be deleted."
    code = "media_deletion_failed"

    def __init__(self, path: str, detail: str | None = None):
        self.path = path
        super().__init__(detail or f"Could not delete media file {path!r}.")
