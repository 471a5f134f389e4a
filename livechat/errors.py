class LiveChatError(Exception):
    """Base class for errors that map onto a failed `{success: false}` response."""

    status_code = 500
    default_message = "An error occurred"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(LiveChatError):
    status_code = 400
    default_message = "Missing required fields"


class NotFound(LiveChatError):
    status_code = 404
    default_message = "Chat session not found"


class PersistenceError(LiveChatError):
    status_code = 500
    default_message = "Failed to save chat"


class RelayError(LiveChatError):
    """Raised by notification channels; caught by the relay pipeline, never by callers."""

    status_code = 502
    default_message = "Notification channel failed"
