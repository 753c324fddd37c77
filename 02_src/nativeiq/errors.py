"""Error taxonomy for the chat core and its HTTP surface."""


class ChatError(Exception):
    """Base class for recoverable chat errors surfaced to the user."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FetchError(ChatError):
    """Reading channels, members or history failed."""


class SendError(ChatError):
    """Inserting a message failed."""

    retryable = True


class AssistantError(ChatError):
    """The AI endpoint call failed or timed out."""

    retryable = True

    def __init__(self, message: str, code: str = "ASSISTANT_ERROR", status: int | None = None):
        super().__init__(message)
        self.code = code
        self.status = status


class SubscriptionError(ChatError):
    """A realtime subscription could not be established."""


class InviteError(Exception):
    """Invite request rejected before any address was processed."""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message


class EmailDeliveryError(Exception):
    """The transactional email provider rejected or never received a send."""
