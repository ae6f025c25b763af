class SignageError(Exception):
    """Base class for errors raised by the pairing and ingestion use cases."""


class ValidationError(SignageError):
    """Raised when caller-supplied input is malformed."""

    def __init__(self, message, field=None):
        self.field = field
        super().__init__(message)


class NotFound(SignageError):
    """Raised when a pairing code or identity does not exist."""

    def __init__(self, what="Pairing session"):
        self.what = what
        super().__init__(f"{what} not found")


class InvalidState(SignageError):
    """Raised when a pairing transition is attempted from the wrong state."""

    def __init__(self, current, expected):
        self.current = current
        self.expected = expected
        super().__init__(
            f"Pairing session is {current}, expected {expected}"
        )


class Expired(SignageError):
    """Raised when a pairing code is used after its expiry."""

    def __init__(self, expires_at):
        self.expires_at = expires_at
        super().__init__(f"Pairing code expired at {expires_at.isoformat()}")


class AlreadyClaimed(InvalidState):
    """Raised when a claim targets a session that has left PENDING."""

    def __init__(self, current):
        super().__init__(current, "PENDING")


class DuplicateEvent(SignageError):
    """Raised when a proof-of-play event_id has already been stored."""

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Proof-of-play event already recorded: {event_id}")


class RateLimited(SignageError):
    """Raised when a pairing session is polled before its minimum interval elapsed."""

    def __init__(self, retry_after):
        self.retry_after = retry_after
        super().__init__(f"Polling too fast, retry after {retry_after:.3f}s")


class Unauthorized(SignageError):
    """Raised when a presented device token matches no identity."""

    def __init__(self):
        super().__init__("Unauthorized")


class StorageFailure(SignageError):
    """Raised when the durable store fails; the enclosing transaction was rolled back."""

    def __init__(self, operation):
        self.operation = operation
        super().__init__(f"Storage failure during {operation}")
