"""
Error taxonomy for intake, booking and delivery.

Intake errors carry the client-facing message; nothing from the request is
ever echoed back. Delivery errors are raised by mail providers and let the
dispatcher decide between retrying and giving up.
"""
from typing import Optional

GENERIC_RETRY_MESSAGE = "We could not process your submission. Please try again or contact us."


class IntakeError(Exception):
    """Base exception for errors surfaced to an HTTP caller."""
    status_code = 500
    public_message = GENERIC_RETRY_MESSAGE


class ValidationError(IntakeError):
    """Missing or invalid required input."""
    status_code = 400
    public_message = "Invalid submission. Please check the form and try again."


class PersistenceError(IntakeError):
    """A required store write failed; nothing downstream may run."""
    status_code = 500


class ExternalServiceError(Exception):
    """A CRM, ESP or mail call failed. Recorded, never surfaced during intake."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class DeliveryError(Exception):
    """A mail provider refused or failed to take a message."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class TransientDeliveryError(DeliveryError):
    """Timeout, connection failure or 5xx: worth retrying later."""


class PermanentDeliveryError(DeliveryError):
    """Rejected outright (bad recipient, auth, 4xx): retrying will not help."""


class MailSendFailed(Exception):
    """Every configured provider failed for one message."""

    def __init__(self, last_error: Optional[Exception], attempted: Optional[list] = None):
        self.last_error = last_error
        self.attempted = attempted or []
        detail = str(last_error) if last_error else "no mail provider configured"
        super().__init__(f"mail_send_failed: {detail}")

    @property
    def transient(self) -> bool:
        return not isinstance(self.last_error, PermanentDeliveryError)


def is_transient_error(exc: Exception) -> bool:
    """True if error is retryable (timeout, connection failure, 5xx, 429).

    Client errors (other 4xx) are permanent. Anything unclassified counts as
    transient; the dispatcher bounds retries with max attempts.
    """
    if isinstance(exc, PermanentDeliveryError):
        return False
    if isinstance(exc, TransientDeliveryError):
        return True
    s = str(exc).lower()
    if "timeout" in s or "timed out" in s or "connection" in s:
        return True
    for attr in ("status_code", "code", "error_code"):
        c = getattr(exc, attr, None)
        if isinstance(c, int) and 400 <= c < 500:
            return c in (408, 429)
    return True
