"""
Error taxonomy for the dispatch pipeline.

Every error carries the HTTP status it maps to and the message shown to
clients. ``redact`` marks errors whose detail is hidden in production.
"""
from typing import Optional


class DispatchError(Exception):
    """Base error for anything that can fail while dispatching a booking"""

    status_code = 500
    public_message = "Internal server error"
    redact = True

    def __init__(self, detail: str, *, booking_id: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.booking_id = booking_id


class ValidationError(DispatchError):
    """Missing or malformed fields, oversized attachment"""

    status_code = 400
    redact = False

    def __init__(self, detail: str, fields: Optional[list[str]] = None):
        super().__init__(detail)
        self.fields = fields or []


class StorageUnavailable(DispatchError):
    """Store unreachable or write rejected"""

    public_message = "Failed to save booking"


class RelayError(DispatchError):
    """Relay unreachable, credentials rejected or message refused"""

    public_message = "Failed to send email"


class DeliveryTimeout(RelayError):
    """Send did not complete within the configured deadline"""


class RateLimitExceeded(DispatchError):
    status_code = 429
    redact = False


class ConfigurationError(Exception):
    """Relay verification failed; logged by the monitor, never sent to clients"""
