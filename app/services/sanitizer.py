"""
Markup stripping for free-text booking fields
"""
import re
from typing import Any, Optional

from app.schemas import BookingRecord

_TAG_RE = re.compile(r"<[^>]*>?")
_ANGLE_RE = re.compile(r"[<>]")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f\x85\u2028\u2029]+")

TEXT_FIELDS = (
    "order_id",
    "call_type",
    "user_id",
    "user_email",
    "order_status",
    "rejection_reason",
)


def sanitize(value: Any) -> str:
    """
    Remove tag-like substrings from a value.

    This is a regex strip, not an HTML parser. Leftover angle brackets
    are dropped too, so the result never contains ``<`` or ``>``. Line
    breaks and other control characters become a single space so the value
    is safe in a mail header. Sanitizing twice gives the same string.
    """
    text = _TAG_RE.sub("", str(value))
    text = _ANGLE_RE.sub("", text)
    return _CONTROL_RE.sub(" ", text)


def sanitize_optional(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    return sanitize(value)


def sanitize_record(record: BookingRecord) -> BookingRecord:
    """Return a copy of the record with every free-text field sanitized"""
    updates = {name: sanitize_optional(getattr(record, name)) for name in TEXT_FIELDS}
    return record.model_copy(update=updates)
