"""
Booking payload validation.

Nothing here performs I/O. Failures are raised as ``ValidationError`` so the
HTTP layer can answer 400 with the offending field names.
"""
import base64
import binascii
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.errors import ValidationError
from app.schemas import Attachment, BookingRecord, BookingRequest
from app.services.sanitizer import sanitize

REQUIRED_FIELDS = ("orderId", "callType", "startTime", "endTime", "duration", "userId", "price")

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_timestamp = TypeAdapter(datetime)
_email = TypeAdapter(EmailStr)
_MIME_RE = re.compile(r"^[\w.+-]+/[\w.+-]+$")
_DATA_URI_RE = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)


def is_missing(value: Any) -> bool:
    """Presence check: None, blank strings, empty collections, False and zero are missing"""
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def validate_booking(request: BookingRequest) -> list[str]:
    """Return the names of required fields absent from the request"""
    data = request.model_dump(by_alias=True)
    return [name for name in REQUIRED_FIELDS if is_missing(data.get(name))]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch number into a naive UTC datetime"""
    if isinstance(value, bool):
        return None
    try:
        parsed = _timestamp.validate_python(value)
    except PydanticValidationError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _optional_text(value: Any) -> Optional[str]:
    if is_missing(value):
        return None
    return str(value)


def parse_email(value: Any) -> Optional[str]:
    """Return the bare address when value is a single valid email, else None"""
    if not isinstance(value, str):
        return None
    try:
        return _email.validate_python(value.strip())
    except PydanticValidationError:
        return None


def check_booking(request: BookingRequest) -> BookingRecord:
    """
    Validate a request and convert it into a typed BookingRecord.

    Raises:
        ValidationError: when required fields are missing or malformed
    """
    missing = validate_booking(request)
    if missing:
        raise ValidationError("Missing required fields", missing)

    invalid = []

    start_time = parse_timestamp(request.start_time)
    if start_time is None:
        invalid.append("startTime")
    end_time = parse_timestamp(request.end_time)
    if end_time is None:
        invalid.append("endTime")
    if start_time and end_time and end_time <= start_time:
        invalid.append("endTime")

    duration = parse_number(request.duration)
    if duration is None or duration <= 0:
        invalid.append("duration")

    price = parse_number(request.price)
    if price is None or price < 0:
        invalid.append("price")

    created = None
    if not is_missing(request.created):
        created = parse_timestamp(request.created)
        if created is None:
            invalid.append("created")

    user_email = None
    if not is_missing(request.user_email):
        user_email = parse_email(request.user_email)
        if user_email is None:
            invalid.append("userEmail")

    confirmed = request.confirmed
    if confirmed is None:
        confirmed = False
    elif not isinstance(confirmed, bool):
        invalid.append("confirmed")

    if invalid:
        raise ValidationError("Invalid field values", invalid)

    return BookingRecord(
        order_id=str(request.order_id),
        call_type=str(request.call_type),
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        user_id=str(request.user_id),
        user_email=user_email,
        price=price,
        order_status=_optional_text(request.order_status),
        rejection_reason=_optional_text(request.rejection_reason),
        created=created,
        confirmed=confirmed,
    )


def decode_attachment(request: BookingRequest, max_bytes: int) -> Optional[Attachment]:
    """
    Decode the optional base64 attachment.

    The attachment is only used when both the content and its filename are
    present. Returns None otherwise.

    Raises:
        ValidationError: when the content is not base64 or decodes to more
            than ``max_bytes``
    """
    if is_missing(request.attachment) or is_missing(request.attachment_name):
        return None
    if not isinstance(request.attachment, str):
        raise ValidationError("Invalid attachment encoding", ["attachment"])

    encoded = _DATA_URI_RE.sub("", request.attachment.strip())
    encoded = "".join(encoded.split())

    too_large = f"Attachment too large (max {max_bytes // (1024 * 1024)}MB)"
    # Reject on the encoded length first so huge payloads are never decoded
    if (len(encoded) // 4) * 3 - 2 > max_bytes:
        raise ValidationError(too_large, ["attachment"])

    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid attachment encoding", ["attachment"])

    if len(content) > max_bytes:
        raise ValidationError(too_large, ["attachment"])

    content_type = DEFAULT_CONTENT_TYPE
    if isinstance(request.attachment_type, str):
        declared = request.attachment_type.strip().lower()
        if _MIME_RE.match(declared) and not declared.startswith("multipart/"):
            content_type = declared

    filename = sanitize(request.attachment_name).strip() or "attachment"
    return Attachment(filename=filename, content=content, content_type=content_type)
