"""
Request and domain models for booking submissions
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingRequest(BaseModel):
    """
    Inbound booking payload as the client sent it.

    Every field is optional and untyped here so that missing or malformed
    values reach the validator instead of failing request parsing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    order_id: Any = Field(default=None, alias="orderId")
    call_type: Any = Field(default=None, alias="callType")
    start_time: Any = Field(default=None, alias="startTime")
    end_time: Any = Field(default=None, alias="endTime")
    duration: Any = None
    user_id: Any = Field(default=None, alias="userId")
    user_email: Any = Field(default=None, alias="userEmail")
    price: Any = None
    order_status: Any = Field(default=None, alias="orderStatus")
    rejection_reason: Any = Field(default=None, alias="rejectionReason")
    attachment: Any = None
    attachment_name: Any = Field(default=None, alias="attachmentName")
    attachment_type: Any = Field(default=None, alias="attachmentType")
    # Persistence variant only
    created: Any = None
    confirmed: Any = None


class BookingRecord(BaseModel):
    """Validated booking, the shape that gets stored and rendered"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    call_type: str
    start_time: datetime
    end_time: datetime
    duration: float
    user_id: str
    user_email: Optional[str] = None
    price: float
    order_status: Optional[str] = None
    rejection_reason: Optional[str] = None
    created: Optional[datetime] = None
    confirmed: bool = False


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class DispatchResult:
    message: str
    email_id: str
    booking_id: Optional[int] = None
