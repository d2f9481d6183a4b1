"""
Dispatch Orchestrator
Runs one booking through validation, persistence, composition and delivery
"""
import logging
from typing import Optional

from app.errors import RelayError, StorageUnavailable, ValidationError
from app.schemas import Attachment, BookingRecord, BookingRequest, DispatchResult
from app.services.composer import NotificationMessage, build_notification
from app.services.sanitizer import sanitize_record
from app.services.validator import check_booking, decode_attachment

logger = logging.getLogger(__name__)


class DispatchOrchestrator:
    """
    Coordinates the store and the delivery channel for one request at a time.

    Each step runs once; failures propagate as DispatchError subclasses and
    the caller decides whether to resubmit.
    """

    def __init__(
        self,
        channel,
        store=None,
        *,
        sender_address: str,
        recipient: str,
        sender_name: str = "Booking System",
        max_attachment_bytes: int = 5 * 1024 * 1024,
        send_timeout: Optional[float] = None,
    ):
        self.channel = channel
        self.store = store
        self.sender_address = sender_address
        self.recipient = recipient
        self.sender_name = sender_name
        self.max_attachment_bytes = max_attachment_bytes
        self.send_timeout = send_timeout

    @classmethod
    def from_settings(cls, settings, channel, store=None) -> "DispatchOrchestrator":
        return cls(
            channel,
            store,
            sender_address=settings.email_user,
            recipient=settings.notification_recipient,
            sender_name=settings.sender_name,
            max_attachment_bytes=settings.max_attachment_bytes,
            send_timeout=settings.email_send_timeout,
        )

    def _prepare(self, request: BookingRequest) -> tuple[BookingRecord, NotificationMessage]:
        # Everything here runs before anything touches the store or the relay
        record = sanitize_record(check_booking(request))
        attachment = decode_attachment(request, self.max_attachment_bytes)
        return record, self._compose(record, attachment)

    def _compose(self, record: BookingRecord, attachment: Optional[Attachment]) -> NotificationMessage:
        message = build_notification(
            record,
            attachment,
            sender_address=self.sender_address,
            recipient=self.recipient,
            sender_name=self.sender_name,
        )
        # Header values are checked when the MIME message is rendered
        try:
            message.to_email_message()
        except ValueError as e:
            raise ValidationError(f"Invalid header value: {e}")
        return message

    async def _send(
        self,
        record: BookingRecord,
        message: NotificationMessage,
        booking_id: Optional[int] = None,
    ) -> str:
        try:
            return await self.channel.send(message, timeout=self.send_timeout)
        except RelayError as e:
            e.booking_id = booking_id
            logger.error(
                "dispatch.send_failed",
                extra={"order_id": record.order_id, "booking_id": booking_id, "error": e.detail},
            )
            raise

    async def send_notification(self, request: BookingRequest) -> DispatchResult:
        """Validate and email a booking without storing it"""
        record, message = self._prepare(request)
        email_id = await self._send(record, message)
        return DispatchResult(message="Email sent successfully", email_id=email_id)

    async def create_booking(self, request: BookingRequest) -> DispatchResult:
        """Validate, store, then email a booking"""
        record, message = self._prepare(request)
        if self.store is None:
            raise StorageUnavailable("Booking store is not configured")

        booking_id = await self.store.insert(record)
        email_id = await self._send(record, message, booking_id=booking_id)
        return DispatchResult(
            message="Booking created and notification sent",
            email_id=email_id,
            booking_id=booking_id,
        )
