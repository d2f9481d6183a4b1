"""
Notification Composer
Builds the booking notification email from a sanitized booking record
"""
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Optional

from jinja2 import Environment, StrictUndefined, select_autoescape

from app.schemas import Attachment, BookingRecord

NOT_AVAILABLE = "N/A"

_env = Environment(
    autoescape=select_autoescape(default_for_string=True),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)

_HTML_TEMPLATE = _env.from_string(
    """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2c3e50;">New Booking Details</h2>
  <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
{% for label, value in rows %}
    <tr{% if loop.index is odd %} style="background-color: #f8f9fa;"{% endif %}>
      <th style="padding: 10px; text-align: left; border: 1px solid #ddd;">{{ label }}</th>
      <td style="padding: 10px; border: 1px solid #ddd;">{{ value }}</td>
    </tr>
{% endfor %}
  </table>
</div>
"""
)

_TEXT_TEMPLATE = Environment(autoescape=False, undefined=StrictUndefined).from_string(
    "New Booking Details\n\n{% for label, value in rows %}{{ label }}: {{ value }}\n{% endfor %}"
)


@dataclass
class NotificationMessage:
    """Email ready to hand to the delivery channel"""

    sender_name: str
    sender_address: str
    recipient: str
    reply_to: str
    subject: str
    html: str
    text: str
    attachment: Optional[Attachment] = None

    @property
    def sender(self) -> str:
        return formataddr((self.sender_name, self.sender_address))

    def to_email_message(self, message_id: Optional[str] = None) -> EmailMessage:
        """Render as a MIME message: text and HTML alternatives plus the attachment"""
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg["Reply-To"] = self.reply_to
        msg["Subject"] = self.subject
        msg["Date"] = formatdate(localtime=False)
        msg["Message-ID"] = message_id or make_msgid(domain=_domain_of(self.sender_address))

        msg.set_content(self.text)
        msg.add_alternative(self.html, subtype="html")

        if self.attachment is not None:
            maintype, _, subtype = self.attachment.content_type.partition("/")
            msg.add_attachment(
                self.attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=self.attachment.filename,
            )
        return msg


def _domain_of(address: str) -> str:
    _, _, domain = address.rpartition("@")
    return domain or "localhost"


def format_time_range(start: datetime, end: datetime) -> str:
    """
    Human readable range, e.g. 'January 01, 2024 10:00 AM - 10:30 AM UTC'.
    The end date is repeated only when the booking crosses midnight.
    """
    if start.date() == end.date():
        return f"{start:%B %d, %Y %I:%M %p} - {end:%I:%M %p} UTC"
    return f"{start:%B %d, %Y %I:%M %p} - {end:%B %d, %Y %I:%M %p} UTC"


def format_duration(minutes: float) -> str:
    return f"{minutes:g} minutes"


def format_price(price: float) -> str:
    return f"{price:.2f}"


def booking_rows(record: BookingRecord) -> list[tuple[str, str]]:
    rows = [
        ("Order ID", record.order_id),
        ("Call Type", record.call_type),
        ("Time", format_time_range(record.start_time, record.end_time)),
        ("Duration", format_duration(record.duration)),
        ("User ID", record.user_id),
        ("User Email", record.user_email or NOT_AVAILABLE),
        ("Price", format_price(record.price)),
    ]
    if record.order_status:
        rows.append(("Order Status", record.order_status))
    if record.rejection_reason:
        rows.append(("Rejection Reason", record.rejection_reason))
    return rows


def build_notification(
    record: BookingRecord,
    attachment: Optional[Attachment] = None,
    *,
    sender_address: str,
    recipient: str,
    sender_name: str = "Booking System",
) -> NotificationMessage:
    """
    Build the notification for one booking.

    Args:
        record: Booking record, already sanitized
        attachment: Decoded attachment, if the request carried one
        sender_address: Relay account address, also the fallback reply-to
        recipient: Fixed address that receives booking notifications
        sender_name: Display name of the sender

    Returns:
        NotificationMessage
    """
    rows = booking_rows(record)
    return NotificationMessage(
        sender_name=sender_name,
        sender_address=sender_address,
        recipient=recipient,
        reply_to=record.user_email or sender_address,
        subject=f"New Booking - Order #{record.order_id}",
        html=_HTML_TEMPLATE.render(rows=rows),
        text=_TEXT_TEMPLATE.render(rows=rows),
        attachment=attachment,
    )
