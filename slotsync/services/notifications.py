from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from enum import Enum
from typing import Protocol

from slotsync.core.config import Settings
from slotsync.schemas.booking import BookingRead, ProviderKind

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_RESCHEDULED = "BOOKING_RESCHEDULED"


_SUBJECTS = {
    NotificationKind.BOOKING_CONFIRMED: "Your appointment is confirmed",
    NotificationKind.BOOKING_CANCELLED: "Your appointment has been cancelled",
    NotificationKind.BOOKING_RESCHEDULED: "Your appointment has been rescheduled",
}


class NotificationSender(Protocol):
    """
    Fire-and-forget client notification channel.

    `send` returns whether a message went out; callers must not depend on it.
    """

    def send(self, kind: NotificationKind, booking: BookingRead) -> bool:
        ...


def build_notification_body(kind: NotificationKind, booking: BookingRead) -> str:
    """
    Build a plain-text body for a booking notification.
    """
    when = (
        f"{booking.start_at.strftime('%Y-%m-%d %H:%M')} - "
        f"{booking.end_at.strftime('%H:%M')} UTC"
    )

    lines: list[str] = [f"Hi {booking.client_name},", ""]

    if kind == NotificationKind.BOOKING_CONFIRMED:
        lines.append(f"Your appointment is booked for {when}.")
    elif kind == NotificationKind.BOOKING_RESCHEDULED:
        lines.append(f"Your appointment has been moved to {when}.")
    else:
        lines.append(f"Your appointment on {when} has been cancelled.")

    if kind != NotificationKind.BOOKING_CANCELLED:
        meeting = booking.sync_record(ProviderKind.MEETING)
        if meeting is not None and meeting.join_url:
            lines.append("")
            lines.append(f"Join link: {meeting.join_url}")

    if booking.notes:
        lines.append("")
        lines.append(f"Notes: {booking.notes}")

    lines.append("")
    lines.append("Regards,")
    lines.append("SlotSync")

    return "\n".join(lines)


class SmtpNotificationSender:
    """
    Sends booking notifications to the client via SMTP.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(self._settings.SMTP_HOST and self._settings.SMTP_FROM_ADDRESS)

    def send(self, kind: NotificationKind, booking: BookingRead) -> bool:
        """
        Returns
        -------
        bool
            True if an attempt to send was made and succeeded.
            False if email sending is disabled/misconfigured or fails.
        """
        settings = self._settings

        if not self.configured:
            # Email system not configured
            return False

        msg = EmailMessage()
        msg["Subject"] = f"[{settings.APP_NAME}] {_SUBJECTS[kind]}"
        msg["From"] = settings.SMTP_FROM_ADDRESS
        msg["To"] = booking.client_email
        msg.set_content(build_notification_body(kind, booking))

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
                if settings.SMTP_USE_TLS:
                    smtp.starttls()
                if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                    smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                smtp.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError) as exc:
            # A failed notification must never fail the booking operation.
            logger.warning("Notification %s for booking %s failed: %s", kind.value, booking.id, exc)
            return False


class LoggingNotificationSender:
    """
    Default sender when SMTP is not configured: records the intent only.
    """

    def send(self, kind: NotificationKind, booking: BookingRead) -> bool:
        logger.info(
            "Notification %s for booking %s to %s (not delivered: no transport)",
            kind.value,
            booking.id,
            booking.client_email,
        )
        return False
