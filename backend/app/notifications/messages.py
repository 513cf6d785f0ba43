from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Mapping

from ..models import Reservation, Slot
from ..utils.time import format_hhmm


@dataclass(frozen=True)
class SlotInfo:
    slot_id: int
    staff_id: int
    staff_name: str
    room: str | None
    date: date
    start_time: time
    end_time: time

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotInfo":
        staff = slot.staff
        return cls(
            slot_id=slot.id,
            staff_id=slot.staff_id,
            staff_name=staff.display_name if staff is not None else "",
            room=staff.room if staff is not None else None,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )

    def describe(self) -> str:
        return f"{self.date.isoformat()} {format_hhmm(self.start_time)}-{format_hhmm(self.end_time)}"


@dataclass(frozen=True)
class BookingDetails:
    reservation_id: int
    access_code: str
    requester_name: str
    requester_email: str
    contact_name: str | None
    staff_email: str | None
    slot: SlotInfo

    @classmethod
    def from_reservation(cls, reservation: Reservation, slot: Slot) -> "BookingDetails":
        return cls(
            reservation_id=reservation.id,
            access_code=reservation.access_code,
            requester_name=reservation.requester_name,
            requester_email=reservation.requester_email,
            contact_name=reservation.contact_name,
            staff_email=slot.staff.email if slot.staff is not None else None,
            slot=SlotInfo.from_slot(slot),
        )

    @property
    def greeting_name(self) -> str:
        return self.contact_name or self.requester_name


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str
    from_name: str = ""
    reply_to: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


def _envelope(values: Mapping[str, str], *, to: str, subject: str, body: str) -> EmailMessage:
    reply_to = (values.get("email_reply_to") or "").strip() or None
    return EmailMessage(
        to=to,
        subject=subject,
        body=body,
        from_name=values.get("email_from_name", ""),
        reply_to=reply_to,
    )


def _slot_lines(slot: SlotInfo) -> list[str]:
    return [
        f"Date:   {slot.date.isoformat()}",
        f"Time:   {format_hhmm(slot.start_time)} - {format_hhmm(slot.end_time)}",
        f"With:   {slot.staff_name}",
        f"Room:   {slot.room or 'to be announced'}",
    ]


def _manage_url(values: Mapping[str, str], access_code: str) -> str:
    base = (values.get("public_url") or "").rstrip("/")
    return f"{base}/bookings/manage?code={access_code}"


def _footer(values: Mapping[str, str]) -> list[str]:
    lines = ["", values.get("organization_name", "")]
    contact = [v for v in (values.get("organization_email"), values.get("organization_phone")) if v]
    if contact:
        lines.append(" | ".join(contact))
    return lines


def confirmation_message(values: Mapping[str, str], booking: BookingDetails) -> EmailMessage:
    title = values.get("event_title", "Appointments")
    lines = [
        f"Hello {booking.greeting_name},",
        "",
        "your appointment has been booked.",
        "",
        *_slot_lines(booking.slot),
        "",
        f"Access code: {booking.access_code}",
        "Keep this code to cancel or move your appointment:",
        _manage_url(values, booking.access_code),
    ]
    extra = values.get("confirmation_message")
    if extra:
        lines += ["", extra]
    return _envelope(
        values,
        to=booking.requester_email,
        subject=f"Booking confirmation - {title} - {booking.slot.date.isoformat()}",
        body="\n".join(lines + _footer(values)),
    )


def cancellation_message(values: Mapping[str, str], booking: BookingDetails) -> EmailMessage:
    title = values.get("event_title", "Appointments")
    lines = [
        f"Hello {booking.greeting_name},",
        "",
        "your appointment has been cancelled.",
        "",
        *_slot_lines(booking.slot),
    ]
    return _envelope(
        values,
        to=booking.requester_email,
        subject=f"Cancellation confirmation - {title}",
        body="\n".join(lines + _footer(values)),
    )


def rebook_message(values: Mapping[str, str], booking: BookingDetails, previous: SlotInfo) -> EmailMessage:
    title = values.get("event_title", "Appointments")
    lines = [
        f"Hello {booking.greeting_name},",
        "",
        "your appointment has been moved.",
        "",
        f"Previous: {previous.describe()} with {previous.staff_name}",
        "",
        "New appointment:",
        *_slot_lines(booking.slot),
        "",
        f"New access code: {booking.access_code}",
        "Your previous access code is no longer valid.",
        _manage_url(values, booking.access_code),
    ]
    return _envelope(
        values,
        to=booking.requester_email,
        subject=f"Rebooking confirmation - {title} - {booking.slot.date.isoformat()}",
        body="\n".join(lines + _footer(values)),
    )


def staff_booking_message(values: Mapping[str, str], booking: BookingDetails, staff_email: str) -> EmailMessage:
    lines = [
        "A new appointment has been booked.",
        "",
        *_slot_lines(booking.slot),
        f"Requester: {booking.requester_name} <{booking.requester_email}>",
    ]
    if booking.contact_name:
        lines.append(f"Contact:   {booking.contact_name}")
    return _envelope(
        values,
        to=staff_email,
        subject=f"New booking - {booking.slot.describe()}",
        body="\n".join(lines),
    )
