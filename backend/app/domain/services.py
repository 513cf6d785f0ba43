from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Literal

from ..models import Event, ReservationStatus, SlotStatus
from ..settings_store import BookingRules
from ..utils.time import hours_until
from .errors import (
    AlreadyCancelledError,
    ForbiddenError,
    NoActiveEventError,
    NoticePeriodError,
    OutsideEventError,
    ReservationClosedError,
    SlotAlreadyBookedError,
    SlotBookedError,
    ValidationError,
)


@dataclass(frozen=True)
class Actor:
    """Authenticated staff member performing an administrative call."""

    staff_id: int
    is_admin: bool = False


def ensure_can_manage(actor: Actor, owner_id: int) -> None:
    if not actor.is_admin and actor.staff_id != owner_id:
        raise ForbiddenError("only the owner or an administrator can change these slots")


@dataclass(frozen=True)
class SlotSnapshot:
    status: SlotStatus
    has_active_reservation: bool


def ensure_slot_bookable(snapshot: SlotSnapshot, *, message: str | None = None) -> None:
    """A slot can be claimed only while AVAILABLE and not held by an active reservation."""
    if snapshot.status != SlotStatus.AVAILABLE or snapshot.has_active_reservation:
        raise SlotAlreadyBookedError(message)


def ensure_self_service_allowed(status: ReservationStatus) -> None:
    if status == ReservationStatus.CANCELLED:
        raise AlreadyCancelledError()
    if status != ReservationStatus.CONFIRMED:
        raise ReservationClosedError()


def ensure_slot_mutable(status: SlotStatus) -> None:
    if status == SlotStatus.BOOKED:
        raise SlotBookedError()


def notice_satisfied(
    slot_date: date,
    start_time: time,
    *,
    notice_hours: int,
    now: datetime | None = None,
) -> bool:
    if notice_hours <= 0:
        return True
    return hours_until(slot_date, start_time, now=now) >= notice_hours


def ensure_notice(
    slot_date: date,
    start_time: time,
    *,
    notice_hours: int,
    action: Literal["booked", "cancelled"],
    now: datetime | None = None,
) -> None:
    if not notice_satisfied(slot_date, start_time, notice_hours=notice_hours, now=now):
        raise NoticePeriodError(f"appointments can only be {action} up to {notice_hours} hours in advance")


def ensure_requester_fields(rules: BookingRules, *, phone: str | None, contact_name: str | None) -> None:
    if rules.require_phone and not (phone or "").strip():
        raise ValidationError("phone number is required")
    if rules.require_contact_name and not (contact_name or "").strip():
        raise ValidationError("contact name is required")


def ensure_time_range(start: time, end: time) -> None:
    if start >= end:
        raise ValidationError("start time must be before end time")


def tile_day(start: time, end: time, *, duration_minutes: int, buffer_minutes: int = 0) -> list[tuple[time, time]]:
    """Split [start, end) into fixed-length segments separated by buffer_minutes.

    Segments that would run past `end` are dropped.
    """
    if start >= end:
        raise ValidationError("start time must be before end time")
    if duration_minutes <= 0:
        raise ValidationError("slot duration must be positive")
    if buffer_minutes < 0:
        raise ValidationError("slot buffer cannot be negative")

    anchor = date(2000, 1, 1)
    cursor = datetime.combine(anchor, start)
    limit = datetime.combine(anchor, end)
    length = timedelta(minutes=duration_minutes)
    step = length + timedelta(minutes=buffer_minutes)

    segments: list[tuple[time, time]] = []
    while cursor + length <= limit:
        segments.append((cursor.time(), (cursor + length).time()))
        cursor += step
    if not segments:
        raise ValidationError("no slots fit into the requested window")
    return segments


def ensure_within_event(event: Event | None, day: date) -> None:
    if event is None:
        raise NoActiveEventError()
    if not event.covers(day):
        raise OutsideEventError(
            f"{day.isoformat()} lies outside the active event "
            f"({event.start_date.isoformat()} - {event.end_date.isoformat()})"
        )


def ensure_event_dates(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError("event start date must not be after its end date")
