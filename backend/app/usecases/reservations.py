from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..domain.errors import (
    BookingClosedError,
    BookingLimitReachedError,
    ConflictError,
    InvalidAccessCodeError,
    ReservationNotFoundError,
    SameSlotError,
    SlotAlreadyBookedError,
    SlotNotFoundError,
    ValidationError,
)
from ..domain.repositories import ReservationFilter, UnitOfWork
from ..domain.services import (
    SlotSnapshot,
    ensure_notice,
    ensure_requester_fields,
    ensure_self_service_allowed,
    ensure_slot_bookable,
    notice_satisfied,
)
from ..models import Reservation, ReservationStatus, Slot, SlotStatus
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.messages import BookingDetails, SlotInfo
from ..settings_store import BookingRules, SettingsStore
from ..utils.codes import generate_access_code
from ..utils.time import utc_now_naive
from .settings import load_values

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    reservation: Reservation
    slot: Slot
    warnings: list[str] = field(default_factory=list)


@dataclass
class RebookResult:
    reservation: Reservation
    slot: Slot
    previous_slot: SlotInfo
    warnings: list[str] = field(default_factory=list)


@dataclass
class StatusChange:
    reservation: Reservation
    slot: Slot
    status_from: ReservationStatus


@dataclass
class ReservationLookup:
    reservation: Reservation
    slot: Slot
    can_cancel: bool
    can_rebook: bool


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def _claim(uow: UnitOfWork, slot: Slot) -> None:
    """AVAILABLE -> BOOKED for a slot already locked by the caller."""
    has_active = await uow.reservations.has_active_for_slot(slot.id)
    ensure_slot_bookable(SlotSnapshot(status=slot.status, has_active_reservation=has_active))
    if not await uow.slots.mark_booked(slot):
        raise SlotAlreadyBookedError()


async def create_reservation(
    uow: UnitOfWork,
    store: SettingsStore,
    dispatcher: NotificationDispatcher | None = None,
    *,
    slot_id: int,
    requester_name: str,
    requester_email: str,
    requester_phone: str | None = None,
    contact_name: str | None = None,
    headcount: int = 1,
    notes: str | None = None,
) -> BookingResult:
    name = requester_name.strip()
    email = requester_email.strip()
    phone = _optional(requester_phone)
    contact = _optional(contact_name)
    if not name:
        raise ValidationError("requester name is required")
    if not email:
        raise ValidationError("requester email is required")
    if headcount < 1:
        raise ValidationError("headcount must be at least 1")

    values = await load_values(uow, store)
    rules = BookingRules.from_values(values)
    if not rules.booking_enabled:
        raise BookingClosedError("online booking is currently disabled")
    ensure_requester_fields(rules, phone=phone, contact_name=contact)

    async def work() -> tuple[Reservation, Slot]:
        slot = await uow.slots.get_for_update(slot_id)
        if slot is None:
            raise SlotNotFoundError()
        has_active = await uow.reservations.has_active_for_slot(slot.id)
        ensure_slot_bookable(SlotSnapshot(status=slot.status, has_active_reservation=has_active))
        ensure_notice(slot.date, slot.start_time, notice_hours=rules.booking_notice_hours, action="booked")
        if rules.max_bookings_per_requester > 0:
            held = await uow.reservations.count_active_for_requester(email)
            if held >= rules.max_bookings_per_requester:
                raise BookingLimitReachedError(
                    f"at most {rules.max_bookings_per_requester} bookings are allowed per requester"
                )
        if not await uow.slots.mark_booked(slot):
            raise SlotAlreadyBookedError()
        reservation = await uow.reservations.create(
            slot=slot,
            access_code=generate_access_code(),
            requester_name=name,
            requester_email=email,
            requester_phone=phone,
            contact_name=contact,
            headcount=headcount,
            notes=_optional(notes),
        )
        return reservation, slot

    reservation, slot = await uow.run(work, serializable=True)
    logger.info("reservation %s booked slot %s", reservation.id, slot.id)

    warnings: list[str] = []
    if dispatcher is not None:
        warnings = await dispatcher.booking_confirmed(values, BookingDetails.from_reservation(reservation, slot))
    return BookingResult(reservation=reservation, slot=slot, warnings=warnings)


async def cancel_by_code(
    uow: UnitOfWork,
    store: SettingsStore,
    dispatcher: NotificationDispatcher | None = None,
    *,
    access_code: str,
) -> BookingResult:
    values = await load_values(uow, store)
    rules = BookingRules.from_values(values)
    if not rules.allow_cancel:
        raise BookingClosedError("online cancellation is currently disabled")

    async def work() -> tuple[Reservation, Slot]:
        row = await uow.reservations.get_by_code_for_update(access_code.strip())
        if row is None:
            raise InvalidAccessCodeError()
        reservation, slot = row
        ensure_self_service_allowed(reservation.status)
        ensure_notice(slot.date, slot.start_time, notice_hours=rules.cancel_notice_hours, action="cancelled")
        reservation.status = ReservationStatus.CANCELLED
        reservation.cancelled_at = utc_now_naive()
        await uow.reservations.save(reservation)
        await uow.slots.set_status(slot, SlotStatus.AVAILABLE)
        return reservation, slot

    reservation, slot = await uow.run(work)
    logger.info("reservation %s cancelled, slot %s released", reservation.id, slot.id)

    warnings: list[str] = []
    if dispatcher is not None:
        warnings = await dispatcher.booking_cancelled(values, BookingDetails.from_reservation(reservation, slot))
    return BookingResult(reservation=reservation, slot=slot, warnings=warnings)


async def rebook(
    uow: UnitOfWork,
    store: SettingsStore,
    dispatcher: NotificationDispatcher | None = None,
    *,
    access_code: str,
    new_slot_id: int,
) -> RebookResult:
    """Move a confirmed reservation to another slot and rotate its access code.

    Both slots and the reservation change in one serializable transaction: the
    new slot is claimed with the same check as a fresh booking, the old slot is
    released, and the old access code stops working.
    """
    values = await load_values(uow, store)
    rules = BookingRules.from_values(values)
    if not rules.allow_rebook:
        raise BookingClosedError("online rebooking is currently disabled")

    async def work() -> tuple[Reservation, Slot, SlotInfo]:
        row = await uow.reservations.get_by_code_for_update(access_code.strip())
        if row is None:
            raise InvalidAccessCodeError()
        reservation, old_slot = row
        ensure_self_service_allowed(reservation.status)

        new_slot = await uow.slots.get_for_update(new_slot_id)
        if new_slot is None:
            raise SlotNotFoundError()
        if new_slot.id == old_slot.id:
            raise SameSlotError()
        has_active = await uow.reservations.has_active_for_slot(new_slot.id)
        ensure_slot_bookable(SlotSnapshot(status=new_slot.status, has_active_reservation=has_active))
        ensure_notice(old_slot.date, old_slot.start_time, notice_hours=rules.cancel_notice_hours, action="cancelled")
        ensure_notice(new_slot.date, new_slot.start_time, notice_hours=rules.booking_notice_hours, action="booked")

        previous = SlotInfo.from_slot(old_slot)
        if not await uow.slots.mark_booked(new_slot):
            raise SlotAlreadyBookedError()
        await uow.slots.set_status(old_slot, SlotStatus.AVAILABLE)

        reservation.slot_id = new_slot.id
        reservation.staff_id = new_slot.staff_id
        reservation.access_code = generate_access_code()
        await uow.reservations.save(reservation)
        return reservation, new_slot, previous

    reservation, slot, previous = await uow.run(work, serializable=True)
    logger.info("reservation %s moved from slot %s to slot %s", reservation.id, previous.slot_id, slot.id)

    warnings: list[str] = []
    if dispatcher is not None:
        warnings = await dispatcher.booking_rebooked(
            values, BookingDetails.from_reservation(reservation, slot), previous
        )
    return RebookResult(
        reservation=reservation,
        slot=slot,
        previous_slot=previous,
        warnings=warnings,
    )


def _reclaims(status_from: ReservationStatus, status_to: ReservationStatus) -> bool:
    return status_from == ReservationStatus.CANCELLED and status_to != ReservationStatus.CANCELLED


async def update_status(
    uow: UnitOfWork,
    *,
    reservation_id: int,
    status: ReservationStatus,
) -> StatusChange:
    """Administrative transition.

    Into CANCELLED releases the slot; out of CANCELLED re-claims it. Moves
    between the other states leave the slot alone. Only the re-claim needs
    serializable isolation, so the current status is read first to pick it.
    """
    current = await uow.run(lambda: uow.reservations.get(reservation_id))
    if current is None:
        raise ReservationNotFoundError()
    reclaim = _reclaims(current[0].status, status)

    async def work() -> StatusChange:
        row = await uow.reservations.get_for_update(reservation_id)
        if row is None:
            raise ReservationNotFoundError()
        reservation, slot = row
        status_from = reservation.status
        if status == status_from:
            return StatusChange(reservation=reservation, slot=slot, status_from=status_from)
        if _reclaims(status_from, status) and not reclaim:
            raise ConflictError("reservation was cancelled concurrently, try again")

        if status == ReservationStatus.CANCELLED:
            reservation.cancelled_at = utc_now_naive()
            if slot.status == SlotStatus.BOOKED:
                await uow.slots.set_status(slot, SlotStatus.AVAILABLE)
        elif status_from == ReservationStatus.CANCELLED:
            locked = await uow.slots.get_for_update(slot.id)
            if locked is None:
                raise SlotNotFoundError()
            await _claim(uow, locked)
            slot = locked
            reservation.cancelled_at = None

        reservation.status = status
        await uow.reservations.save(reservation)
        return StatusChange(reservation=reservation, slot=slot, status_from=status_from)

    change = await uow.run(work, serializable=reclaim)
    logger.info(
        "reservation %s status %s -> %s",
        change.reservation.id,
        change.status_from,
        change.reservation.status,
    )
    return change


async def lookup_by_code(uow: UnitOfWork, store: SettingsStore, *, access_code: str) -> ReservationLookup:
    values = await load_values(uow, store)
    rules = BookingRules.from_values(values)
    row = await uow.run(lambda: uow.reservations.get_by_code(access_code.strip()))
    if row is None:
        raise InvalidAccessCodeError()
    reservation, slot = row

    changeable = reservation.status == ReservationStatus.CONFIRMED and notice_satisfied(
        slot.date, slot.start_time, notice_hours=rules.cancel_notice_hours
    )
    return ReservationLookup(
        reservation=reservation,
        slot=slot,
        can_cancel=changeable and rules.allow_cancel,
        can_rebook=changeable and rules.allow_rebook,
    )


async def list_reservations(uow: UnitOfWork, filters: ReservationFilter) -> list[tuple[Reservation, Slot]]:
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise ValidationError("date_from must not be after date_to")
    return await uow.run(lambda: uow.reservations.list(filters))


async def get_reservation(uow: UnitOfWork, *, reservation_id: int) -> tuple[Reservation, Slot]:
    row = await uow.run(lambda: uow.reservations.get(reservation_id))
    if row is None:
        raise ReservationNotFoundError()
    return row
