from __future__ import annotations

import logging
from datetime import date, time
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..domain.errors import (
    DuplicateSlotError,
    SlotBookedError,
    SlotNotFoundError,
    StaffNotFoundError,
    ValidationError,
)
from ..domain.repositories import UnitOfWork
from ..domain.services import (
    Actor,
    ensure_can_manage,
    ensure_slot_mutable,
    ensure_time_range,
    ensure_within_event,
    tile_day,
)
from ..models import Slot, SlotStatus
from ..settings_store import SettingsStore, SlotGenerationDefaults
from ..utils.time import parse_hhmm
from .settings import load_values

logger = logging.getLogger(__name__)

# BOOKED is only ever reached through a reservation.
_SETTABLE_STATUSES = (SlotStatus.AVAILABLE, SlotStatus.BLOCKED)


def _ensure_settable(status: SlotStatus) -> None:
    if status not in _SETTABLE_STATUSES:
        raise ValidationError("slot status can only be set to AVAILABLE or BLOCKED")


async def _ensure_staff(uow: UnitOfWork, staff_id: int) -> None:
    staff = await uow.staff.get(staff_id)
    if staff is None:
        raise StaffNotFoundError()


async def _ensure_event_window(uow: UnitOfWork, slot_date: date) -> None:
    ensure_within_event(await uow.events.get_active(), slot_date)


async def list_slots(
    uow: UnitOfWork,
    *,
    staff_id: int | None = None,
    slot_date: date | None = None,
    available_only: bool = False,
) -> list[Slot]:
    return await uow.run(
        lambda: uow.slots.list(staff_id=staff_id, slot_date=slot_date, available_only=available_only)
    )


async def available_dates(uow: UnitOfWork) -> list[tuple[date, int]]:
    return await uow.run(uow.slots.available_dates)


async def get_slot(uow: UnitOfWork, *, slot_id: int) -> Slot:
    slot = await uow.run(lambda: uow.slots.get(slot_id))
    if slot is None:
        raise SlotNotFoundError()
    return slot


async def generation_defaults(uow: UnitOfWork, store: SettingsStore) -> SlotGenerationDefaults:
    return SlotGenerationDefaults.from_values(await load_values(uow, store))


async def create_slot(
    uow: UnitOfWork,
    actor: Actor,
    *,
    staff_id: int,
    slot_date: date,
    start_time: time,
    end_time: time,
    status: SlotStatus = SlotStatus.AVAILABLE,
) -> Slot:
    ensure_can_manage(actor, staff_id)
    ensure_time_range(start_time, end_time)
    _ensure_settable(status)

    async def work() -> Slot:
        await _ensure_staff(uow, staff_id)
        await _ensure_event_window(uow, slot_date)
        if await uow.slots.find_by_key(staff_id, slot_date, start_time) is not None:
            raise DuplicateSlotError()
        return await uow.slots.create(
            staff_id=staff_id,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
        )

    try:
        slot = await uow.run(work)
    except IntegrityError as exc:
        # lost a race against a concurrent insert of the same key
        raise DuplicateSlotError() from exc
    logger.info("slot %s created for staff %s on %s", slot.id, staff_id, slot_date)
    return slot


async def bulk_create_slots(
    uow: UnitOfWork,
    actor: Actor,
    *,
    staff_id: int,
    slot_date: date,
    ranges: Iterable[tuple[time, time]],
) -> list[Slot]:
    """Insert every range whose start is not taken yet; existing starts are skipped.

    Returns only the slots this call created, so repeating a request is a no-op.
    """
    ensure_can_manage(actor, staff_id)
    wanted: dict[time, time] = {}
    for start, end in ranges:
        ensure_time_range(start, end)
        wanted.setdefault(start, end)
    if not wanted:
        raise ValidationError("no time ranges given")

    async def work() -> list[Slot]:
        await _ensure_staff(uow, staff_id)
        await _ensure_event_window(uow, slot_date)
        taken = await uow.slots.existing_starts(staff_id, slot_date, wanted.keys())
        created: list[Slot] = []
        for start in sorted(wanted):
            if start in taken:
                continue
            # a concurrent run may insert the same start after the lookup above
            slot = await uow.slots.create_if_absent(
                staff_id=staff_id,
                slot_date=slot_date,
                start_time=start,
                end_time=wanted[start],
            )
            if slot is not None:
                created.append(slot)
        return created

    created = await uow.run(work)
    logger.info(
        "bulk slots for staff %s on %s: %d created, %d skipped",
        staff_id,
        slot_date,
        len(created),
        len(wanted) - len(created),
    )
    return created


async def generate_slots(
    uow: UnitOfWork,
    store: SettingsStore,
    actor: Actor,
    *,
    staff_id: int,
    slot_date: date,
    start_time: time | None = None,
    end_time: time | None = None,
    duration_minutes: int | None = None,
    buffer_minutes: int | None = None,
) -> list[Slot]:
    ensure_can_manage(actor, staff_id)
    defaults = await generation_defaults(uow, store)
    try:
        start = start_time if start_time is not None else parse_hhmm(defaults.day_start)
        end = end_time if end_time is not None else parse_hhmm(defaults.day_end)
    except ValueError as exc:
        raise ValidationError("stored day window is not in HH:MM format") from exc

    segments = tile_day(
        start,
        end,
        duration_minutes=duration_minutes if duration_minutes is not None else defaults.duration_minutes,
        buffer_minutes=buffer_minutes if buffer_minutes is not None else defaults.buffer_minutes,
    )
    return await bulk_create_slots(uow, actor, staff_id=staff_id, slot_date=slot_date, ranges=segments)


async def _locked_slot(uow: UnitOfWork, actor: Actor, slot_id: int) -> Slot:
    slot = await uow.slots.get_for_update(slot_id)
    if slot is None:
        raise SlotNotFoundError()
    ensure_can_manage(actor, slot.staff_id)
    ensure_slot_mutable(slot.status)
    if await uow.reservations.has_active_for_slot(slot.id):
        raise SlotBookedError()
    return slot


async def set_slot_status(uow: UnitOfWork, actor: Actor, *, slot_id: int, status: SlotStatus) -> Slot:
    _ensure_settable(status)

    async def work() -> Slot:
        slot = await _locked_slot(uow, actor, slot_id)
        if slot.status == status:
            return slot
        return await uow.slots.set_status(slot, status)

    slot = await uow.run(work)
    logger.info("slot %s set to %s", slot.id, slot.status)
    return slot


async def toggle_slot(uow: UnitOfWork, actor: Actor, *, slot_id: int) -> Slot:
    async def work() -> Slot:
        slot = await _locked_slot(uow, actor, slot_id)
        target = SlotStatus.BLOCKED if slot.status == SlotStatus.AVAILABLE else SlotStatus.AVAILABLE
        return await uow.slots.set_status(slot, target)

    slot = await uow.run(work)
    logger.info("slot %s toggled to %s", slot.id, slot.status)
    return slot


async def delete_slot(uow: UnitOfWork, actor: Actor, *, slot_id: int) -> None:
    async def work() -> None:
        slot = await _locked_slot(uow, actor, slot_id)
        await uow.slots.delete(slot)

    await uow.run(work)
    logger.info("slot %s deleted", slot_id)
