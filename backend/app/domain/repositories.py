from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Awaitable, Callable, Iterable, Protocol, TypeVar

from ..models import Event, Reservation, ReservationStatus, Setting, Slot, SlotStatus, Staff

T = TypeVar("T")


@dataclass(frozen=True)
class ReservationFilter:
    status: ReservationStatus | None = None
    staff_id: int | None = None
    requester_email: str | None = None
    date_from: date | None = None
    date_to: date | None = None


class StaffRepository(Protocol):
    async def get(self, staff_id: int) -> Staff | None: ...


class SlotRepository(Protocol):
    async def get(self, slot_id: int) -> Slot | None: ...

    async def get_for_update(self, slot_id: int) -> Slot | None: ...

    async def mark_booked(self, slot: Slot) -> bool: ...

    async def set_status(self, slot: Slot, status: SlotStatus) -> Slot: ...

    async def find_by_key(self, staff_id: int, slot_date: date, start_time: time) -> Slot | None: ...

    async def existing_starts(self, staff_id: int, slot_date: date, starts: Iterable[time]) -> set[time]: ...

    async def create(
        self,
        *,
        staff_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot: ...

    async def create_if_absent(
        self,
        *,
        staff_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
    ) -> Slot | None: ...

    async def delete(self, slot: Slot) -> None: ...

    async def list(
        self,
        *,
        staff_id: int | None = None,
        slot_date: date | None = None,
        available_only: bool = False,
    ) -> list[Slot]: ...

    async def available_dates(self) -> list[tuple[date, int]]: ...


class ReservationRepository(Protocol):
    async def get(self, reservation_id: int) -> tuple[Reservation, Slot] | None: ...

    async def get_for_update(self, reservation_id: int) -> tuple[Reservation, Slot] | None: ...

    async def get_by_code(self, access_code: str) -> tuple[Reservation, Slot] | None: ...

    async def get_by_code_for_update(self, access_code: str) -> tuple[Reservation, Slot] | None: ...

    async def has_active_for_slot(self, slot_id: int) -> bool: ...

    async def count_active_for_requester(self, requester_email: str) -> int: ...

    async def create(
        self,
        *,
        slot: Slot,
        access_code: str,
        requester_name: str,
        requester_email: str,
        requester_phone: str | None,
        contact_name: str | None,
        headcount: int,
        notes: str | None,
    ) -> Reservation: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def list(self, filters: ReservationFilter) -> list[tuple[Reservation, Slot]]: ...


class SettingRepository(Protocol):
    async def load_all(self) -> dict[str, str]: ...

    async def list(self) -> list[Setting]: ...

    async def get(self, key: str) -> Setting | None: ...

    async def upsert(self, key: str, value: str, description: str | None = None) -> Setting: ...

    async def delete(self, setting: Setting) -> None: ...


class EventRepository(Protocol):
    async def get(self, event_id: int) -> Event | None: ...

    async def get_active(self) -> Event | None: ...

    async def list(self) -> list[Event]: ...

    async def create(
        self,
        *,
        name: str,
        description: str | None,
        start_date: date,
        end_date: date,
        is_active: bool,
    ) -> Event: ...

    async def save(self, event: Event) -> Event: ...

    async def deactivate_others(self, keep_id: int | None = None) -> None: ...

    async def delete(self, event: Event) -> None: ...


class UnitOfWork(Protocol):
    staff: StaffRepository
    slots: SlotRepository
    reservations: ReservationRepository
    settings: SettingRepository
    events: EventRepository

    async def run(self, work: Callable[[], Awaitable[T]], *, serializable: bool = False) -> T: ...
