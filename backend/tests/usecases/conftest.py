from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Awaitable, Callable, Iterable, Optional, Tuple, TypeVar

import pytest
from app.domain.repositories import ReservationFilter
from app.models import Event, Reservation, ReservationStatus, Setting, Slot, SlotStatus, Staff
from app.settings_store import SettingsStore

T = TypeVar("T")


def _now() -> datetime:
    return datetime(2030, 1, 1, 12, 0)


class FakeStaffRepo:
    def __init__(self) -> None:
        self.rows: dict[int, Staff] = {}

    async def get(self, staff_id: int) -> Optional[Staff]:
        return self.rows.get(staff_id)


class FakeSlotRepo:
    def __init__(self, uow: "FakeUnitOfWork") -> None:
        self.uow = uow
        self.rows: dict[int, Slot] = {}

    async def get(self, slot_id: int) -> Optional[Slot]:
        return self.rows.get(slot_id)

    async def get_for_update(self, slot_id: int) -> Optional[Slot]:
        return self.rows.get(slot_id)

    async def mark_booked(self, slot: Slot) -> bool:
        if slot.status != SlotStatus.AVAILABLE:
            return False
        slot.status = SlotStatus.BOOKED
        return True

    async def set_status(self, slot: Slot, status: SlotStatus) -> Slot:
        slot.status = status
        return slot

    async def find_by_key(self, staff_id: int, slot_date: date, start_time: time) -> Optional[Slot]:
        for slot in self.rows.values():
            if (slot.staff_id, slot.date, slot.start_time) == (staff_id, slot_date, start_time):
                return slot
        return None

    async def existing_starts(self, staff_id: int, slot_date: date, starts: Iterable[time]) -> set[time]:
        wanted = set(starts)
        return {
            s.start_time
            for s in self.rows.values()
            if s.staff_id == staff_id and s.date == slot_date and s.start_time in wanted
        }

    async def create(
        self,
        *,
        staff_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        return self.uow.add_slot(staff_id=staff_id, slot_date=slot_date, start=start_time, end=end_time, status=status)

    async def create_if_absent(
        self, *, staff_id: int, slot_date: date, start_time: time, end_time: time
    ) -> Optional[Slot]:
        if await self.find_by_key(staff_id, slot_date, start_time) is not None:
            return None
        return self.uow.add_slot(staff_id=staff_id, slot_date=slot_date, start=start_time, end=end_time)

    async def delete(self, slot: Slot) -> None:
        del self.rows[slot.id]
        for res_id in [r.id for r in self.uow.reservations.rows.values() if r.slot_id == slot.id]:
            del self.uow.reservations.rows[res_id]

    async def list(
        self,
        *,
        staff_id: int | None = None,
        slot_date: date | None = None,
        available_only: bool = False,
    ) -> list[Slot]:
        rows = [
            s
            for s in self.rows.values()
            if (staff_id is None or s.staff_id == staff_id)
            and (slot_date is None or s.date == slot_date)
            and (not available_only or s.status == SlotStatus.AVAILABLE)
        ]
        return sorted(rows, key=lambda s: (s.date, s.start_time, s.staff_id))

    async def available_dates(self) -> list[tuple[date, int]]:
        counts: dict[date, int] = {}
        for s in self.rows.values():
            if s.status == SlotStatus.AVAILABLE:
                counts[s.date] = counts.get(s.date, 0) + 1
        return sorted(counts.items())


class FakeReservationRepo:
    def __init__(self, uow: "FakeUnitOfWork") -> None:
        self.uow = uow
        self.rows: dict[int, Reservation] = {}
        self.saved: list[int] = []

    def _row(self, reservation: Optional[Reservation]) -> Optional[Tuple[Reservation, Slot]]:
        if reservation is None:
            return None
        return reservation, self.uow.slots.rows[reservation.slot_id]

    async def get(self, reservation_id: int) -> Optional[Tuple[Reservation, Slot]]:
        return self._row(self.rows.get(reservation_id))

    async def get_for_update(self, reservation_id: int) -> Optional[Tuple[Reservation, Slot]]:
        return self._row(self.rows.get(reservation_id))

    async def get_by_code(self, access_code: str) -> Optional[Tuple[Reservation, Slot]]:
        return self._row(next((r for r in self.rows.values() if r.access_code == access_code), None))

    async def get_by_code_for_update(self, access_code: str) -> Optional[Tuple[Reservation, Slot]]:
        return await self.get_by_code(access_code)

    async def has_active_for_slot(self, slot_id: int) -> bool:
        return any(r.slot_id == slot_id and r.status != ReservationStatus.CANCELLED for r in self.rows.values())

    async def count_active_for_requester(self, requester_email: str) -> int:
        return sum(
            1
            for r in self.rows.values()
            if r.requester_email.lower() == requester_email.lower() and r.status == ReservationStatus.CONFIRMED
        )

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
    ) -> Reservation:
        reservation = self.uow.add_reservation(
            slot,
            access_code=access_code,
            requester_name=requester_name,
            requester_email=requester_email,
            requester_phone=requester_phone,
            contact_name=contact_name,
            headcount=headcount,
            notes=notes,
        )
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        self.saved.append(reservation.id)
        return reservation

    async def list(self, filters: ReservationFilter) -> list[Tuple[Reservation, Slot]]:
        rows = [self._row(r) for r in self.rows.values() if filters.status is None or r.status == filters.status]
        return [row for row in rows if row is not None]


class FakeSettingRepo:
    def __init__(self) -> None:
        self.rows: dict[str, Setting] = {}
        self.loads = 0

    async def load_all(self) -> dict[str, str]:
        self.loads += 1
        return {key: s.value for key, s in self.rows.items()}

    async def list(self) -> list[Setting]:
        return [self.rows[key] for key in sorted(self.rows)]

    async def get(self, key: str) -> Optional[Setting]:
        return self.rows.get(key)

    async def upsert(self, key: str, value: str, description: str | None = None) -> Setting:
        setting = self.rows.get(key)
        if setting is None:
            setting = Setting(key=key, value=value, description=description, updated_at=_now())
            self.rows[key] = setting
        else:
            setting.value = value
        return setting

    async def delete(self, setting: Setting) -> None:
        del self.rows[setting.key]


class FakeEventRepo:
    def __init__(self, uow: "FakeUnitOfWork") -> None:
        self.uow = uow
        self.rows: dict[int, Event] = {}

    async def get(self, event_id: int) -> Optional[Event]:
        return self.rows.get(event_id)

    async def get_active(self) -> Optional[Event]:
        active = [e for e in self.rows.values() if e.is_active]
        return max(active, key=lambda e: e.start_date, default=None)

    async def list(self) -> list[Event]:
        return sorted(self.rows.values(), key=lambda e: e.start_date, reverse=True)

    async def create(
        self,
        *,
        name: str,
        description: str | None,
        start_date: date,
        end_date: date,
        is_active: bool,
    ) -> Event:
        return self.uow.add_event(
            name=name, description=description, start_date=start_date, end_date=end_date, is_active=is_active
        )

    async def save(self, event: Event) -> Event:
        return event

    async def deactivate_others(self, keep_id: int | None = None) -> None:
        for event in self.rows.values():
            if event.id != keep_id:
                event.is_active = False

    async def delete(self, event: Event) -> None:
        del self.rows[event.id]


class FakeUnitOfWork:
    """In-memory unit of work; `runs` records the isolation each call asked for."""

    def __init__(self) -> None:
        self.staff = FakeStaffRepo()
        self.slots = FakeSlotRepo(self)
        self.reservations = FakeReservationRepo(self)
        self.settings = FakeSettingRepo()
        self.events = FakeEventRepo(self)
        self.runs: list[bool] = []
        self._ids = 0

    def _next_id(self) -> int:
        self._ids += 1
        return self._ids

    async def run(self, work: Callable[[], Awaitable[T]], *, serializable: bool = False) -> T:
        self.runs.append(serializable)
        return await work()

    def add_staff(self, *, is_admin: bool = False) -> Staff:
        staff = Staff(
            id=self._next_id(),
            email=f"staff{self._ids}@example.org",
            first_name="Anna",
            last_name="Lehmann",
            room="B12",
            is_admin=is_admin,
            is_active=True,
            created_at=_now(),
            updated_at=_now(),
        )
        self.staff.rows[staff.id] = staff
        return staff

    def add_slot(
        self,
        *,
        staff_id: int | None = None,
        slot_date: date | None = None,
        start: time = time(10, 0),
        end: time = time(10, 20),
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        if staff_id is None:
            staff_id = self.add_staff().id
        slot = Slot(
            id=self._next_id(),
            staff_id=staff_id,
            date=slot_date or (date.today() + timedelta(days=10)),
            start_time=start,
            end_time=end,
            status=status,
            created_at=_now(),
            updated_at=_now(),
        )
        slot.staff = self.staff.rows.get(staff_id)
        self.slots.rows[slot.id] = slot
        return slot

    def add_reservation(
        self,
        slot: Slot,
        *,
        access_code: str | None = None,
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        requester_name: str = "Mia Schulz",
        requester_email: str = "parent@example.org",
        requester_phone: str | None = None,
        contact_name: str | None = "Ben",
        headcount: int = 1,
        notes: str | None = None,
    ) -> Reservation:
        rid = self._next_id()
        reservation = Reservation(
            id=rid,
            slot_id=slot.id,
            staff_id=slot.staff_id,
            access_code=access_code or f"code-{rid}",
            requester_name=requester_name,
            requester_email=requester_email,
            requester_phone=requester_phone,
            contact_name=contact_name,
            headcount=headcount,
            notes=notes,
            status=status,
            booked_at=_now(),
            cancelled_at=None,
            updated_at=_now(),
        )
        self.reservations.rows[rid] = reservation
        return reservation

    def add_event(
        self,
        *,
        name: str = "Elternsprechtag",
        description: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        is_active: bool = True,
    ) -> Event:
        today = date.today()
        event = Event(
            id=self._next_id(),
            name=name,
            description=description,
            start_date=start_date or today - timedelta(days=365),
            end_date=end_date or today + timedelta(days=365),
            is_active=is_active,
            created_at=_now(),
            updated_at=_now(),
        )
        self.events.rows[event.id] = event
        return event

    def set(self, **values: str) -> None:
        for key, value in values.items():
            self.settings.rows[key] = Setting(key=key, value=value, description=None, updated_at=_now())


@pytest.fixture
def uow() -> FakeUnitOfWork:
    unit = FakeUnitOfWork()
    unit.add_event()
    return unit


@pytest.fixture
def store() -> SettingsStore:
    return SettingsStore(ttl_seconds=60)
