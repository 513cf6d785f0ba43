from __future__ import annotations

from datetime import date, time
from typing import Iterable, List, Optional, Tuple, cast

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from ..domain.repositories import (
    EventRepository,
    ReservationFilter,
    ReservationRepository,
    SettingRepository,
    SlotRepository,
    StaffRepository,
)
from ..models import ACTIVE_RESERVATION_STATUSES, Event, Reservation, ReservationStatus, Setting, Slot, SlotStatus, Staff
from ..utils.time import utc_now_naive


class SqlAlchemyStaffRepository(StaffRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, staff_id: int) -> Staff | None:
        return await self.session.get(Staff, staff_id)


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self) -> Select[Tuple[Slot]]:
        return select(Slot).options(selectinload(Slot.staff))

    async def get(self, slot_id: int) -> Slot | None:
        result = await self.session.scalar(self._select().where(Slot.id == slot_id))
        return result if isinstance(result, Slot) else None

    async def get_for_update(self, slot_id: int) -> Slot | None:
        stmt = (
            self._select()
            .where(Slot.id == slot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Slot) else None

    async def mark_booked(self, slot: Slot) -> bool:
        """Compare-and-set AVAILABLE -> BOOKED. False when another writer got there first."""
        now = utc_now_naive()
        result = await self.session.execute(
            update(Slot)
            .where(Slot.id == slot.id, Slot.status == SlotStatus.AVAILABLE)
            .values(status=SlotStatus.BOOKED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:  # type: ignore[attr-defined]
            return False
        set_committed_value(slot, "status", SlotStatus.BOOKED)
        set_committed_value(slot, "updated_at", now)
        return True

    async def set_status(self, slot: Slot, status: SlotStatus) -> Slot:
        slot.status = status
        slot.updated_at = utc_now_naive()
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def find_by_key(self, staff_id: int, slot_date: date, start_time: time) -> Slot | None:
        stmt = self._select().where(
            Slot.staff_id == staff_id,
            Slot.date == slot_date,
            Slot.start_time == start_time,
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Slot) else None

    async def existing_starts(self, staff_id: int, slot_date: date, starts: Iterable[time]) -> set[time]:
        wanted = list(starts)
        if not wanted:
            return set()
        stmt = select(Slot.start_time).where(
            Slot.staff_id == staff_id,
            Slot.date == slot_date,
            Slot.start_time.in_(wanted),
        )
        return set((await self.session.scalars(stmt)).all())

    async def create(
        self,
        *,
        staff_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        now = utc_now_naive()
        slot = Slot(
            staff_id=staff_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(slot)
        await self.session.flush()
        await self.session.refresh(slot, attribute_names=["staff"])
        return slot

    async def create_if_absent(
        self,
        *,
        staff_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
    ) -> Slot | None:
        """Insert inside a savepoint; None when a concurrent writer already holds the key."""
        now = utc_now_naive()
        slot = Slot(
            staff_id=staff_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=SlotStatus.AVAILABLE,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(slot)
                await self.session.flush()
        except IntegrityError:
            return None
        await self.session.refresh(slot, attribute_names=["staff"])
        return slot

    async def delete(self, slot: Slot) -> None:
        # Only cancelled history can still point at a deletable slot.
        await self.session.execute(delete(Reservation).where(Reservation.slot_id == slot.id))
        await self.session.execute(delete(Slot).where(Slot.id == slot.id))

    async def list(
        self,
        *,
        staff_id: int | None = None,
        slot_date: date | None = None,
        available_only: bool = False,
    ) -> List[Slot]:
        stmt = self._select().order_by(Slot.date, Slot.start_time, Slot.staff_id)
        if staff_id is not None:
            stmt = stmt.where(Slot.staff_id == staff_id)
        if slot_date is not None:
            stmt = stmt.where(Slot.date == slot_date)
        if available_only:
            stmt = stmt.where(Slot.status == SlotStatus.AVAILABLE)
        return list((await self.session.scalars(stmt)).all())

    async def available_dates(self) -> List[Tuple[date, int]]:
        stmt = (
            select(Slot.date, func.count(Slot.id))
            .where(Slot.status == SlotStatus.AVAILABLE)
            .group_by(Slot.date)
            .order_by(Slot.date)
        )
        rows = await self.session.execute(stmt)
        return [(slot_date, int(count)) for slot_date, count in rows.all()]


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self) -> Select[Tuple[Reservation, Slot]]:
        return (
            select(Reservation, Slot)
            .join(Slot, Reservation.slot_id == Slot.id)
            .options(selectinload(Slot.staff))
        )

    async def _first(self, stmt: Select[Tuple[Reservation, Slot]]) -> Optional[Tuple[Reservation, Slot]]:
        row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Slot]], tuple(row) if row is not None else None)

    async def get(self, reservation_id: int) -> Optional[Tuple[Reservation, Slot]]:
        return await self._first(self._select().where(Reservation.id == reservation_id))

    async def get_for_update(self, reservation_id: int) -> Optional[Tuple[Reservation, Slot]]:
        stmt = (
            self._select()
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self._first(stmt)

    async def get_by_code(self, access_code: str) -> Optional[Tuple[Reservation, Slot]]:
        return await self._first(self._select().where(Reservation.access_code == access_code))

    async def get_by_code_for_update(self, access_code: str) -> Optional[Tuple[Reservation, Slot]]:
        stmt = (
            self._select()
            .where(Reservation.access_code == access_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self._first(stmt)

    async def has_active_for_slot(self, slot_id: int) -> bool:
        stmt = (
            select(Reservation.id)
            .where(
                Reservation.slot_id == slot_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .limit(1)
        )
        return await self.session.scalar(stmt) is not None

    async def count_active_for_requester(self, requester_email: str) -> int:
        stmt = select(func.count(Reservation.id)).where(
            func.lower(Reservation.requester_email) == requester_email.lower(),
            Reservation.status == ReservationStatus.CONFIRMED,
        )
        return int(await self.session.scalar(stmt) or 0)

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
        now = utc_now_naive()
        reservation = Reservation(
            slot_id=slot.id,
            staff_id=slot.staff_id,
            access_code=access_code,
            requester_name=requester_name,
            requester_email=requester_email,
            requester_phone=requester_phone,
            contact_name=contact_name,
            headcount=headcount,
            notes=notes,
            status=ReservationStatus.CONFIRMED,
            booked_at=now,
            cancelled_at=None,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = utc_now_naive()
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def list(self, filters: ReservationFilter) -> List[Tuple[Reservation, Slot]]:
        stmt = self._select().order_by(Slot.date, Slot.start_time)
        if filters.status is not None:
            stmt = stmt.where(Reservation.status == filters.status)
        if filters.staff_id is not None:
            stmt = stmt.where(Reservation.staff_id == filters.staff_id)
        if filters.requester_email:
            stmt = stmt.where(func.lower(Reservation.requester_email) == filters.requester_email.lower())
        if filters.date_from is not None:
            stmt = stmt.where(Slot.date >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(Slot.date <= filters.date_to)
        rows = await self.session.execute(stmt)
        return [(reservation, slot) for reservation, slot in rows.all()]


class SqlAlchemySettingRepository(SettingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_all(self) -> dict[str, str]:
        rows = await self.session.execute(select(Setting.key, Setting.value))
        return {key: value for key, value in rows.all()}

    async def list(self) -> List[Setting]:
        return list((await self.session.scalars(select(Setting).order_by(Setting.key))).all())

    async def get(self, key: str) -> Setting | None:
        return await self.session.get(Setting, key)

    async def upsert(self, key: str, value: str, description: str | None = None) -> Setting:
        now = utc_now_naive()
        setting = await self.session.get(Setting, key)
        if setting is None:
            setting = Setting(key=key, value=value, description=description, updated_at=now)
            self.session.add(setting)
        else:
            setting.value = value
            if description:
                setting.description = description
            setting.updated_at = now
        await self.session.flush()
        return setting

    async def delete(self, setting: Setting) -> None:
        await self.session.delete(setting)
        await self.session.flush()


class SqlAlchemyEventRepository(EventRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, event_id: int) -> Event | None:
        return await self.session.get(Event, event_id)

    async def get_active(self) -> Event | None:
        stmt = select(Event).where(Event.is_active.is_(True)).order_by(Event.start_date.desc()).limit(1)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Event) else None

    async def list(self) -> List[Event]:
        return list((await self.session.scalars(select(Event).order_by(Event.start_date.desc()))).all())

    async def create(
        self,
        *,
        name: str,
        description: str | None,
        start_date: date,
        end_date: date,
        is_active: bool,
    ) -> Event:
        now = utc_now_naive()
        event = Event(
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def save(self, event: Event) -> Event:
        event.updated_at = utc_now_naive()
        self.session.add(event)
        await self.session.flush()
        return event

    async def deactivate_others(self, keep_id: int | None = None) -> None:
        stmt = update(Event).where(Event.is_active.is_(True))
        if keep_id is not None:
            stmt = stmt.where(Event.id != keep_id)
        await self.session.execute(stmt.values(is_active=False, updated_at=utc_now_naive()))

    async def delete(self, event: Event) -> None:
        await self.session.delete(event)
        await self.session.flush()
