import datetime as dt
from datetime import datetime, time
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_serializer

from .models import Event, Reservation, ReservationStatus, Setting, Slot, SlotStatus
from .notifications.messages import SlotInfo
from .utils.time import format_hhmm, utc_naive_to_local


class _TimeFields(BaseModel):
    @field_serializer("start_time", "end_time", check_fields=False)
    def _ser_time(self, value: time) -> str:
        return format_hhmm(value)


class SlotRead(_TimeFields):
    slot_id: int
    staff_id: int
    staff_name: Optional[str] = None
    room: Optional[str] = None
    date: dt.date
    start_time: time
    end_time: time
    status: SlotStatus

    @classmethod
    def from_db(cls, *, slot: Slot) -> "SlotRead":
        staff = slot.staff
        return cls(
            slot_id=slot.id,
            staff_id=slot.staff_id,
            staff_name=staff.display_name if staff is not None else None,
            room=staff.room if staff is not None else None,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            status=slot.status,
        )


class SlotSummary(_TimeFields):
    slot_id: int
    staff_id: int
    staff_name: str
    date: dt.date
    start_time: time
    end_time: time

    @classmethod
    def from_info(cls, info: SlotInfo) -> "SlotSummary":
        return cls(
            slot_id=info.slot_id,
            staff_id=info.staff_id,
            staff_name=info.staff_name,
            date=info.date,
            start_time=info.start_time,
            end_time=info.end_time,
        )


class SlotCreate(BaseModel):
    staff_id: Optional[int] = Field(default=None, ge=1)
    date: dt.date
    start_time: time
    end_time: time
    status: SlotStatus = SlotStatus.AVAILABLE


class TimeRange(BaseModel):
    start_time: time
    end_time: time


class SlotBulkCreate(BaseModel):
    staff_id: Optional[int] = Field(default=None, ge=1)
    date: dt.date
    slots: list[TimeRange] = Field(min_length=1)


class SlotGenerate(BaseModel):
    staff_id: Optional[int] = Field(default=None, ge=1)
    date: dt.date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=480)
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=240)


class SlotBulkResult(BaseModel):
    created: int
    slots: list[SlotRead]


class SlotStatusUpdate(BaseModel):
    status: SlotStatus


class AvailableDate(BaseModel):
    date: dt.date
    available: int


class SlotGenerationSettings(BaseModel):
    slot_duration_minutes: int
    slot_buffer_minutes: int
    day_start_time: str
    day_end_time: str


class ReservationCreate(BaseModel):
    slot_id: int = Field(ge=1)
    requester_name: str = Field(min_length=1, max_length=255)
    requester_email: EmailStr
    requester_phone: Optional[str] = Field(default=None, max_length=50)
    contact_name: Optional[str] = Field(default=None, max_length=255)
    headcount: int = Field(default=1, ge=1, le=50)
    notes: Optional[str] = Field(default=None, max_length=500)


class ReservationCancel(BaseModel):
    access_code: str = Field(min_length=1, max_length=64)


class ReservationRebook(BaseModel):
    access_code: str = Field(min_length=1, max_length=64)
    new_slot_id: int = Field(ge=1)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(_TimeFields):
    reservation_id: int
    slot_id: int
    staff_id: int
    staff_name: Optional[str] = None
    room: Optional[str] = None
    date: dt.date
    start_time: time
    end_time: time
    requester_name: str
    requester_email: str
    requester_phone: Optional[str]
    contact_name: Optional[str]
    headcount: int
    notes: Optional[str]
    status: ReservationStatus
    booked_at: datetime
    cancelled_at: Optional[datetime]

    @field_serializer("booked_at", "cancelled_at")
    def _ser_datetime(self, value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        return utc_naive_to_local(value).isoformat()

    @classmethod
    def _fields(cls, reservation: Reservation, slot: Slot) -> dict[str, Any]:
        staff = slot.staff
        return dict(
            reservation_id=reservation.id,
            slot_id=reservation.slot_id,
            staff_id=reservation.staff_id,
            staff_name=staff.display_name if staff is not None else None,
            room=staff.room if staff is not None else None,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            requester_name=reservation.requester_name,
            requester_email=reservation.requester_email,
            requester_phone=reservation.requester_phone,
            contact_name=reservation.contact_name,
            headcount=reservation.headcount,
            notes=reservation.notes,
            status=reservation.status,
            booked_at=reservation.booked_at,
            cancelled_at=reservation.cancelled_at,
        )

    @classmethod
    def from_db(cls, *, reservation: Reservation, slot: Slot) -> "ReservationRead":
        return cls(**cls._fields(reservation, slot))


class ReservationWithCode(ReservationRead):
    access_code: str
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(
        cls,
        *,
        reservation: Reservation,
        slot: Slot,
        warnings: list[str],
        **extra: Any,
    ) -> "ReservationWithCode":
        return cls(
            **cls._fields(reservation, slot),
            access_code=reservation.access_code,
            warnings=warnings,
            **extra,
        )


class RebookRead(ReservationWithCode):
    previous_slot: SlotSummary


class CancelRead(BaseModel):
    reservation_id: int
    status: ReservationStatus
    slot_id: int
    slot_status: SlotStatus
    warnings: list[str] = Field(default_factory=list)


class ReservationCheck(BaseModel):
    reservation: ReservationRead
    can_cancel: bool
    can_rebook: bool


class SettingRead(BaseModel):
    key: str
    value: str
    description: Optional[str]
    updated_at: datetime

    @classmethod
    def from_db(cls, setting: Setting) -> "SettingRead":
        return cls(
            key=setting.key,
            value=setting.value,
            description=setting.description,
            updated_at=setting.updated_at,
        )


class SettingWrite(BaseModel):
    value: str = Field(max_length=5000)
    description: Optional[str] = Field(default=None, max_length=255)


class SettingsBulkWrite(BaseModel):
    settings: dict[str, str] = Field(min_length=1)


class EventRead(BaseModel):
    event_id: int
    name: str
    description: Optional[str]
    start_date: dt.date
    end_date: dt.date
    is_active: bool

    @classmethod
    def from_db(cls, event: Event) -> "EventRead":
        return cls(
            event_id=event.id,
            name=event.name,
            description=event.description,
            start_date=event.start_date,
            end_date=event.end_date,
            is_active=event.is_active,
        )


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    start_date: dt.date
    end_date: dt.date
    is_active: bool = False


class EventUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    is_active: Optional[bool] = None
