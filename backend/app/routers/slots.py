import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ..deps import get_current_staff, get_settings_store, get_uow
from ..domain.repositories import UnitOfWork
from ..domain.services import Actor
from ..models import Slot
from ..schemas import (
    AvailableDate,
    SlotBulkCreate,
    SlotBulkResult,
    SlotCreate,
    SlotGenerate,
    SlotGenerationSettings,
    SlotRead,
    SlotStatusUpdate,
)
from ..settings_store import SettingsStore
from ..usecases import slots as slot_usecase
from ..utils.audit_log import audit

router = APIRouter(prefix="/timeslots", tags=["timeslots"])
manage_router = APIRouter(
    prefix="/timeslots",
    tags=["timeslots"],
    dependencies=[Depends(get_current_staff)],
)


def _bulk_result(created: list[Slot], actor: Actor) -> SlotBulkResult:
    for slot in created:
        audit(action="slot.created", initiator="staff", actor_id=actor.staff_id, slot_id=slot.id, staff_id=slot.staff_id)
    return SlotBulkResult(created=len(created), slots=[SlotRead.from_db(slot=slot) for slot in created])


@router.get("", response_model=List[SlotRead])
async def list_slots(
    staff_id: Optional[int] = Query(default=None, ge=1),
    date: Optional[dt.date] = Query(default=None),
    available_only: bool = Query(default=False),
    uow: UnitOfWork = Depends(get_uow),
) -> list[SlotRead]:
    slots = await slot_usecase.list_slots(uow, staff_id=staff_id, slot_date=date, available_only=available_only)
    return [SlotRead.from_db(slot=slot) for slot in slots]


@router.get("/available", response_model=List[SlotRead])
async def list_available_slots(
    date: Optional[dt.date] = Query(default=None),
    staff_id: Optional[int] = Query(default=None, ge=1),
    uow: UnitOfWork = Depends(get_uow),
) -> list[SlotRead]:
    slots = await slot_usecase.list_slots(uow, staff_id=staff_id, slot_date=date, available_only=True)
    return [SlotRead.from_db(slot=slot) for slot in slots]


@router.get("/dates", response_model=List[AvailableDate])
async def list_available_dates(uow: UnitOfWork = Depends(get_uow)) -> list[AvailableDate]:
    rows = await slot_usecase.available_dates(uow)
    return [AvailableDate(date=slot_date, available=count) for slot_date, count in rows]


@router.get(
    "/settings",
    response_model=SlotGenerationSettings,
    dependencies=[Depends(get_current_staff)],
)
async def get_generation_settings(
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
) -> SlotGenerationSettings:
    defaults = await slot_usecase.generation_defaults(uow, store)
    return SlotGenerationSettings(
        slot_duration_minutes=defaults.duration_minutes,
        slot_buffer_minutes=defaults.buffer_minutes,
        day_start_time=defaults.day_start,
        day_end_time=defaults.day_end,
    )


@router.get("/{slot_id}", response_model=SlotRead)
async def get_slot(
    slot_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
) -> SlotRead:
    slot = await slot_usecase.get_slot(uow, slot_id=slot_id)
    return SlotRead.from_db(slot=slot)


@manage_router.post("", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> SlotRead:
    slot = await slot_usecase.create_slot(
        uow,
        actor,
        staff_id=payload.staff_id or actor.staff_id,
        slot_date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        status=payload.status,
    )
    audit(action="slot.created", initiator="staff", actor_id=actor.staff_id, slot_id=slot.id, staff_id=slot.staff_id)
    return SlotRead.from_db(slot=slot)


@manage_router.post("/bulk", response_model=SlotBulkResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_slots(
    payload: SlotBulkCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> SlotBulkResult:
    created = await slot_usecase.bulk_create_slots(
        uow,
        actor,
        staff_id=payload.staff_id or actor.staff_id,
        slot_date=payload.date,
        ranges=[(item.start_time, item.end_time) for item in payload.slots],
    )
    return _bulk_result(created, actor)


@manage_router.post("/generate", response_model=SlotBulkResult, status_code=status.HTTP_201_CREATED)
async def generate_slots(
    payload: SlotGenerate,
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    actor: Actor = Depends(get_current_staff),
) -> SlotBulkResult:
    created = await slot_usecase.generate_slots(
        uow,
        store,
        actor,
        staff_id=payload.staff_id or actor.staff_id,
        slot_date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration_minutes=payload.duration_minutes,
        buffer_minutes=payload.buffer_minutes,
    )
    return _bulk_result(created, actor)


@manage_router.patch("/{slot_id}/status", response_model=SlotRead)
async def set_slot_status(
    payload: SlotStatusUpdate,
    slot_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> SlotRead:
    slot = await slot_usecase.set_slot_status(uow, actor, slot_id=slot_id, status=payload.status)
    audit(
        action="slot.status_changed",
        initiator="staff",
        actor_id=actor.staff_id,
        slot_id=slot.id,
        staff_id=slot.staff_id,
        status_to=slot.status,
    )
    return SlotRead.from_db(slot=slot)


@manage_router.patch("/{slot_id}/toggle", response_model=SlotRead)
async def toggle_slot(
    slot_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> SlotRead:
    slot = await slot_usecase.toggle_slot(uow, actor, slot_id=slot_id)
    audit(
        action="slot.status_changed",
        initiator="staff",
        actor_id=actor.staff_id,
        slot_id=slot.id,
        staff_id=slot.staff_id,
        status_to=slot.status,
    )
    return SlotRead.from_db(slot=slot)


@manage_router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> Response:
    await slot_usecase.delete_slot(uow, actor, slot_id=slot_id)
    audit(action="slot.deleted", initiator="staff", actor_id=actor.staff_id, slot_id=slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
