import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ..deps import get_current_staff, get_dispatcher, get_settings_store, get_uow, require_admin
from ..domain.errors import ForbiddenError
from ..domain.repositories import ReservationFilter, UnitOfWork
from ..domain.services import Actor
from ..models import ReservationStatus
from ..notifications.dispatcher import NotificationDispatcher
from ..schemas import (
    CancelRead,
    RebookRead,
    ReservationCancel,
    ReservationCheck,
    ReservationCreate,
    ReservationRead,
    ReservationRebook,
    ReservationStatusUpdate,
    ReservationWithCode,
    SlotSummary,
)
from ..settings_store import SettingsStore
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import audit

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=ReservationWithCode, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ReservationWithCode:
    result = await reservation_usecase.create_reservation(
        uow,
        store,
        dispatcher,
        slot_id=payload.slot_id,
        requester_name=payload.requester_name,
        requester_email=str(payload.requester_email),
        requester_phone=payload.requester_phone,
        contact_name=payload.contact_name,
        headcount=payload.headcount,
        notes=payload.notes,
    )
    audit(
        action="reservation.created",
        initiator="requester",
        reservation_id=result.reservation.id,
        slot_id=result.slot.id,
        staff_id=result.slot.staff_id,
        headcount=result.reservation.headcount,
        status_to=result.reservation.status,
    )
    return ReservationWithCode.from_result(reservation=result.reservation, slot=result.slot, warnings=result.warnings)


@router.post("/cancel", response_model=CancelRead)
async def cancel_reservation(
    payload: ReservationCancel,
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CancelRead:
    result = await reservation_usecase.cancel_by_code(uow, store, dispatcher, access_code=payload.access_code)
    audit(
        action="reservation.cancelled",
        initiator="requester",
        reservation_id=result.reservation.id,
        slot_id=result.slot.id,
        staff_id=result.slot.staff_id,
        status_from=ReservationStatus.CONFIRMED,
        status_to=result.reservation.status,
    )
    return CancelRead(
        reservation_id=result.reservation.id,
        status=result.reservation.status,
        slot_id=result.slot.id,
        slot_status=result.slot.status,
        warnings=result.warnings,
    )


@router.post("/rebook", response_model=RebookRead)
async def rebook_reservation(
    payload: ReservationRebook,
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RebookRead:
    result = await reservation_usecase.rebook(
        uow,
        store,
        dispatcher,
        access_code=payload.access_code,
        new_slot_id=payload.new_slot_id,
    )
    audit(
        action="reservation.rebooked",
        initiator="requester",
        reservation_id=result.reservation.id,
        slot_id=result.slot.id,
        staff_id=result.slot.staff_id,
        extra={"slot_id_from": result.previous_slot.slot_id},
    )
    return RebookRead.from_result(
        reservation=result.reservation,
        slot=result.slot,
        warnings=result.warnings,
        previous_slot=SlotSummary.from_info(result.previous_slot),
    )


@router.get("/check/{access_code}", response_model=ReservationCheck)
async def check_reservation(
    access_code: str = Path(..., min_length=1, max_length=64),
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
) -> ReservationCheck:
    lookup = await reservation_usecase.lookup_by_code(uow, store, access_code=access_code)
    return ReservationCheck(
        reservation=ReservationRead.from_db(reservation=lookup.reservation, slot=lookup.slot),
        can_cancel=lookup.can_cancel,
        can_rebook=lookup.can_rebook,
    )


@router.get("", response_model=List[ReservationRead])
async def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    staff_id: Optional[int] = Query(default=None, ge=1),
    requester_email: Optional[str] = Query(default=None, max_length=255),
    date_from: Optional[dt.date] = Query(default=None),
    date_to: Optional[dt.date] = Query(default=None),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> list[ReservationRead]:
    # staff without the admin role only see their own calendar
    if not actor.is_admin:
        staff_id = actor.staff_id
    filters = ReservationFilter(
        status=status_filter,
        staff_id=staff_id,
        requester_email=requester_email,
        date_from=date_from,
        date_to=date_to,
    )
    rows = await reservation_usecase.list_reservations(uow, filters)
    return [ReservationRead.from_db(reservation=res, slot=slot) for res, slot in rows]


@router.get("/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(get_current_staff),
) -> ReservationRead:
    reservation, slot = await reservation_usecase.get_reservation(uow, reservation_id=reservation_id)
    if not actor.is_admin and reservation.staff_id != actor.staff_id:
        raise ForbiddenError("reservation belongs to another staff member")
    return ReservationRead.from_db(reservation=reservation, slot=slot)


@router.patch("/{reservation_id}/status", response_model=ReservationRead)
async def update_reservation_status(
    payload: ReservationStatusUpdate,
    reservation_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(require_admin),
) -> ReservationRead:
    change = await reservation_usecase.update_status(uow, reservation_id=reservation_id, status=payload.status)
    if change.status_from != change.reservation.status:
        audit(
            action="reservation.status_changed",
            initiator="admin",
            actor_id=actor.staff_id,
            reservation_id=change.reservation.id,
            slot_id=change.slot.id,
            staff_id=change.slot.staff_id,
            status_from=change.status_from,
            status_to=change.reservation.status,
        )
    return ReservationRead.from_db(reservation=change.reservation, slot=change.slot)
