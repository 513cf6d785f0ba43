from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from ..deps import get_uow, require_admin
from ..domain.repositories import UnitOfWork
from ..domain.services import Actor
from ..schemas import EventCreate, EventRead, EventUpdate
from ..usecases import events as event_usecase
from ..utils.audit_log import audit

public_router = APIRouter(prefix="/events", tags=["events"])
router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_admin)])


@public_router.get("/active", response_model=EventRead)
async def get_active_event(uow: UnitOfWork = Depends(get_uow)) -> EventRead:
    return EventRead.from_db(await event_usecase.get_active_event(uow))


@router.get("", response_model=List[EventRead])
async def list_events(uow: UnitOfWork = Depends(get_uow)) -> list[EventRead]:
    return [EventRead.from_db(event) for event in await event_usecase.list_events(uow)]


@router.get("/{event_id}", response_model=EventRead)
async def get_event(
    event_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
) -> EventRead:
    return EventRead.from_db(await event_usecase.get_event(uow, event_id=event_id))


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(require_admin),
) -> EventRead:
    event = await event_usecase.create_event(
        uow,
        name=payload.name,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=payload.is_active,
    )
    audit(action="event.created", initiator="admin", actor_id=actor.staff_id, extra={"event_id": event.id})
    return EventRead.from_db(event)


@router.patch("/{event_id}", response_model=EventRead)
async def update_event(
    payload: EventUpdate,
    event_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(require_admin),
) -> EventRead:
    event = await event_usecase.update_event(
        uow,
        event_id=event_id,
        name=payload.name,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=payload.is_active,
    )
    audit(action="event.updated", initiator="admin", actor_id=actor.staff_id, extra={"event_id": event.id})
    return EventRead.from_db(event)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    actor: Actor = Depends(require_admin),
) -> Response:
    await event_usecase.delete_event(uow, event_id=event_id)
    audit(action="event.deleted", initiator="admin", actor_id=actor.staff_id, extra={"event_id": event_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
