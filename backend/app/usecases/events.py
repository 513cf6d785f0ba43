from __future__ import annotations

import logging
from datetime import date

from ..domain.errors import EventNotFoundError, ValidationError
from ..domain.repositories import UnitOfWork
from ..domain.services import ensure_event_dates
from ..models import Event

logger = logging.getLogger(__name__)


async def list_events(uow: UnitOfWork) -> list[Event]:
    return await uow.run(uow.events.list)


async def get_event(uow: UnitOfWork, *, event_id: int) -> Event:
    event = await uow.run(lambda: uow.events.get(event_id))
    if event is None:
        raise EventNotFoundError()
    return event


async def get_active_event(uow: UnitOfWork) -> Event:
    event = await uow.run(uow.events.get_active)
    if event is None:
        raise EventNotFoundError("no active event")
    return event


async def create_event(
    uow: UnitOfWork,
    *,
    name: str,
    start_date: date,
    end_date: date,
    description: str | None = None,
    is_active: bool = False,
) -> Event:
    """Create a booking period. Activating it deactivates every other event."""
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("event name is required")
    ensure_event_dates(start_date, end_date)

    async def work() -> Event:
        if is_active:
            await uow.events.deactivate_others()
        return await uow.events.create(
            name=cleaned,
            description=description,
            start_date=start_date,
            end_date=end_date,
            is_active=is_active,
        )

    event = await uow.run(work)
    logger.info("event %s created (%s - %s, active=%s)", event.id, start_date, end_date, is_active)
    return event


async def update_event(
    uow: UnitOfWork,
    *,
    event_id: int,
    name: str | None = None,
    description: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    is_active: bool | None = None,
) -> Event:
    if name is not None and not name.strip():
        raise ValidationError("event name is required")

    async def work() -> Event:
        event = await uow.events.get(event_id)
        if event is None:
            raise EventNotFoundError()
        new_start = start_date if start_date is not None else event.start_date
        new_end = end_date if end_date is not None else event.end_date
        ensure_event_dates(new_start, new_end)
        if is_active:
            await uow.events.deactivate_others(keep_id=event.id)
        if name is not None:
            event.name = name.strip()
        if description is not None:
            event.description = description
        event.start_date = new_start
        event.end_date = new_end
        if is_active is not None:
            event.is_active = is_active
        return await uow.events.save(event)

    event = await uow.run(work)
    logger.info("event %s updated", event.id)
    return event


async def delete_event(uow: UnitOfWork, *, event_id: int) -> None:
    async def work() -> None:
        event = await uow.events.get(event_id)
        if event is None:
            raise EventNotFoundError()
        await uow.events.delete(event)

    await uow.run(work)
    logger.info("event %s deleted", event_id)
