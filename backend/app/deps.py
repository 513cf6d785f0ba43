import logging
from functools import lru_cache
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .domain.services import Actor
from .infrastructure.transaction import SqlAlchemyUnitOfWork
from .models import Staff
from .notifications.dispatcher import NotificationDispatcher
from .notifications.senders import build_sender
from .settings_store import SettingsStore
from .utils.auth import decode_access_token

logger = logging.getLogger(__name__)

_BEARER = {"WWW-Authenticate": "Bearer"}


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_uow(session: AsyncSession = Depends(get_session)) -> SqlAlchemyUnitOfWork:
    settings = get_settings()
    return SqlAlchemyUnitOfWork(
        session,
        max_attempts=settings.serializable_max_attempts,
        backoff_seconds=settings.serializable_retry_backoff_ms / 1000,
    )


@lru_cache
def get_settings_store() -> SettingsStore:
    return SettingsStore(ttl_seconds=get_settings().settings_cache_ttl_seconds)


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(build_sender(get_settings()))


async def get_current_staff(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> Actor:
    if authorization is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Bearer token required", headers=_BEARER)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Bearer token required", headers=_BEARER)

    settings = get_settings()
    try:
        claims = decode_access_token(
            token.strip(),
            secret=settings.auth_secret,
            algorithms=[settings.auth_algorithm],
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token", headers=_BEARER) from exc

    try:
        is_admin = await session.scalar(
            select(Staff.is_admin).where(Staff.id == claims.staff_id, Staff.is_active.is_(True))
        )
    except ProgrammingError as exc:
        logger.exception("staff lookup failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="authentication backend unavailable"
        ) from exc
    finally:
        # end the implicit transaction so the unit of work can begin its own
        await session.rollback()

    if is_admin is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unknown staff member", headers=_BEARER)
    # the stored flag wins over the token's adm claim
    return Actor(staff_id=claims.staff_id, is_admin=bool(is_admin))


async def require_admin(actor: Actor = Depends(get_current_staff)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="administrator role required")
    return actor
