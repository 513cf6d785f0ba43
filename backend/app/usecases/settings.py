from __future__ import annotations

import logging
from typing import Mapping

from ..domain.errors import SettingNotFoundError, ValidationError
from ..domain.repositories import UnitOfWork
from ..models import Setting
from ..settings_store import SettingsStore

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100


async def load_values(uow: UnitOfWork, store: SettingsStore) -> dict[str, str]:
    """Merged settings map; hits the database only when the cache is stale."""
    return await store.all(lambda: uow.run(uow.settings.load_all))


async def public_settings(uow: UnitOfWork, store: SettingsStore) -> dict[str, str]:
    return await store.public(lambda: uow.run(uow.settings.load_all))


async def list_settings(uow: UnitOfWork) -> list[Setting]:
    return await uow.run(uow.settings.list)


async def get_setting(uow: UnitOfWork, *, key: str) -> Setting:
    setting = await uow.run(lambda: uow.settings.get(key))
    if setting is None:
        raise SettingNotFoundError(f"setting '{key}' not found")
    return setting


def _clean_key(key: str) -> str:
    cleaned = key.strip()
    if not cleaned:
        raise ValidationError("setting key must not be empty")
    if len(cleaned) > MAX_KEY_LENGTH:
        raise ValidationError(f"setting key must be at most {MAX_KEY_LENGTH} characters")
    return cleaned


async def upsert_setting(
    uow: UnitOfWork,
    store: SettingsStore,
    *,
    key: str,
    value: str,
    description: str | None = None,
) -> Setting:
    cleaned = _clean_key(key)
    setting = await uow.run(lambda: uow.settings.upsert(cleaned, value, description))
    store.invalidate()
    logger.info("setting %s updated", cleaned)
    return setting


async def upsert_settings(
    uow: UnitOfWork,
    store: SettingsStore,
    values: Mapping[str, str],
) -> list[Setting]:
    cleaned = {_clean_key(key): value for key, value in values.items()}
    if not cleaned:
        raise ValidationError("no settings given")

    async def work() -> list[Setting]:
        return [await uow.settings.upsert(key, value) for key, value in cleaned.items()]

    settings = await uow.run(work)
    store.invalidate()
    logger.info("%d settings updated", len(settings))
    return settings


async def delete_setting(uow: UnitOfWork, store: SettingsStore, *, key: str) -> None:
    async def work() -> None:
        setting = await uow.settings.get(key)
        if setting is None:
            raise SettingNotFoundError(f"setting '{key}' not found")
        await uow.settings.delete(setting)

    await uow.run(work)
    store.invalidate()
    logger.info("setting %s deleted", key)
