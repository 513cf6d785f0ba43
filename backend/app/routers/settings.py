from typing import Dict, List

from fastapi import APIRouter, Depends, Path, Response, status

from ..deps import get_settings_store, get_uow, require_admin
from ..domain.repositories import UnitOfWork
from ..domain.services import Actor
from ..schemas import SettingRead, SettingsBulkWrite, SettingWrite
from ..settings_store import SettingsStore
from ..usecases import settings as settings_usecase
from ..utils.audit_log import audit

public_router = APIRouter(prefix="/settings", tags=["settings"])
router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_admin)])


@public_router.get("/public", response_model=Dict[str, str])
async def get_public_settings(
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
) -> dict[str, str]:
    return await settings_usecase.public_settings(uow, store)


@router.get("", response_model=List[SettingRead])
async def list_settings(uow: UnitOfWork = Depends(get_uow)) -> list[SettingRead]:
    return [SettingRead.from_db(setting) for setting in await settings_usecase.list_settings(uow)]


@router.put("", response_model=List[SettingRead])
async def update_settings(
    payload: SettingsBulkWrite,
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    actor: Actor = Depends(require_admin),
) -> list[SettingRead]:
    updated = await settings_usecase.upsert_settings(uow, store, payload.settings)
    audit(action="setting.updated", initiator="admin", actor_id=actor.staff_id, extra={"keys": sorted(payload.settings)})
    return [SettingRead.from_db(setting) for setting in updated]


@router.get("/{key}", response_model=SettingRead)
async def get_setting(
    key: str = Path(..., min_length=1, max_length=100),
    uow: UnitOfWork = Depends(get_uow),
) -> SettingRead:
    return SettingRead.from_db(await settings_usecase.get_setting(uow, key=key))


@router.put("/{key}", response_model=SettingRead)
async def update_setting(
    payload: SettingWrite,
    key: str = Path(..., min_length=1, max_length=100),
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    actor: Actor = Depends(require_admin),
) -> SettingRead:
    setting = await settings_usecase.upsert_setting(
        uow, store, key=key, value=payload.value, description=payload.description
    )
    audit(action="setting.updated", initiator="admin", actor_id=actor.staff_id, extra={"keys": [setting.key]})
    return SettingRead.from_db(setting)


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_setting(
    key: str = Path(..., min_length=1, max_length=100),
    uow: UnitOfWork = Depends(get_uow),
    store: SettingsStore = Depends(get_settings_store),
    actor: Actor = Depends(require_admin),
) -> Response:
    await settings_usecase.delete_setting(uow, store, key=key)
    audit(action="setting.deleted", initiator="admin", actor_id=actor.staff_id, extra={"keys": [key]})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
