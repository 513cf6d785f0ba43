from datetime import date, datetime, time, timedelta, timezone
from typing import Any, cast

import pytest
from app.domain.repositories import UnitOfWork
from app.domain.services import Actor
from app.models import Reservation, ReservationStatus, Slot, SlotStatus
from app.notifications.dispatcher import NotificationDispatcher
from app.notifications.messages import SlotInfo
from app.routers import reservations as router
from app.schemas import ReservationCancel, ReservationCreate, ReservationRebook, ReservationStatusUpdate
from app.settings_store import SettingsStore
from app.usecases.reservations import BookingResult, RebookResult, StatusChange
from app.utils import audit_log

UOW = cast(UnitOfWork, object())
STORE = cast(SettingsStore, object())
DISPATCHER = cast(NotificationDispatcher, object())


def _slot(slot_id: int = 1, status: SlotStatus = SlotStatus.BOOKED) -> Slot:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Slot(
        id=slot_id,
        staff_id=10,
        date=date.today() + timedelta(days=3),
        start_time=time(10, 0),
        end_time=time(10, 20),
        status=status,
        created_at=now,
        updated_at=now,
    )


def _reservation(slot_id: int = 1, status: ReservationStatus = ReservationStatus.CONFIRMED) -> Reservation:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Reservation(
        id=100,
        slot_id=slot_id,
        staff_id=10,
        access_code="a" * 32,
        requester_name="Ada Lovelace",
        requester_email="ada@example.com",
        requester_phone=None,
        contact_name=None,
        headcount=2,
        notes=None,
        status=status,
        booked_at=now,
        cancelled_at=None,
        updated_at=now,
    )


@pytest.fixture
def audit_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_audit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "audit", fake_audit)
    return calls


@pytest.mark.asyncio
async def test_create_reservation_emits_audit(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    slot = _slot()
    reservation = _reservation()

    async def fake_create_reservation(*args: object, **kwargs: Any) -> BookingResult:
        assert kwargs["requester_email"] == "ada@example.com"
        return BookingResult(reservation=reservation, slot=slot, warnings=["mail down"])

    monkeypatch.setattr(router.reservation_usecase, "create_reservation", fake_create_reservation)

    payload = ReservationCreate(
        slot_id=slot.id, requester_name="Ada Lovelace", requester_email="ada@example.com", headcount=2
    )
    result = await router.create_reservation(payload=payload, uow=UOW, store=STORE, dispatcher=DISPATCHER)

    assert result.reservation_id == reservation.id
    assert result.access_code == reservation.access_code
    assert result.warnings == ["mail down"]
    assert len(audit_calls) == 1
    assert audit_calls[0]["action"] == "reservation.created"
    assert audit_calls[0]["initiator"] == "requester"
    assert audit_calls[0]["reservation_id"] == reservation.id
    assert audit_calls[0]["headcount"] == 2


@pytest.mark.asyncio
async def test_cancel_survives_audit_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    slot = _slot(status=SlotStatus.AVAILABLE)
    reservation = _reservation(status=ReservationStatus.CANCELLED)

    async def fake_cancel(*args: object, **kwargs: object) -> BookingResult:
        return BookingResult(reservation=reservation, slot=slot)

    def failing_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router.reservation_usecase, "cancel_by_code", fake_cancel)
    monkeypatch.setattr(audit_log, "emit_audit_log", failing_emit)

    result = await router.cancel_reservation(
        payload=ReservationCancel(access_code=reservation.access_code),
        uow=UOW,
        store=STORE,
        dispatcher=DISPATCHER,
    )
    # the change is committed already, so the request still succeeds
    assert result.status == ReservationStatus.CANCELLED
    assert result.slot_status == SlotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_rebook_reports_previous_slot_and_emits(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    from_slot = _slot(1, status=SlotStatus.AVAILABLE)
    to_slot = _slot(2)
    reservation = _reservation(slot_id=to_slot.id)
    previous = SlotInfo(
        slot_id=from_slot.id,
        staff_id=from_slot.staff_id,
        staff_name="Grace Hopper",
        room=None,
        date=from_slot.date,
        start_time=from_slot.start_time,
        end_time=from_slot.end_time,
    )

    async def fake_rebook(*args: object, **kwargs: object) -> RebookResult:
        return RebookResult(reservation=reservation, slot=to_slot, previous_slot=previous)

    monkeypatch.setattr(router.reservation_usecase, "rebook", fake_rebook)

    payload = ReservationRebook(access_code="old-code", new_slot_id=to_slot.id)
    result = await router.rebook_reservation(payload=payload, uow=UOW, store=STORE, dispatcher=DISPATCHER)

    assert result.slot_id == to_slot.id
    assert result.previous_slot.slot_id == from_slot.id
    assert result.previous_slot.staff_name == "Grace Hopper"
    assert len(audit_calls) == 1
    assert audit_calls[0]["action"] == "reservation.rebooked"
    assert audit_calls[0]["extra"]["slot_id_from"] == from_slot.id


@pytest.mark.asyncio
async def test_status_update_audits_only_real_changes(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    slot = _slot()
    reservation = _reservation(status=ReservationStatus.COMPLETED)
    previous = {"status": ReservationStatus.CONFIRMED}

    async def fake_update(*args: object, **kwargs: object) -> StatusChange:
        return StatusChange(reservation=reservation, slot=slot, status_from=previous["status"])

    monkeypatch.setattr(router.reservation_usecase, "update_status", fake_update)
    admin = Actor(staff_id=1, is_admin=True)
    payload = ReservationStatusUpdate(status=ReservationStatus.COMPLETED)

    await router.update_reservation_status(payload=payload, reservation_id=reservation.id, uow=UOW, actor=admin)
    assert len(audit_calls) == 1
    assert audit_calls[0]["status_from"] == ReservationStatus.CONFIRMED
    assert audit_calls[0]["status_to"] == ReservationStatus.COMPLETED
    assert audit_calls[0]["actor_id"] == 1

    previous["status"] = ReservationStatus.COMPLETED
    await router.update_reservation_status(payload=payload, reservation_id=reservation.id, uow=UOW, actor=admin)
    assert len(audit_calls) == 1
