import json
import logging
from typing import Any, List

import pytest
from app.models import ReservationStatus
from app.utils import audit_log
from app.utils.request_id import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="reservation.created",
        initiator="requester",
        reservation_id=1,
        slot_id=2,
        staff_id=3,
        headcount=2,
        status_from=None,
        status_to=ReservationStatus.CONFIRMED,
    )
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["initiator"] == "requester"
    assert payload["request_id"] == "req-123"
    assert payload["status_to"] == "CONFIRMED"
    assert payload["staff_id"] == 3
    assert "status_from" not in payload
    assert "actor_id" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_merges_extra(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="reservation.rebooked",
        initiator="requester",
        reservation_id=1,
        slot_id=5,
        extra={"slot_id_from": 4},
    )
    payload = json.loads(messages[0])
    assert payload["slot_id_from"] == 4


def test_emit_audit_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.cancelled",
            initiator="requester",
            reservation_id=1,
            slot_id=2,
            status_from=ReservationStatus.CONFIRMED,
            status_to=ReservationStatus.CANCELLED,
        )


def test_audit_logs_failure_instead_of_raising(monkeypatch, caplog: pytest.LogCaptureFixture) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    with caplog.at_level(logging.ERROR, logger=audit_log.__name__):
        audit_log.audit(action="slot.deleted", initiator="staff", slot_id=9)
    assert "audit log failed for slot.deleted" in caplog.text
