from __future__ import annotations

import logging
import re
import uuid
from contextvars import ContextVar
from typing import Optional

MAX_REQUEST_ID_LENGTH = 64
_ALLOWED = re.compile(r"^[A-Za-z0-9._:-]+$")

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a random request id."""
    return uuid.uuid4().hex


def accept_request_id(incoming: str | None) -> str:
    """Reuse a caller-supplied id when it is short and log-safe, otherwise mint one."""
    if incoming:
        candidate = incoming.strip()
        if len(candidate) <= MAX_REQUEST_ID_LENGTH and _ALLOWED.match(candidate):
            return candidate
    return generate_request_id()


def set_request_id(request_id: str | None) -> None:
    """Store request id in context (None to clear)."""
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    """Return current request id if set."""
    return _request_id_ctx.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
