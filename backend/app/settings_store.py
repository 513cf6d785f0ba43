from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

SettingsLoader = Callable[[], Awaitable[dict[str, str]]]

DEFAULTS: dict[str, str] = {
    # General
    "organization_name": "Appointment Desk",
    "organization_email": "",
    "organization_phone": "",
    "public_url": "http://localhost:3000",
    # Booking
    "booking_enabled": "true",
    "allow_rebook": "true",
    "allow_cancel": "true",
    "max_bookings_per_requester": "0",  # 0 = unlimited
    "booking_notice_hours": "0",  # 0 = no restriction
    "cancel_notice_hours": "0",  # 0 = no restriction
    # Slot generation
    "slot_duration_minutes": "20",
    "slot_buffer_minutes": "0",
    "day_start_time": "08:00",
    "day_end_time": "18:00",
    # Requester form
    "require_phone": "false",
    "require_contact_name": "true",
    # Notifications
    "email_notifications": "true",
    "email_from_name": "Appointment Desk",
    "email_reply_to": "",
    "notify_staff_on_booking": "false",
    # Display
    "event_title": "Appointments",
    "welcome_message": "",
    "confirmation_message": "",
}

# Exposed without authentication.
PUBLIC_KEYS: tuple[str, ...] = (
    "organization_name",
    "organization_phone",
    "public_url",
    "booking_enabled",
    "allow_cancel",
    "allow_rebook",
    "event_title",
    "welcome_message",
    "confirmation_message",
    "require_phone",
    "require_contact_name",
)


def parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return 0


def parse_bool(value: str) -> bool:
    return isinstance(value, str) and value.strip().lower() == "true"


class SettingsStore:
    """Process-local view of the setting table, refreshed at most once per TTL.

    Reads merge stored rows over DEFAULTS, so every known key always has a
    value. Writers must call invalidate() after committing.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        defaults: Mapping[str, str] = DEFAULTS,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._defaults = dict(defaults)
        self._cache: dict[str, str] = {}
        self._refreshed_at: float | None = None

    def _is_fresh(self) -> bool:
        if not self._cache or self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self.ttl_seconds

    async def all(self, loader: SettingsLoader) -> dict[str, str]:
        if self._is_fresh():
            return dict(self._cache)
        stored = await loader()
        merged = {**self._defaults, **stored}
        self._cache = merged
        self._refreshed_at = self._clock()
        logger.debug("settings cache refreshed (%d keys)", len(merged))
        return dict(merged)

    async def get(self, loader: SettingsLoader, key: str) -> str:
        values = await self.all(loader)
        return values.get(key, self._defaults.get(key, ""))

    async def get_int(self, loader: SettingsLoader, key: str) -> int:
        return parse_int(await self.get(loader, key))

    async def get_bool(self, loader: SettingsLoader, key: str) -> bool:
        return parse_bool(await self.get(loader, key))

    async def public(self, loader: SettingsLoader) -> dict[str, str]:
        values = await self.all(loader)
        return {key: values.get(key, "") for key in PUBLIC_KEYS}

    def invalidate(self) -> None:
        self._cache = {}
        self._refreshed_at = None


@dataclass(frozen=True)
class BookingRules:
    booking_enabled: bool = True
    allow_cancel: bool = True
    allow_rebook: bool = True
    max_bookings_per_requester: int = 0
    booking_notice_hours: int = 0
    cancel_notice_hours: int = 0
    require_phone: bool = False
    require_contact_name: bool = True

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "BookingRules":
        def _get(key: str) -> str:
            return values.get(key, DEFAULTS.get(key, ""))

        return cls(
            booking_enabled=parse_bool(_get("booking_enabled")),
            allow_cancel=parse_bool(_get("allow_cancel")),
            allow_rebook=parse_bool(_get("allow_rebook")),
            max_bookings_per_requester=parse_int(_get("max_bookings_per_requester")),
            booking_notice_hours=parse_int(_get("booking_notice_hours")),
            cancel_notice_hours=parse_int(_get("cancel_notice_hours")),
            require_phone=parse_bool(_get("require_phone")),
            require_contact_name=parse_bool(_get("require_contact_name")),
        )


@dataclass(frozen=True)
class SlotGenerationDefaults:
    duration_minutes: int
    buffer_minutes: int
    day_start: str
    day_end: str

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "SlotGenerationDefaults":
        return cls(
            duration_minutes=parse_int(values.get("slot_duration_minutes", "")) or 20,
            buffer_minutes=parse_int(values.get("slot_buffer_minutes", "")),
            day_start=values.get("day_start_time") or "08:00",
            day_end=values.get("day_end_time") or "18:00",
        )
