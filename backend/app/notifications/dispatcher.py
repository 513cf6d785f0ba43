from __future__ import annotations

import logging
from typing import Mapping

from ..settings_store import parse_bool
from .messages import (
    BookingDetails,
    EmailMessage,
    SlotInfo,
    cancellation_message,
    confirmation_message,
    rebook_message,
    staff_booking_message,
)
from .senders import EmailSender

logger = logging.getLogger(__name__)

CONFIRMATION_WARNING = "The confirmation email could not be sent. Please keep your access code."
CANCELLATION_WARNING = "The cancellation confirmation could not be sent by email."
REBOOK_WARNING = "The rebooking confirmation could not be sent by email. Please keep your new access code."


class NotificationDispatcher:
    """Best-effort delivery after a committed change.

    Failures are logged and turned into requester-facing warnings; they never
    propagate to the caller.
    """

    def __init__(self, sender: EmailSender) -> None:
        self.sender = sender

    async def _deliver(self, message: EmailMessage, *, kind: str, reservation_id: int) -> bool:
        try:
            await self.sender.send(message)
        except Exception:
            logger.exception("failed to send %s notification for reservation %s", kind, reservation_id)
            return False
        return True

    @staticmethod
    def _enabled(values: Mapping[str, str]) -> bool:
        return parse_bool(values.get("email_notifications", "false"))

    async def booking_confirmed(self, values: Mapping[str, str], booking: BookingDetails) -> list[str]:
        if not self._enabled(values):
            return []
        warnings: list[str] = []
        ok = await self._deliver(
            confirmation_message(values, booking), kind="confirmation", reservation_id=booking.reservation_id
        )
        if not ok:
            warnings.append(CONFIRMATION_WARNING)

        if parse_bool(values.get("notify_staff_on_booking", "false")) and booking.staff_email:
            # staff-side failures are logged only
            await self._deliver(
                staff_booking_message(values, booking, booking.staff_email),
                kind="staff",
                reservation_id=booking.reservation_id,
            )
        return warnings

    async def booking_cancelled(self, values: Mapping[str, str], booking: BookingDetails) -> list[str]:
        if not self._enabled(values):
            return []
        ok = await self._deliver(
            cancellation_message(values, booking), kind="cancellation", reservation_id=booking.reservation_id
        )
        return [] if ok else [CANCELLATION_WARNING]

    async def booking_rebooked(
        self,
        values: Mapping[str, str],
        booking: BookingDetails,
        previous: SlotInfo,
    ) -> list[str]:
        if not self._enabled(values):
            return []
        ok = await self._deliver(
            rebook_message(values, booking, previous), kind="rebook", reservation_id=booking.reservation_id
        )
        return [] if ok else [REBOOK_WARNING]
