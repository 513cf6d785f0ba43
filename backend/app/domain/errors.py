from __future__ import annotations

from typing import Literal

ErrorKind = Literal["not_found", "conflict", "validation", "unauthorized", "forbidden", "internal"]


class DomainError(Exception):
    """Business-rule failure with a stable machine-readable code."""

    code: str = "INTERNAL_ERROR"
    kind: ErrorKind = "internal"
    default_message: str = "internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# not_found


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    kind = "not_found"
    default_message = "resource not found"


class SlotNotFoundError(NotFoundError):
    default_message = "slot not found"


class StaffNotFoundError(NotFoundError):
    default_message = "staff member not found"


class ReservationNotFoundError(NotFoundError):
    default_message = "reservation not found"


class InvalidAccessCodeError(NotFoundError):
    code = "INVALID_ACCESS_CODE"
    default_message = "invalid access code"


class SettingNotFoundError(NotFoundError):
    default_message = "setting not found"


class EventNotFoundError(NotFoundError):
    default_message = "event not found"


# conflict


class ConflictError(DomainError):
    code = "CONFLICT"
    kind = "conflict"
    default_message = "conflict"


class SlotAlreadyBookedError(ConflictError):
    code = "SLOT_ALREADY_BOOKED"
    default_message = "slot is already booked"


class AlreadyCancelledError(ConflictError):
    code = "ALREADY_CANCELLED"
    default_message = "reservation is already cancelled"


class SameSlotError(ConflictError):
    code = "SAME_SLOT"
    default_message = "reservation already holds this slot"


class ReservationClosedError(ConflictError):
    code = "RESERVATION_CLOSED"
    default_message = "reservation can no longer be changed"


class SlotBookedError(ConflictError):
    code = "SLOT_BOOKED"
    default_message = "booked slot cannot be changed"


class DuplicateSlotError(ConflictError):
    code = "DUPLICATE_SLOT"
    default_message = "slot already exists"


# validation


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    kind = "validation"
    default_message = "invalid input"


class OutsideEventError(ValidationError):
    code = "OUTSIDE_EVENT_WINDOW"
    default_message = "date lies outside the active event"


# forbidden


class ForbiddenError(DomainError):
    code = "FORBIDDEN"
    kind = "forbidden"
    default_message = "forbidden"


class BookingClosedError(ForbiddenError):
    code = "BOOKING_CLOSED"
    default_message = "this action is currently disabled"


class NoticePeriodError(ForbiddenError):
    code = "NOTICE_PERIOD_ELAPSED"
    default_message = "notice period has elapsed"


class BookingLimitReachedError(ForbiddenError):
    code = "BOOKING_LIMIT_REACHED"
    default_message = "maximum number of bookings reached"


class NoActiveEventError(ForbiddenError):
    code = "NO_ACTIVE_EVENT"
    default_message = "slots can only be created while an event is active"


# internal


class TransactionRetryExhaustedError(DomainError):
    code = "INTERNAL_ERROR"
    kind = "internal"
    default_message = "could not complete the transaction, please retry"
