"""Scheduler errors and the shared error envelope.

Every failure the scheduler reports is a `SchedulerError` subclass with a
stable `code`. Transports convert them to `ErrorResponse` messages so error
replies look the same everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    def to_message(self, *, corr_id: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message}
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg


class SchedulerError(Exception):
    """Base class for all scheduler failures."""

    code = "scheduler_error"

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(self.code, str(self))


class ValidationError(SchedulerError):
    """Missing or malformed input (e.g. unknown service type)."""

    code = "validation_error"


class NotFound(SchedulerError):
    code = "not_found"


class TicketNotFound(NotFound):
    code = "ticket_not_found"


class CounterNotFound(NotFound):
    code = "counter_not_found"


class InvalidTicketState(SchedulerError):
    """The operation is not allowed from the ticket's current status."""

    code = "invalid_ticket_state"


class CounterBusy(SchedulerError):
    """The counter already has a ticket bound to it."""

    code = "counter_busy"


class CounterUnavailable(SchedulerError):
    """The counter is closed, unavailable or under maintenance."""

    code = "counter_unavailable"


class NoAvailableCounter(SchedulerError):
    """Selection found no eligible counter for a service type."""

    code = "no_available_counter"


class ConcurrentModification(SchedulerError):
    """A guarded write lost a race; the caller should re-evaluate."""

    code = "concurrent_modification"


class StoreTimeout(SchedulerError):
    """The record store did not answer in time. Transient."""

    code = "store_timeout"
    transient = True
