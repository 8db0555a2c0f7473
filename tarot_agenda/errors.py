# tarot_agenda/errors.py
from __future__ import annotations


class SchedulingError(Exception):
    """Base for business errors raised by the scheduling engine.

    Every subclass is local and recoverable; the HTTP layer renders it as
    ``{"detail": message}`` with ``status_code``.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(SchedulingError):
    """Requested interval overlaps a non-cancelled booking."""

    status_code = 409


class PolicyError(SchedulingError):
    """Notice period, booking window, blocked date or business hours violated."""

    status_code = 400


class InvalidStateError(SchedulingError):
    """Illegal status transition or action on a terminal appointment."""

    status_code = 409


class NotFoundError(SchedulingError):
    status_code = 404


class PermissionDeniedError(SchedulingError):
    """A client acted on an appointment it does not own."""

    status_code = 403


class StorageUnavailableError(SchedulingError):
    """Transient storage failure (lost connection, lock timeout). Not retried here."""

    status_code = 503
