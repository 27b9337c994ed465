"""Exceptions raised by the Recury core."""

from __future__ import annotations


class RecuryError(Exception):
    """Base class for rejected operations.

    ``status_code`` is used by the HTTP adapter when mapping the error to a
    response.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidScheduleConfig(RecuryError):
    """Template kind-specific fields are missing or inconsistent."""

    def __init__(self, message: str, details: list | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class DateConflict(RecuryError):
    """Target slot already holds a live instance of the same template."""

    status_code = 409


class NotFound(RecuryError):
    """Unknown instance or template id."""

    status_code = 404


class InvalidStateTransition(RecuryError):
    """Status change not allowed from the instance's current status."""


__all__ = [
    "RecuryError",
    "InvalidScheduleConfig",
    "DateConflict",
    "NotFound",
    "InvalidStateTransition",
]
