"""Progress engine errors.

Every error here is recoverable from the caller's side. The HTTP layer maps
``status_code`` and ``detail`` straight into the JSON error response.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base class for engine errors surfaced to clients."""

    status_code: int = 400
    detail: str = "Progress error"

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class InvalidDay(ProgressError):
    """Day number outside [1, N]."""

    status_code = 400

    def __init__(self, day: int, challenge_length: int) -> None:
        self.day = day
        self.challenge_length = challenge_length
        super().__init__(f"Day must be between 1 and {challenge_length}, got {day}")


class NotUnlocked(ProgressError):
    """Day is not accessible yet."""

    status_code = 403

    def __init__(self, day: int) -> None:
        self.day = day
        super().__init__(f"Day {day} is locked. Complete the previous days first.")


class PayloadTooLarge(ProgressError):
    """An answer field exceeds the length ceiling."""

    status_code = 413

    def __init__(self, field: str, limit: int) -> None:
        self.field = field
        self.limit = limit
        super().__init__(f"Answer field '{field}' exceeds {limit} characters")


class PreviewReadOnly(ProgressError):
    """Admin preview mode never writes to the ledger."""

    status_code = 403
    detail = "Preview mode is read-only"


class StorageConflict(ProgressError):
    """A concurrent write kept conflicting after the internal retry."""

    status_code = 409
    detail = "Your progress is being saved by another request. Please try again."
