"""In-memory, read-only view of a user's progress rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class EntryView:
    """The parts of a ProgressEntry the decision logic looks at."""

    day: int
    completed: bool
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ProgressSnapshot:
    """Entries keyed by day. No ordering or contiguity is assumed."""

    user_id: int
    entries: dict[int, EntryView] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, user_id: int, rows: Iterable[Any]) -> ProgressSnapshot:
        """Build from ORM ProgressEntry rows (or anything with day/completed/completed_at)."""
        return cls(
            user_id=user_id,
            entries={
                row.day: EntryView(
                    day=row.day,
                    completed=bool(row.completed),
                    completed_at=row.completed_at,
                )
                for row in rows
            },
        )

    @classmethod
    def of_completed(
        cls,
        user_id: int,
        days: Iterable[int],
        completed_at: datetime | None = None,
    ) -> ProgressSnapshot:
        """Shorthand for a snapshot where ``days`` are completed."""
        return cls(
            user_id=user_id,
            entries={d: EntryView(day=d, completed=True, completed_at=completed_at) for d in days},
        )

    def is_completed(self, day: int) -> bool:
        entry = self.entries.get(day)
        return entry is not None and entry.completed

    @property
    def completed_entries(self) -> list[EntryView]:
        return [e for e in self.entries.values() if e.completed]

    @property
    def completed_days(self) -> set[int]:
        return {e.day for e in self.entries.values() if e.completed}

    def with_entry(self, entry: EntryView) -> ProgressSnapshot:
        """Copy of this snapshot with ``entry`` added or replaced."""
        return ProgressSnapshot(user_id=self.user_id, entries={**self.entries, entry.day: entry})
