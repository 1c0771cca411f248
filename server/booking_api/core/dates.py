"""Calendar date ranges used for night-by-night inventory work."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator

from .exceptions import ValidationError


class DateRange:
    """
    Half-open range of calendar dates ``[start, end)``.

    Iterating yields every night of a stay: the check-in date up to, but
    not including, the check-out date. The range can be iterated any number
    of times and never materialises a list.
    """

    __slots__ = ("start", "end")

    def __init__(self, start: date, end: date):
        if end <= start:
            raise ValidationError(
                detail="Check-out date must be after check-in date",
                errors={
                    "check_out_date": f"{end.isoformat()} is not after {start.isoformat()}",
                },
            )
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[date]:
        day = self.start
        while day < self.end:
            yield day
            day += timedelta(days=1)

    def __len__(self) -> int:
        return (self.end - self.start).days

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day < self.end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DateRange):
            return NotImplemented
        return self.start == other.start and self.end == other.end

    def __hash__(self) -> int:
        return hash((self.start, self.end))

    def __repr__(self) -> str:
        return f"DateRange({self.start.isoformat()}, {self.end.isoformat()})"

    @property
    def nights(self) -> int:
        return len(self)

    def overlaps(self, day: date) -> bool:
        """Return True if ``day`` is one of the nights in the range."""
        return day in self


def utcnow() -> datetime:
    """Naive UTC timestamp with microsecond precision for ordering rows."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
