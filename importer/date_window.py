from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

INITIAL_WINDOW_DAYS = 7
BACKFILL_CHUNK_DAYS = 7


@dataclass(frozen=True)
class DateRange:
    start_date: datetime
    end_date: datetime


@dataclass(frozen=True)
class ImportWindow:
    """
    Ranges a script should fetch in one run.

    forward picks up new data since the last completed run; backfill walks
    back one chunk towards the script's window until backfill_complete.
    """
    forward: DateRange
    backfill: Optional[DateRange] = None
    backfill_complete: bool = False

    @property
    def earliest_fetched_at(self) -> datetime:
        """Oldest point covered once this window has been imported."""
        if self.backfill is not None:
            return min(self.backfill.start_date, self.forward.start_date)
        return self.forward.start_date


def calculate_import_window(
    last_fetched_at: Optional[datetime],
    earliest_fetched_at: Optional[datetime],
    window_days: int,
    initial_window_days: int = INITIAL_WINDOW_DAYS,
    backfill_chunk_days: int = BACKFILL_CHUNK_DAYS,
    now: Optional[datetime] = None,
) -> ImportWindow:
    """
    Date ranges for the next run of a script.

    The first import of a resource only looks back a short initial window so
    onboarding finishes quickly. Later imports sync forward from where the
    last completed run stopped, and backfill one chunk at a time until
    window_days of history have been fetched.

    Args:
        last_fetched_at: End of the range the last completed run fetched
            (None when the resource was never imported)
        earliest_fetched_at: Oldest point any completed run reached
    """
    now = now or datetime.utcnow()
    boundary = now - timedelta(days=window_days)

    if last_fetched_at is None:
        start = now - timedelta(days=min(initial_window_days, window_days))
        return ImportWindow(forward=DateRange(start, now), backfill_complete=start <= boundary)

    forward = DateRange(last_fetched_at, now)
    earliest = earliest_fetched_at or (last_fetched_at - timedelta(days=initial_window_days))

    if earliest <= boundary:
        return ImportWindow(forward=forward, backfill_complete=True)

    backfill_start = max(earliest - timedelta(days=backfill_chunk_days), boundary)
    return ImportWindow(forward=forward, backfill=DateRange(backfill_start, earliest))
