"""
Reference Clock — the only source of "now" and "today" for the core.

One reference timezone drives both the day-index calculation and the
"already sent today" boundary used by the scheduler.  Patient timezones
are stored for display only.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Clock:
    """
    Usage:
        clock = Clock("America/New_York")
        day = clock.day_index(patient.surgery_date)
    """

    def __init__(
        self,
        reference_tz: str = "America/New_York",
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._tz = ZoneInfo(reference_tz)
        self._now_fn = now_fn or _utcnow

    @property
    def reference_tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        """Current instant, timezone-aware."""
        current = self._now_fn()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current

    def today(self) -> date:
        """Today's calendar date in the reference timezone."""
        return self.now().astimezone(self._tz).date()

    def start_of_today(self) -> datetime:
        """Midnight at the start of today in the reference timezone."""
        return datetime.combine(self.today(), time.min, tzinfo=self._tz)

    def day_index(self, surgery_date: date) -> int:
        """Whole days since surgery; negative before the surgery date."""
        return (self.today() - surgery_date).days
