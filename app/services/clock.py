"""
Clock Authority: the only place elapsed and remaining time are computed.

Elapsed exam time is always derived from stored timestamps
(``now - started_at - paused time``); nothing the client reports about time
is used here.
"""
from datetime import datetime, timedelta
from typing import Optional

from app.models.session import Session
from app.utils.time_utils import get_local_time, seconds_between


class SystemClock:
    """Wall clock in the configured timezone"""

    def now(self) -> datetime:
        return get_local_time()


class ClockAuthority:
    def __init__(self, clock=None):
        self.clock = clock or SystemClock()

    def now(self) -> datetime:
        return self.clock.now()

    def elapsed_seconds(self, session: Session, now: datetime) -> float:
        """Exam time consumed so far; frozen while paused, capped at the limit."""
        if session.is_terminal:
            return session.exam_elapsed_seconds

        open_pause = session.open_pause
        until = open_pause.paused_at if open_pause else now
        elapsed = seconds_between(session.started_at, until) - session.pause_elapsed_seconds

        # Stored value is a high-water mark so a clock step backwards never rewinds it
        elapsed = max(elapsed, session.exam_elapsed_seconds, 0.0)
        if session.time_limit_seconds is not None:
            elapsed = min(elapsed, float(session.time_limit_seconds))
        return elapsed

    def remaining_seconds(self, session: Session, now: datetime) -> Optional[int]:
        if session.time_limit_seconds is None:
            return None
        elapsed = int(self.elapsed_seconds(session, now))
        return max(0, session.time_limit_seconds - elapsed)

    def is_expired(self, session: Session, now: datetime) -> bool:
        if session.time_limit_seconds is None or session.is_terminal:
            return False
        return self.elapsed_seconds(session, now) >= session.time_limit_seconds

    def deadline_at(self, session: Session) -> Optional[datetime]:
        """Wall-clock instant the limit is reached, given the pauses closed so far."""
        if session.time_limit_seconds is None or session.open_pause is not None:
            return None
        return session.started_at + timedelta(
            seconds=session.time_limit_seconds + session.pause_elapsed_seconds
        )

    def sync(self, session: Session, now: datetime) -> None:
        """Store the recomputed elapsed time on the session record"""
        session.exam_elapsed_seconds = self.elapsed_seconds(session, now)
