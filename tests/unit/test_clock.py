"""
Unit tests for the clock authority
"""
import pytest
from datetime import timedelta

from app.models.quiz_definition import QuizMode
from app.models.session import PauseWindow, Session, SessionStatus
from app.services.clock import ClockAuthority


def make_session(clock, mode=QuizMode.EXAM, limit=600):
    return Session(
        session_token="tok", quiz_id="quiz", user_id="user", mode=mode,
        time_limit_seconds=limit, started_at=clock.now(), question_snapshots=[],
    )


class TestClockAuthority:
    """Elapsed and remaining time are derived from stored timestamps only"""

    def test_elapsed_follows_wall_clock(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        clock.advance(125)

        assert authority.elapsed_seconds(session, clock.now()) == 125
        assert authority.remaining_seconds(session, clock.now()) == 475

    def test_elapsed_frozen_during_open_pause(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        clock.advance(100)
        session.pause_windows.append(PauseWindow(paused_at=clock.now()))
        session.status = SessionStatus.PAUSED

        clock.advance(1000)
        assert authority.elapsed_seconds(session, clock.now()) == 100
        assert not authority.is_expired(session, clock.now())

    def test_closed_pauses_are_excluded(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        session.pause_elapsed_seconds = 50
        clock.advance(200)

        assert authority.elapsed_seconds(session, clock.now()) == 150

    def test_elapsed_never_decreases_when_clock_steps_back(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        clock.advance(300)
        authority.sync(session, clock.now())

        clock.advance(-120)
        assert authority.elapsed_seconds(session, clock.now()) == 300

    def test_elapsed_capped_at_limit(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock, limit=600)
        clock.advance(5000)

        assert authority.elapsed_seconds(session, clock.now()) == 600
        assert authority.remaining_seconds(session, clock.now()) == 0
        assert authority.is_expired(session, clock.now())

    def test_practice_never_expires(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock, mode=QuizMode.PRACTICE, limit=None)
        clock.advance(10 ** 6)

        assert authority.remaining_seconds(session, clock.now()) is None
        assert not authority.is_expired(session, clock.now())

    def test_deadline_accounts_for_closed_pauses(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock, limit=600)
        session.pause_elapsed_seconds = 90

        assert authority.deadline_at(session) == session.started_at + timedelta(seconds=690)

    def test_deadline_unknown_while_paused(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        session.pause_windows.append(PauseWindow(paused_at=clock.now()))

        assert authority.deadline_at(session) is None

    def test_terminal_session_reports_stored_elapsed(self, clock):
        authority = ClockAuthority(clock)
        session = make_session(clock)
        session.exam_elapsed_seconds = 321
        session.status = SessionStatus.SUBMITTED
        clock.advance(10000)

        assert authority.elapsed_seconds(session, clock.now()) == 321
