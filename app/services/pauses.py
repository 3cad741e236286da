"""
Pause Controller.

Practice mode pauses freely and never auto-resumes. Exam mode rations pauses:
one is allowed only after ``pause_after_questions`` newly answered questions
since the session started or the last pause ended, and each pause may carry a
deadline after which the session resumes on its own. Auto-resume is checked
lazily by the engine on the next request.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.models.quiz_definition import QuizMode
from app.models.session import PauseWindow, Session, SessionStatus
from app.services.errors import PauseNotEligible, SessionPaused
from app.utils.time_utils import seconds_between

logger = logging.getLogger(__name__)


class PauseController:

    def answers_until_pause(self, session: Session) -> Optional[int]:
        """How many more new answers before a pause is allowed; None if never."""
        if session.mode == QuizMode.PRACTICE:
            return 0
        if session.pause_after_questions is None:
            return None
        return max(0, session.pause_after_questions - session.answers_since_resume)

    def can_pause(self, session: Session) -> bool:
        if session.status != SessionStatus.IN_PROGRESS:
            return False
        return self.answers_until_pause(session) == 0

    def next_pause_at_question(self, session: Session) -> Optional[int]:
        """Answered-question count at which the next pause unlocks (exam mode)"""
        remaining = self.answers_until_pause(session)
        if session.mode == QuizMode.PRACTICE or remaining is None:
            return None
        answered = sum(1 for q in session.question_snapshots if q.is_answered)
        return answered + remaining

    def pause(self, session: Session, now: datetime, automatic: bool = False) -> PauseWindow:
        if session.open_pause is not None:
            raise SessionPaused("Session is already paused")

        if not automatic:
            remaining = self.answers_until_pause(session)
            if remaining is None:
                raise PauseNotEligible("Pausing is not allowed for this exam", answers_required=None)
            if remaining > 0:
                raise PauseNotEligible(
                    f"Answer {remaining} more question(s) before pausing",
                    answers_required=remaining,
                )

        expected_resume_at = None
        if session.mode == QuizMode.EXAM and session.pause_duration_seconds:
            expected_resume_at = now + timedelta(seconds=session.pause_duration_seconds)

        window = PauseWindow(paused_at=now, expected_resume_at=expected_resume_at, automatic=automatic)
        session.pause_windows.append(window)
        session.status = SessionStatus.PAUSED
        logger.info(
            f"Session {session.session_token} paused ({'auto' if automatic else 'manual'}), "
            f"resume due {expected_resume_at.isoformat() if expected_resume_at else 'manually'}"
        )
        return window

    def resume(self, session: Session, at: datetime) -> float:
        """Close the open window at ``at``; returns the seconds it lasted."""
        window = session.open_pause
        window.resumed_at = at
        duration = max(0.0, seconds_between(window.paused_at, at))
        session.pause_elapsed_seconds += duration
        session.answered_since_resume = []
        session.status = SessionStatus.IN_PROGRESS
        return duration

    def auto_resume_if_due(self, session: Session, now: datetime) -> bool:
        window = session.open_pause
        if window is None or window.expected_resume_at is None:
            return False
        if now < window.expected_resume_at:
            return False
        # Paused time is capped at the allowance, not at when we noticed
        duration = self.resume(session, window.expected_resume_at)
        logger.info(f"Session {session.session_token} auto-resumed after {duration:.0f}s pause")
        return True

    def should_auto_pause(self, session: Session) -> bool:
        if session.mode != QuizMode.EXAM or not session.auto_pause_after_questions:
            return False
        if session.status != SessionStatus.IN_PROGRESS:
            return False
        if all(q.is_answered for q in session.question_snapshots):
            return False
        return session.answers_since_resume >= session.auto_pause_after_questions

    def pause_remaining_seconds(self, session: Session, now: datetime) -> Optional[int]:
        window = session.open_pause
        if window is None or window.expected_resume_at is None:
            return None
        return max(0, int(seconds_between(now, window.expected_resume_at)))
