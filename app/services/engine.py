"""
Session State Machine.

Every operation runs inside the session's critical section and follows the
same steps: load the record, lazily apply time-based transitions (auto-resume
of an overdue pause, auto-submit once the time limit is used up), run the
operation, and persist with an optimistic version check. There is no
background timer; a session only changes when a request touches it.

If an operation is rejected after the lazy step changed the session, the lazy
changes are still persisted but nothing the operation did is.
"""
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.config import settings
from app.models.quiz_definition import QuestionType, QuizDefinition
from app.models.session import (
    OptionSnapshot,
    QuestionSnapshot,
    Session,
    SessionStatus,
    SubmissionTrigger,
)
from app.services.answers import AnswerLedger, parse_answer
from app.services.catalog import InMemoryQuizCatalog, QuizCatalog, SupabaseQuizCatalog
from app.services.clock import ClockAuthority
from app.services.errors import (
    AlreadyActive,
    AttemptLimitReached,
    InvalidAnswerShape,
    NotPaused,
    OutOfRange,
    QuizUnavailable,
    SessionBusy,
    SessionError,
    SessionNotFound,
    SessionPaused,
    TerminalSession,
    VersionConflict,
)
from app.services.grading import grade_session
from app.services.locks import KeyedLocks
from app.services.pauses import PauseController
from app.services.store import InMemorySessionStore, SessionStore, SupabaseSessionStore
from app.utils.time_utils import seconds_between

logger = logging.getLogger(__name__)

GRADED_STATUSES = frozenset({SessionStatus.SUBMITTED, SessionStatus.AUTO_SUBMITTED})


@dataclass
class RefreshOutcome:
    auto_resumed: bool = False
    auto_submitted: bool = False
    # Set by an operation that left the record as it found it
    no_op: bool = False

    @property
    def changed(self) -> bool:
        return self.auto_resumed or self.auto_submitted


Operation = Callable[[Session, datetime, RefreshOutcome], Any]


class SessionEngine:

    def __init__(
        self,
        store: SessionStore,
        catalog: QuizCatalog,
        clock=None,
        locks: Optional[KeyedLocks] = None,
        write_retries: int = 3,
    ):
        self.store = store
        self.catalog = catalog
        self.clock = ClockAuthority(clock)
        self.pauses = PauseController()
        self.locks = locks or KeyedLocks(settings.session_lock_timeout_seconds)
        self.write_retries = max(1, write_retries)

    # ------------------------------------------------------------------
    # Critical section
    # ------------------------------------------------------------------

    def _transact(self, session_token: str, user_id: Optional[str], operation: Operation, write: bool = True):
        for attempt in range(1, self.write_retries + 1):
            try:
                with self.locks.hold(session_token):
                    return self._apply(session_token, user_id, operation, write)
            except VersionConflict as e:
                logger.warning(
                    f"Write conflict on session {session_token} "
                    f"(attempt {attempt}/{self.write_retries}): {e}"
                )
        raise SessionBusy("Session was modified concurrently, retry shortly")

    def _apply(self, session_token: str, user_id: Optional[str], operation: Operation, write: bool):
        session = self.store.get(session_token)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise SessionNotFound("Session not found")

        now = self.clock.now()
        was_terminal = session.is_terminal
        outcome = self._refresh(session, now)
        checkpoint = session.model_copy(deep=True) if outcome.changed else None

        try:
            value = operation(session, now, outcome)
        except SessionError:
            if checkpoint is not None:
                self.store.save(checkpoint)
            raise

        # Terminal records are never rewritten
        if outcome.changed or (write and not was_terminal and not outcome.no_op):
            self.store.save(session)
        return value

    def _refresh(self, session: Session, now: datetime) -> RefreshOutcome:
        outcome = RefreshOutcome()
        if session.is_terminal:
            return outcome

        outcome.auto_resumed = self.pauses.auto_resume_if_due(session, now)
        self.clock.sync(session, now)

        if self.clock.is_expired(session, now):
            deadline = self.clock.deadline_at(session)
            at = min(deadline, now) if deadline else now
            self._finalize(session, SubmissionTrigger.AUTO_EXPIRY, at)
            outcome.auto_submitted = True
        return outcome

    def _finalize(self, session: Session, trigger: SubmissionTrigger, at: datetime) -> None:
        session.status = (
            SessionStatus.AUTO_SUBMITTED if trigger == SubmissionTrigger.AUTO_EXPIRY
            else SessionStatus.SUBMITTED
        )
        session.ended_at = at
        session.result = grade_session(session, at, trigger)
        logger.info(
            f"Session {session.session_token} {session.status.value}: "
            f"{session.result.correct_count}/{session.result.total_questions} correct "
            f"({session.result.score}%)"
        )

    def _ensure_mutable(self, session: Session, outcome: RefreshOutcome) -> None:
        if not session.is_terminal:
            return
        if outcome.auto_submitted:
            message = "Time limit reached; the session was auto-submitted"
        else:
            message = f"Session is already {session.status.value}"
        result = session.result.model_dump(mode="json") if session.result else None
        raise TerminalSession(message, status=session.status.value, result=result)

    def _ensure_not_paused(self, session: Session, now: datetime) -> None:
        if session.status == SessionStatus.PAUSED:
            raise SessionPaused(
                "Session is paused; resume before continuing",
                pause_remaining_seconds=self.pauses.pause_remaining_seconds(session, now),
            )

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self, quiz_id: str, user_id: str) -> Dict[str, Any]:
        quiz = self.catalog.get_quiz(quiz_id)
        now = self.clock.now()
        if quiz is None or not quiz.is_available(now):
            raise QuizUnavailable(f"Quiz {quiz_id} is not available")

        with self.locks.hold(f"start:{user_id}:{quiz_id}"):
            attempts = [
                s if s.is_terminal else self._settle(s.session_token)
                for s in self.store.find_by_user(user_id, quiz_id)
            ]
            active = [s for s in attempts if not s.is_terminal]
            graded = [s for s in attempts if s.status in GRADED_STATUSES]

            if active and not quiz.allow_multiple_attempts:
                raise AlreadyActive(
                    "An attempt at this quiz is already in progress",
                    session_token=active[0].session_token,
                )
            if graded and not quiz.allow_multiple_attempts:
                raise AttemptLimitReached("You have already completed this quiz")
            if quiz.max_attempts is not None and len(graded) >= quiz.max_attempts:
                raise AttemptLimitReached(
                    f"Maximum of {quiz.max_attempts} attempt(s) reached",
                    max_attempts=quiz.max_attempts,
                )

            # One live attempt per (user, quiz): a retake supersedes the open one
            for previous in active:
                self._transact(previous.session_token, user_id, self._abandon_op)
                logger.info(f"Session {previous.session_token} superseded by a new attempt")

            session = self._build_session(quiz, user_id, now)
            self.store.create(session)

        logger.info(
            f"User {user_id} started {quiz.mode.value} session {session.session_token} "
            f"on quiz {quiz_id} ({len(session.question_snapshots)} questions)"
        )
        return self._view(session, now)

    def _settle(self, session_token: str) -> Session:
        """Apply pending time-based transitions and return the record."""
        return self._transact(session_token, None, lambda session, now, outcome: session, write=False)

    def _build_session(self, quiz: QuizDefinition, user_id: str, now: datetime) -> Session:
        token = uuid.uuid4().hex
        # Seeded by the token so the order can be reproduced for review
        rng = random.Random(token)

        questions = list(quiz.questions)
        if quiz.shuffle_questions:
            rng.shuffle(questions)

        snapshots = []
        for question in questions:
            options = [OptionSnapshot(**o.model_dump()) for o in question.options]
            if quiz.shuffle_options and question.question_type != QuestionType.BOOLEAN:
                rng.shuffle(options)
            try:
                correct = parse_answer(question.question_type, question.correct_answer)
            except InvalidAnswerShape as e:
                logger.error(f"Quiz {quiz.quiz_id} question {question.quiz_question_id} has a bad answer key: {e}")
                raise QuizUnavailable(f"Quiz {quiz.quiz_id} is misconfigured")
            if correct is None:
                raise QuizUnavailable(f"Quiz {quiz.quiz_id} is misconfigured")

            snapshots.append(QuestionSnapshot(
                quiz_question_id=question.quiz_question_id,
                question_type=question.question_type,
                text=question.text,
                options=options,
                correct_answer=correct,
            ))

        return Session(
            session_token=token,
            quiz_id=quiz.quiz_id,
            quiz_title=quiz.title,
            user_id=user_id,
            mode=quiz.mode,
            time_limit_seconds=quiz.time_limit_seconds,
            pause_after_questions=quiz.pause_after_questions,
            pause_duration_seconds=quiz.pause_duration_seconds,
            auto_pause_after_questions=quiz.auto_pause_after_questions,
            passing_score=quiz.passing_score,
            started_at=now,
            last_heartbeat_at=now,
            question_snapshots=snapshots,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self, session_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        def read(session, now, outcome):
            return self._view(session, now, auto_resumed=outcome.auto_resumed)

        return self._transact(session_token, user_id, read, write=False)

    def get_active(self, user_id: str, quiz_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Most recent live session of the user, e.g. to resume after a reload"""
        candidates = [s for s in self.store.find_by_user(user_id, quiz_id) if not s.is_terminal]
        candidates.sort(key=lambda s: s.started_at, reverse=True)
        for candidate in candidates:
            view = self.get_state(candidate.session_token, user_id)
            if view["status"] in (SessionStatus.IN_PROGRESS.value, SessionStatus.PAUSED.value):
                return view
        return None

    def heartbeat(self, session_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        def beat(session, now, outcome):
            if not session.is_terminal:
                session.last_heartbeat_at = now
            return {
                "session_token": session.session_token,
                "status": session.status.value,
                "server_time": now.isoformat(),
                "exam_time_seconds": int(self.clock.elapsed_seconds(session, now)),
                "pause_time_seconds": int(self._pause_time(session, now)),
                "time_remaining_seconds": self.clock.remaining_seconds(session, now),
                "is_paused": session.status == SessionStatus.PAUSED,
                "pause_remaining_seconds": self.pauses.pause_remaining_seconds(session, now),
                "auto_resumed": outcome.auto_resumed,
                "auto_submitted": outcome.auto_submitted,
                "result": session.result.model_dump(mode="json") if session.result else None,
            }

        return self._transact(session_token, user_id, beat)

    # ------------------------------------------------------------------
    # Answers, navigation, flags
    # ------------------------------------------------------------------

    def save_answer(
        self,
        session_token: str,
        quiz_question_id: str,
        answer: Any,
        time_spent_seconds: Optional[int] = None,
        is_flagged: Optional[bool] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        entry = {
            "quiz_question_id": quiz_question_id,
            "answer": answer,
            "time_spent_seconds": time_spent_seconds,
            "is_flagged": is_flagged,
        }
        return self.save_answers(session_token, [entry], user_id=user_id)

    def save_answers(self, session_token: str, answers: Iterable[dict], user_id: Optional[str] = None) -> Dict[str, Any]:
        entries = list(answers)

        def save(session, now, outcome):
            self._ensure_mutable(session, outcome)
            self._ensure_not_paused(session, now)

            ledger = AnswerLedger(session)
            newly_answered = ledger.record_many(entries, max_time_spent=int(session.exam_elapsed_seconds))

            auto_paused = False
            if self.pauses.should_auto_pause(session):
                self.pauses.pause(session, now, automatic=True)
                auto_paused = True

            view = self._view(session, now, auto_resumed=outcome.auto_resumed)
            view.update(auto_paused=auto_paused, saved_count=len(entries), newly_answered=newly_answered)
            return view

        return self._transact(session_token, user_id, save)

    def navigate(self, session_token: str, question_number: int, user_id: Optional[str] = None) -> Dict[str, Any]:
        def move(session, now, outcome):
            self._ensure_mutable(session, outcome)
            self._ensure_not_paused(session, now)
            total = len(session.question_snapshots)
            if not 1 <= question_number <= total:
                raise OutOfRange(
                    f"Question number must be between 1 and {total}",
                    total_questions=total,
                )
            if session.current_question_index == question_number - 1:
                outcome.no_op = True
            session.current_question_index = question_number - 1
            return self._view(session, now, auto_resumed=outcome.auto_resumed)

        return self._transact(session_token, user_id, move)

    def flag(self, session_token: str, quiz_question_id: str, is_flagged: bool, user_id: Optional[str] = None) -> Dict[str, Any]:
        def set_flag(session, now, outcome):
            self._ensure_mutable(session, outcome)
            self._ensure_not_paused(session, now)
            AnswerLedger(session).set_flag(quiz_question_id, is_flagged)
            return self._view(session, now, auto_resumed=outcome.auto_resumed)

        return self._transact(session_token, user_id, set_flag)

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    def pause(self, session_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        def open_window(session, now, outcome):
            self._ensure_mutable(session, outcome)
            self.pauses.pause(session, now)
            return self._view(session, now, auto_resumed=outcome.auto_resumed)

        return self._transact(session_token, user_id, open_window)

    def resume(self, session_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        def close_window(session, now, outcome):
            self._ensure_mutable(session, outcome)
            if session.open_pause is None:
                if outcome.auto_resumed:
                    return self._view(session, now, auto_resumed=True)
                raise NotPaused("Session is not paused")
            duration = self.pauses.resume(session, now)
            logger.info(f"Session {session.session_token} resumed after {duration:.0f}s pause")
            return self._view(session, now)

        return self._transact(session_token, user_id, close_window)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def submit(self, session_token: str, answers: Optional[List[dict]] = None, user_id: Optional[str] = None) -> Dict[str, Any]:
        def finish(session, now, outcome):
            if session.is_terminal:
                if session.result is None:
                    raise TerminalSession(
                        f"Session is already {session.status.value}",
                        status=session.status.value,
                    )
                # Replay for clients retrying after a lost response
                return self._submission(session)

            self._ensure_not_paused(session, now)
            if answers:
                AnswerLedger(session).record_many(answers, max_time_spent=int(session.exam_elapsed_seconds))
            self.clock.sync(session, now)
            self._finalize(session, SubmissionTrigger.MANUAL, now)
            return self._submission(session)

        return self._transact(session_token, user_id, finish)

    def abandon(self, session_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self._transact(session_token, user_id, self._abandon_op)

    def _abandon_op(self, session: Session, now: datetime, outcome: RefreshOutcome) -> Dict[str, Any]:
        self._ensure_mutable(session, outcome)
        if session.open_pause is not None:
            self.pauses.resume(session, now)
        self.clock.sync(session, now)
        session.status = SessionStatus.ABANDONED
        session.ended_at = now
        logger.info(f"Session {session.session_token} abandoned")
        return self._view(session, now)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _submission(self, session: Session) -> Dict[str, Any]:
        return {
            "session_token": session.session_token,
            "status": session.status.value,
            "result": session.result.model_dump(mode="json"),
        }

    def _pause_time(self, session: Session, now: datetime) -> float:
        """Closed pause windows plus the running one, if any"""
        total = session.pause_elapsed_seconds
        window = session.open_pause
        if window is not None:
            total += max(0.0, seconds_between(window.paused_at, now))
        return total

    def _view(self, session: Session, now: datetime, **flags) -> Dict[str, Any]:
        ledger = AnswerLedger(session)
        window = session.open_pause
        elapsed = self.clock.elapsed_seconds(session, now)
        answered = ledger.answered_count

        view = {
            "session_token": session.session_token,
            "quiz_id": session.quiz_id,
            "quiz_title": session.quiz_title,
            "quiz_mode": session.mode.value,
            "status": session.status.value,
            "started_at": session.started_at.isoformat(),
            "last_heartbeat_at": session.last_heartbeat_at.isoformat() if session.last_heartbeat_at else None,
            "ended_at": session.ended_at.isoformat() if session.ended_at else None,
            "timing": {
                "time_limit_seconds": session.time_limit_seconds,
                "time_elapsed_seconds": int(elapsed),
                "time_remaining_seconds": self.clock.remaining_seconds(session, now),
                "pause_time_seconds": int(self._pause_time(session, now)),
                "exam_elapsed_seconds": elapsed,
                "pause_elapsed_seconds": session.pause_elapsed_seconds,
                "server_time": now.isoformat(),
            },
            "progress": {
                "current_question_number": session.current_question_index + 1,
                "total_questions": ledger.total,
                "answered_count": answered,
                "unanswered_count": ledger.total - answered,
                "flagged_count": ledger.flagged_count,
            },
            "pause_info": {
                "is_paused": session.status == SessionStatus.PAUSED,
                "can_pause_now": self.pauses.can_pause(session),
                "pause_after_questions": session.pause_after_questions,
                "answers_until_pause": self.pauses.answers_until_pause(session),
                "next_pause_at_question": self.pauses.next_pause_at_question(session),
                "paused_at": window.paused_at.isoformat() if window else None,
                "expected_resume_at": (
                    window.expected_resume_at.isoformat() if window and window.expected_resume_at else None
                ),
                "pause_remaining_seconds": self.pauses.pause_remaining_seconds(session, now),
                "is_auto_pause": window.automatic if window else False,
                "pause_count": len(session.pause_windows),
            },
            "questions": [
                q.model_dump(mode="json", exclude={"correct_answer"})
                for q in session.question_snapshots
            ],
            "result": session.result.model_dump(mode="json") if session.result else None,
        }
        view.update(flags)
        return view


@lru_cache(maxsize=1)
def get_session_engine() -> SessionEngine:
    """Engine wired to the configured storage backends"""
    if settings.session_store == "memory":
        logger.warning("Using in-memory session store; sessions will not survive a restart")
        store = InMemorySessionStore()
    else:
        store = SupabaseSessionStore()

    catalog = InMemoryQuizCatalog() if settings.quiz_catalog == "memory" else SupabaseQuizCatalog()

    return SessionEngine(
        store,
        catalog,
        locks=KeyedLocks(settings.session_lock_timeout_seconds),
        write_retries=settings.session_write_retries,
    )
