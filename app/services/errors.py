"""Errors raised by the session engine.

Each error carries a stable ``code`` and the HTTP status the routes map it to.
Validation and policy errors leave the session untouched.
"""
from typing import Any, Dict, Optional


class SessionError(Exception):
    code = "session_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> Dict[str, Any]:
        detail = {"code": self.code, "message": self.message, "retryable": self.retryable}
        detail.update(self.extra)
        return detail


class SessionNotFound(SessionError):
    code = "session_not_found"
    status_code = 404


class QuizUnavailable(SessionError):
    code = "quiz_unavailable"
    status_code = 404


class AlreadyActive(SessionError):
    code = "already_active"
    status_code = 409


class AttemptLimitReached(SessionError):
    code = "attempt_limit_reached"
    status_code = 409


class InvalidAnswerShape(SessionError):
    code = "invalid_answer_shape"


class OutOfRange(SessionError):
    code = "out_of_range"


class SessionPaused(SessionError):
    code = "session_paused"


class PauseNotEligible(SessionError):
    code = "pause_not_eligible"


class NotPaused(SessionError):
    code = "not_paused"


class TerminalSession(SessionError):
    code = "terminal_session"
    status_code = 410

    def __init__(self, message: str, status: str, result: Optional[dict] = None):
        super().__init__(message, status=status, result=result)
        self.status = status
        self.result = result


class SessionBusy(SessionError):
    """Lock timeout or lost optimistic write; nothing was applied."""
    code = "session_busy"
    status_code = 409
    retryable = True


class VersionConflict(Exception):
    """Raised by a store when the persisted version moved under a write."""
