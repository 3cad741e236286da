"""
Session records and the answer shapes they carry.

A ``Session`` is the persisted state of one attempt. Answers are a tagged
union keyed by ``question_type`` so that each question type has exactly one
accepted payload shape.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.models.quiz_definition import QuestionType, QuizMode


class SingleChoiceAnswer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["single_choice"] = "single_choice"
    option_id: str

    def is_empty(self) -> bool:
        return not self.option_id


class BooleanAnswer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["boolean"] = "boolean"
    option_id: str

    def is_empty(self) -> bool:
        return not self.option_id


class MultiChoiceAnswer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["multi_choice"] = "multi_choice"
    option_ids: List[str]

    def is_empty(self) -> bool:
        return not self.option_ids


class MatchPair(BaseModel):
    model_config = ConfigDict(extra="forbid")

    left_id: str
    right_id: str


class MatchingAnswer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question_type: Literal["matching"] = "matching"
    pairs: List[MatchPair]

    def is_empty(self) -> bool:
        return not self.pairs


Answer = Annotated[
    Union[SingleChoiceAnswer, BooleanAnswer, MultiChoiceAnswer, MatchingAnswer],
    Field(discriminator="question_type"),
]

answer_adapter = TypeAdapter(Answer)


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "auto_submitted"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    SessionStatus.SUBMITTED,
    SessionStatus.AUTO_SUBMITTED,
    SessionStatus.ABANDONED,
})


class SubmissionTrigger(str, Enum):
    MANUAL = "manual"
    AUTO_EXPIRY = "auto_expiry"


class OptionSnapshot(BaseModel):
    option_id: str
    text: str = ""
    side: Optional[str] = None


class QuestionSnapshot(BaseModel):
    quiz_question_id: str
    question_type: QuestionType
    text: str = ""
    options: List[OptionSnapshot] = []
    correct_answer: Answer

    # The only fields that change after the session starts
    user_answer: Optional[Answer] = None
    is_flagged: bool = False
    is_answered: bool = False
    time_spent_seconds: int = 0


class PauseWindow(BaseModel):
    paused_at: datetime
    expected_resume_at: Optional[datetime] = None  # None = manual resume required
    resumed_at: Optional[datetime] = None
    automatic: bool = False  # opened by the auto-pause pacing rule

    @property
    def is_open(self) -> bool:
        return self.resumed_at is None


class QuestionResult(BaseModel):
    quiz_question_id: str
    question_type: QuestionType
    user_answer: Optional[Answer] = None
    correct_answer: Answer
    is_answered: bool
    is_correct: bool
    time_spent_seconds: int = 0


class SubmissionResult(BaseModel):
    score: float
    correct_count: int
    total_questions: int
    answered_count: int
    passed: Optional[bool] = None
    per_question_breakdown: List[QuestionResult]
    submitted_at: datetime
    trigger: SubmissionTrigger


class Session(BaseModel):
    session_token: str
    quiz_id: str
    quiz_title: str = ""
    user_id: str
    mode: QuizMode
    status: SessionStatus = SessionStatus.IN_PROGRESS

    time_limit_seconds: Optional[int] = None
    exam_elapsed_seconds: float = 0.0
    pause_elapsed_seconds: float = 0.0
    current_question_index: int = 0

    # Policy copied from the quiz definition at start
    pause_after_questions: Optional[int] = None
    pause_duration_seconds: Optional[int] = None
    auto_pause_after_questions: Optional[int] = None
    passing_score: Optional[float] = None

    started_at: datetime
    last_heartbeat_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    question_snapshots: List[QuestionSnapshot]
    pause_windows: List[PauseWindow] = []
    # Distinct questions answered since the session started or the last pause ended
    answered_since_resume: List[str] = []

    result: Optional[SubmissionResult] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def answers_since_resume(self) -> int:
        return len(self.answered_since_resume)

    @property
    def open_pause(self) -> Optional[PauseWindow]:
        if self.pause_windows and self.pause_windows[-1].is_open:
            return self.pause_windows[-1]
        return None

    def find_question(self, quiz_question_id: str) -> Optional[QuestionSnapshot]:
        for snapshot in self.question_snapshots:
            if snapshot.quiz_question_id == quiz_question_id:
                return snapshot
        return None
