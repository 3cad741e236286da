"""
Quiz definitions as supplied by the quiz catalog at session start.

The engine reads a definition exactly once, when a session starts; everything
it needs afterwards is copied into the session snapshot.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.utils.time_utils import ensure_aware


class QuizMode(str, Enum):
    PRACTICE = "practice"
    EXAM = "exam"


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    BOOLEAN = "boolean"
    MATCHING = "matching"


class OptionDefinition(BaseModel):
    option_id: str
    text: str = ""
    side: Optional[str] = None  # 'left' or 'right' for matching questions


class QuestionDefinition(BaseModel):
    quiz_question_id: str
    question_type: QuestionType
    text: str = ""
    options: List[OptionDefinition] = []
    # Raw payload, validated into the tagged answer union when snapshotted
    correct_answer: dict


class QuizDefinition(BaseModel):
    quiz_id: str
    title: str = ""
    mode: QuizMode = QuizMode.PRACTICE
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)

    pause_after_questions: Optional[int] = Field(default=None, ge=0)
    pause_duration_seconds: Optional[int] = Field(default=None, gt=0)
    auto_pause_after_questions: Optional[int] = Field(default=None, gt=0)

    shuffle_questions: bool = False
    shuffle_options: bool = False
    allow_multiple_attempts: bool = False
    max_attempts: Optional[int] = Field(default=None, gt=0)
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True

    questions: List[QuestionDefinition] = []

    @model_validator(mode="after")
    def practice_has_no_limit(self):
        # Practice attempts are untimed regardless of what the catalog stores
        if self.mode == QuizMode.PRACTICE:
            self.time_limit_seconds = None
        return self

    def is_available(self, now: datetime) -> bool:
        """Active, inside its scheduling window, and not empty"""
        if not self.is_active or not self.questions:
            return False
        if self.starts_at and now < ensure_aware(self.starts_at):
            return False
        if self.ends_at and now > ensure_aware(self.ends_at):
            return False
        return True
