"""
Quiz catalog: where quiz structure, correct answers and policy come from.

The engine asks once per session start and never again for that session.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from app.database import db
from app.models.quiz_definition import QuizDefinition
from app.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)


class QuizCatalog(ABC):

    @abstractmethod
    def get_quiz(self, quiz_id: str) -> Optional[QuizDefinition]:
        """Quiz structure, correct answers and policy, or None if unknown"""


class InMemoryQuizCatalog(QuizCatalog):

    def __init__(self):
        self._lock = threading.Lock()
        self._quizzes: Dict[str, QuizDefinition] = {}

    def add(self, quiz: QuizDefinition) -> QuizDefinition:
        with self._lock:
            self._quizzes[quiz.quiz_id] = quiz.model_copy(deep=True)
        return quiz

    def get_quiz(self, quiz_id: str) -> Optional[QuizDefinition]:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            return quiz.model_copy(deep=True) if quiz else None


class SupabaseQuizCatalog(QuizCatalog):
    """Reads the ``quizzes`` and ``questions`` tables."""

    def __init__(self, database=db):
        self.db = database

    def get_quiz(self, quiz_id: str) -> Optional[QuizDefinition]:
        quizzes = self.db.select("quizzes", "*", {"id": quiz_id})
        if not quizzes:
            return None
        quiz = quizzes[0]

        questions = self.db.select("questions", "*", {"quiz_id": quiz_id}) or []
        questions.sort(key=lambda q: q.get("position") or 0)

        return QuizDefinition(
            quiz_id=quiz["id"],
            title=quiz.get("title") or "",
            mode=quiz.get("mode") or "practice",
            time_limit_seconds=quiz.get("time_limit_seconds"),
            pause_after_questions=quiz.get("pause_after_questions"),
            pause_duration_seconds=quiz.get("pause_duration_seconds"),
            auto_pause_after_questions=quiz.get("auto_pause_after_questions"),
            shuffle_questions=bool(quiz.get("shuffle_questions")),
            shuffle_options=bool(quiz.get("shuffle_options")),
            allow_multiple_attempts=bool(quiz.get("allow_multiple_attempts")),
            max_attempts=quiz.get("max_attempts"),
            passing_score=quiz.get("passing_score"),
            starts_at=parse_timestamp(quiz.get("starts_at")),
            ends_at=parse_timestamp(quiz.get("ends_at")),
            is_active=quiz.get("is_active") is not False,
            questions=[
                {
                    "quiz_question_id": str(q["id"]),
                    "question_type": q["question_type"],
                    "text": q.get("question_text") or "",
                    "options": q.get("options") or [],
                    "correct_answer": q["correct_answer"],
                }
                for q in questions
            ],
        )
