from .quiz import Quiz
from .question import Question
from .quiz_session import QuizSession

__all__ = ["Quiz", "Question", "QuizSession"]
