import pytest
from datetime import datetime, timedelta
from httpx import ASGITransport, AsyncClient
import pytz

from app.main import app
from app.models.quiz_definition import QuizDefinition
from app.services.catalog import InMemoryQuizCatalog
from app.services.engine import SessionEngine, get_session_engine
from app.services.locks import KeyedLocks
from app.services.store import InMemorySessionStore
from app.utils.auth_utils import get_current_user

IST = pytz.timezone('Asia/Kolkata')


class FakeClock:
    """Clock the tests move by hand"""

    def __init__(self, start: datetime = None):
        self.current = start or IST.localize(datetime(2026, 10, 18, 9, 0, 0))

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def build_questions():
    """Eight questions covering every question type, in a fixed order"""
    choices = [{"option_id": o, "text": o.upper()} for o in ("a", "b", "c", "d")]
    questions = [
        {"quiz_question_id": "q1", "question_type": "single_choice", "text": "2 + 2?",
         "options": choices, "correct_answer": {"option_id": "b"}},
        {"quiz_question_id": "q2", "question_type": "multi_choice", "text": "Pick the primes",
         "options": choices, "correct_answer": {"option_ids": ["a", "c"]}},
        {"quiz_question_id": "q3", "question_type": "boolean", "text": "The sky is blue",
         "options": [{"option_id": "true", "text": "True"}, {"option_id": "false", "text": "False"}],
         "correct_answer": {"option_id": "true"}},
        {"quiz_question_id": "q4", "question_type": "matching", "text": "Match capitals",
         "options": [
             {"option_id": "l1", "text": "France", "side": "left"},
             {"option_id": "l2", "text": "Japan", "side": "left"},
             {"option_id": "r1", "text": "Tokyo", "side": "right"},
             {"option_id": "r2", "text": "Paris", "side": "right"},
         ],
         "correct_answer": {"pairs": [{"left_id": "l1", "right_id": "r2"}, {"left_id": "l2", "right_id": "r1"}]}},
    ]
    for n in range(5, 9):
        questions.append({
            "quiz_question_id": f"q{n}", "question_type": "single_choice", "text": f"Question {n}",
            "options": choices, "correct_answer": {"option_id": "a"},
        })
    return questions


# Shorthand payloads that answer every question correctly
CORRECT_ANSWERS = {
    "q1": "b",
    "q2": ["a", "c"],
    "q3": "true",
    "q4": [["l1", "r2"], ["l2", "r1"]],
    "q5": "a",
    "q6": "a",
    "q7": "a",
    "q8": "a",
}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    catalog = InMemoryQuizCatalog()
    catalog.add(QuizDefinition(
        quiz_id="practice-quiz", title="Practice Set", mode="practice",
        time_limit_seconds=900, allow_multiple_attempts=True, questions=build_questions(),
    ))
    catalog.add(QuizDefinition(
        quiz_id="exam-quiz", title="Midterm", mode="exam", time_limit_seconds=600,
        pause_after_questions=3, pause_duration_seconds=120, passing_score=50,
        questions=build_questions(),
    ))
    catalog.add(QuizDefinition(
        quiz_id="paced-exam", title="Paced Exam", mode="exam", time_limit_seconds=1200,
        pause_after_questions=2, pause_duration_seconds=60, auto_pause_after_questions=2,
        questions=build_questions(),
    ))
    return catalog


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def engine(store, catalog, clock):
    return SessionEngine(store, catalog, clock=clock, locks=KeyedLocks(timeout=5), write_retries=3)


@pytest.fixture
def current_user():
    return {"id": "user-1", "email": "student@example.com", "metadata": {}}


@pytest.fixture
async def client(engine, current_user):
    """Test client wired to the in-memory engine and a fixed user"""
    app.dependency_overrides[get_session_engine] = lambda: engine
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def session_headers():
    """Helper to build the session token header"""
    def _session_headers(token: str):
        return {"X-Session-Token": token}
    return _session_headers
