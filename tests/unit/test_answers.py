"""
Unit tests for answer parsing and the answer ledger
"""
import pytest

from app.models.quiz_definition import QuestionType, QuizMode
from app.models.session import (
    MatchingAnswer,
    MultiChoiceAnswer,
    OptionSnapshot,
    QuestionSnapshot,
    Session,
    SingleChoiceAnswer,
)
from app.services.answers import AnswerLedger, parse_answer
from app.services.errors import InvalidAnswerShape, OutOfRange


def single(qid="q1"):
    return QuestionSnapshot(
        quiz_question_id=qid, question_type=QuestionType.SINGLE_CHOICE,
        options=[OptionSnapshot(option_id=o) for o in ("a", "b", "c")],
        correct_answer=SingleChoiceAnswer(option_id="a"),
    )


def multi(qid="q2"):
    return QuestionSnapshot(
        quiz_question_id=qid, question_type=QuestionType.MULTI_CHOICE,
        options=[OptionSnapshot(option_id=o) for o in ("a", "b", "c")],
        correct_answer=MultiChoiceAnswer(option_ids=["a", "b"]),
    )


def matching(qid="q3"):
    return QuestionSnapshot(
        quiz_question_id=qid, question_type=QuestionType.MATCHING,
        options=[
            OptionSnapshot(option_id="l1", side="left"),
            OptionSnapshot(option_id="l2", side="left"),
            OptionSnapshot(option_id="r1", side="right"),
            OptionSnapshot(option_id="r2", side="right"),
        ],
        correct_answer=MatchingAnswer(pairs=[{"left_id": "l1", "right_id": "r1"}]),
    )


@pytest.fixture
def session(clock):
    return Session(
        session_token="tok", quiz_id="quiz", user_id="user", mode=QuizMode.EXAM,
        started_at=clock.now(), question_snapshots=[single(), multi(), matching()],
    )


class TestParseAnswer:
    """Shorthand and tagged payloads normalize into the answer union"""

    def test_single_choice_shorthand(self):
        answer = parse_answer(QuestionType.SINGLE_CHOICE, "b")
        assert answer == SingleChoiceAnswer(option_id="b")

    def test_boolean_accepts_bool(self):
        answer = parse_answer(QuestionType.BOOLEAN, False)
        assert answer.option_id == "false"

    def test_multi_choice_shorthand(self):
        answer = parse_answer(QuestionType.MULTI_CHOICE, ["a", "c"])
        assert answer.option_ids == ["a", "c"]

    def test_matching_pairs_as_lists(self):
        answer = parse_answer(QuestionType.MATCHING, [["l1", "r2"]])
        assert answer.pairs[0].left_id == "l1"
        assert answer.pairs[0].right_id == "r2"

    def test_tagged_payload(self):
        answer = parse_answer(QuestionType.MULTI_CHOICE, {"question_type": "multi_choice", "option_ids": ["b"]})
        assert answer.option_ids == ["b"]

    def test_none_clears(self):
        assert parse_answer(QuestionType.SINGLE_CHOICE, None) is None

    def test_wrong_shape_rejected(self):
        with pytest.raises(InvalidAnswerShape):
            parse_answer(QuestionType.MULTI_CHOICE, "a")

    def test_mismatched_tag_rejected(self):
        with pytest.raises(InvalidAnswerShape):
            parse_answer(QuestionType.SINGLE_CHOICE, {"question_type": "multi_choice", "option_ids": ["a"]})

    def test_foreign_fields_rejected(self):
        with pytest.raises(InvalidAnswerShape):
            parse_answer(QuestionType.MULTI_CHOICE, {"pairs": [{"left_id": "l1", "right_id": "r2"}]})
        with pytest.raises(InvalidAnswerShape):
            parse_answer(QuestionType.SINGLE_CHOICE, {"option_id": "a", "option_ids": ["b"]})

    def test_missing_field_rejected(self):
        with pytest.raises(InvalidAnswerShape):
            parse_answer(QuestionType.MATCHING, {"question_type": "matching"})


class TestAnswerLedger:
    """Last write wins; validation happens before anything is written"""

    def test_overwrite_keeps_only_latest(self, session):
        ledger = AnswerLedger(session)
        for payload in ("a", "c"):
            snapshot, answer = ledger.prepare("q1", payload)
            ledger.record(snapshot, answer)

        assert session.find_question("q1").user_answer.option_id == "c"
        assert session.answers_since_resume == 1

    def test_empty_answer_is_not_answered(self, session):
        ledger = AnswerLedger(session)
        snapshot, answer = ledger.prepare("q2", [])
        ledger.record(snapshot, answer)

        assert snapshot.is_answered is False
        assert ledger.answered_count == 0

    def test_clearing_an_answer(self, session):
        ledger = AnswerLedger(session)
        snapshot, answer = ledger.prepare("q1", "a")
        ledger.record(snapshot, answer)
        ledger.record(snapshot, None)

        assert snapshot.user_answer is None
        assert snapshot.is_answered is False
        assert session.answers_since_resume == 0

    def test_clear_and_reanswer_counts_once(self, session):
        ledger = AnswerLedger(session)
        snapshot, answer = ledger.prepare("q1", "a")
        for _ in range(3):
            ledger.record(snapshot, answer)
            ledger.record(snapshot, None)
        ledger.record(snapshot, answer)

        assert session.answered_since_resume == ["q1"]

    def test_unknown_option_rejected(self, session):
        with pytest.raises(InvalidAnswerShape):
            AnswerLedger(session).prepare("q1", "z")

    def test_duplicate_multi_choice_rejected(self, session):
        with pytest.raises(InvalidAnswerShape):
            AnswerLedger(session).prepare("q2", ["a", "a"])

    def test_matching_sides_checked(self, session):
        ledger = AnswerLedger(session)
        with pytest.raises(InvalidAnswerShape):
            ledger.prepare("q3", [["r1", "l1"]])
        with pytest.raises(InvalidAnswerShape):
            ledger.prepare("q3", [["l1", "r1"], ["l1", "r2"]])

    def test_unknown_question(self, session):
        with pytest.raises(OutOfRange):
            AnswerLedger(session).prepare("missing", "a")

    def test_time_spent_is_clamped(self, session):
        ledger = AnswerLedger(session)
        snapshot, answer = ledger.prepare("q1", "a")
        ledger.record(snapshot, answer, time_spent_seconds=5000, max_time_spent=40)
        assert snapshot.time_spent_seconds == 40

        ledger.record(snapshot, answer, time_spent_seconds=-3, max_time_spent=40)
        assert snapshot.time_spent_seconds == 0

    def test_record_many_is_all_or_nothing(self, session):
        ledger = AnswerLedger(session)
        entries = [
            {"quiz_question_id": "q1", "answer": "a"},
            {"quiz_question_id": "q2", "answer": ["nope"]},
        ]
        with pytest.raises(InvalidAnswerShape):
            ledger.record_many(entries)

        assert session.find_question("q1").user_answer is None

    def test_record_many_sets_flags(self, session):
        ledger = AnswerLedger(session)
        newly = ledger.record_many([
            {"quiz_question_id": "q1", "answer": "a", "is_flagged": True},
            {"quiz_question_id": "q2", "answer": ["a", "b"]},
        ])

        assert newly == 2
        assert ledger.flagged_count == 1
        assert ledger.answered_count == 2
