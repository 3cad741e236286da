"""
Grading Engine.

Answers are compared with the correct answers frozen into the session
snapshot, never with the live catalog, so editing a question later does not
change past grades. Unanswered questions count as incorrect.
"""
from datetime import datetime
from typing import List, Optional

from app.models.quiz_definition import QuestionType
from app.models.session import (
    Answer,
    QuestionResult,
    QuestionSnapshot,
    Session,
    SubmissionResult,
    SubmissionTrigger,
)


def answers_match(question_type: QuestionType, given: Optional[Answer], expected: Answer) -> bool:
    if given is None or given.is_empty():
        return False

    if question_type in (QuestionType.SINGLE_CHOICE, QuestionType.BOOLEAN):
        return given.option_id == expected.option_id

    if question_type == QuestionType.MULTI_CHOICE:
        return set(given.option_ids) == set(expected.option_ids)

    if question_type == QuestionType.MATCHING:
        given_pairs = {(p.left_id, p.right_id) for p in given.pairs}
        expected_pairs = {(p.left_id, p.right_id) for p in expected.pairs}
        return given_pairs == expected_pairs

    return False


def grade_question(snapshot: QuestionSnapshot) -> QuestionResult:
    return QuestionResult(
        quiz_question_id=snapshot.quiz_question_id,
        question_type=snapshot.question_type,
        user_answer=snapshot.user_answer,
        correct_answer=snapshot.correct_answer,
        is_answered=snapshot.is_answered,
        is_correct=answers_match(snapshot.question_type, snapshot.user_answer, snapshot.correct_answer),
        time_spent_seconds=snapshot.time_spent_seconds,
    )


def calculate_score(correct_count: int, total_questions: int) -> float:
    """Percentage of correct answers, rounded to two decimals"""
    if total_questions == 0:
        return 0.0
    return round(correct_count / total_questions * 100, 2)


def grade_session(session: Session, submitted_at: datetime, trigger: SubmissionTrigger) -> SubmissionResult:
    breakdown: List[QuestionResult] = [grade_question(q) for q in session.question_snapshots]
    correct_count = sum(1 for r in breakdown if r.is_correct)
    total = len(breakdown)
    score = calculate_score(correct_count, total)

    passed = None
    if session.passing_score is not None:
        passed = score >= session.passing_score

    return SubmissionResult(
        score=score,
        correct_count=correct_count,
        total_questions=total,
        answered_count=sum(1 for r in breakdown if r.is_answered),
        passed=passed,
        per_question_breakdown=breakdown,
        submitted_at=submitted_at,
        trigger=trigger,
    )
