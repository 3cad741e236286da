"""
Answer Ledger: per-question answers within a session, last write wins.

Answers arrive either as a tagged payload (``{"question_type": ..., ...}``) or
in the shorthand clients send: an option id for single-choice and boolean
questions, a list of option ids for multi-choice, and a list of
``[left_id, right_id]`` pairs (or ``{"left_id", "right_id"}`` objects) for
matching. Both are normalized into the tagged union and checked against the
question snapshot before anything is written.
"""
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from app.models.quiz_definition import QuestionType
from app.models.session import Answer, QuestionSnapshot, Session, answer_adapter
from app.services.errors import InvalidAnswerShape, OutOfRange


def _expand_shorthand(question_type: QuestionType, payload: Any) -> Any:
    if isinstance(payload, dict):
        return {"question_type": question_type.value, **payload}
    if question_type in (QuestionType.SINGLE_CHOICE, QuestionType.BOOLEAN):
        if isinstance(payload, bool):
            payload = "true" if payload else "false"
        return {"question_type": question_type.value, "option_id": payload}
    if question_type == QuestionType.MULTI_CHOICE:
        return {"question_type": question_type.value, "option_ids": payload}
    if question_type == QuestionType.MATCHING and isinstance(payload, (list, tuple)):
        pairs = []
        for pair in payload:
            if isinstance(pair, (list, tuple)) and len(pair) == 2:
                pairs.append({"left_id": pair[0], "right_id": pair[1]})
            else:
                pairs.append(pair)
        return {"question_type": question_type.value, "pairs": pairs}
    return payload


def parse_answer(question_type: QuestionType, payload: Any) -> Optional[Answer]:
    """Normalize a raw payload into the answer variant for ``question_type``."""
    if payload is None:
        return None
    try:
        answer = answer_adapter.validate_python(_expand_shorthand(question_type, payload))
    except ValidationError as e:
        raise InvalidAnswerShape(
            f"Answer does not match a {question_type.value} question",
            errors=e.errors(include_url=False, include_context=False),
        )
    if answer.question_type != question_type.value:
        raise InvalidAnswerShape(
            f"Expected a {question_type.value} answer, got {answer.question_type}"
        )
    return answer


def check_answer_options(snapshot: QuestionSnapshot, answer: Answer) -> None:
    """Reject option ids that the snapshot does not offer."""
    option_ids = {o.option_id for o in snapshot.options}
    qid = snapshot.quiz_question_id

    if snapshot.question_type in (QuestionType.SINGLE_CHOICE, QuestionType.BOOLEAN):
        if answer.option_id and answer.option_id not in option_ids:
            raise InvalidAnswerShape(f"Unknown option '{answer.option_id}' for question {qid}")

    elif snapshot.question_type == QuestionType.MULTI_CHOICE:
        unknown = [o for o in answer.option_ids if o not in option_ids]
        if unknown:
            raise InvalidAnswerShape(f"Unknown options {unknown} for question {qid}")
        if len(set(answer.option_ids)) != len(answer.option_ids):
            raise InvalidAnswerShape(f"Duplicate options selected for question {qid}")

    elif snapshot.question_type == QuestionType.MATCHING:
        left = {o.option_id for o in snapshot.options if o.side == "left"}
        right = {o.option_id for o in snapshot.options if o.side == "right"}
        seen = set()
        for pair in answer.pairs:
            if pair.left_id not in left or pair.right_id not in right:
                raise InvalidAnswerShape(
                    f"Unknown pair ({pair.left_id}, {pair.right_id}) for question {qid}"
                )
            if pair.left_id in seen:
                raise InvalidAnswerShape(f"Item '{pair.left_id}' matched twice in question {qid}")
            seen.add(pair.left_id)


def is_answer_empty(answer: Optional[Answer]) -> bool:
    return answer is None or answer.is_empty()


class AnswerLedger:
    """Ordered view over a session's question snapshots, keyed by question id."""

    def __init__(self, session: Session):
        self.session = session

    def question(self, quiz_question_id: str) -> QuestionSnapshot:
        snapshot = self.session.find_question(quiz_question_id)
        if snapshot is None:
            raise OutOfRange(f"Question {quiz_question_id} is not part of this session")
        return snapshot

    def prepare(self, quiz_question_id: str, payload: Any) -> Tuple[QuestionSnapshot, Optional[Answer]]:
        """Validate one answer without writing it."""
        snapshot = self.question(quiz_question_id)
        answer = parse_answer(snapshot.question_type, payload)
        if answer is not None:
            check_answer_options(snapshot, answer)
        return snapshot, answer

    def record(
        self,
        snapshot: QuestionSnapshot,
        answer: Optional[Answer],
        time_spent_seconds: Optional[int] = None,
        max_time_spent: Optional[int] = None,
    ) -> bool:
        """Replace the stored answer; returns True if the question became answered."""
        was_answered = snapshot.is_answered
        snapshot.user_answer = answer
        snapshot.is_answered = not is_answer_empty(answer)

        if time_spent_seconds is not None:
            # Client timing is a display hint; keep it within what the clock allows
            spent = max(0, int(time_spent_seconds))
            if max_time_spent is not None:
                spent = min(spent, max_time_spent)
            snapshot.time_spent_seconds = spent

        # Pause eligibility counts each question once; clearing takes it back out
        qid = snapshot.quiz_question_id
        since_resume = self.session.answered_since_resume
        if snapshot.is_answered and qid not in since_resume:
            since_resume.append(qid)
        elif not snapshot.is_answered and qid in since_resume:
            since_resume.remove(qid)

        return snapshot.is_answered and not was_answered

    def record_many(self, entries: Iterable[dict], max_time_spent: Optional[int] = None) -> int:
        """Validate every entry first, then write them all; returns newly answered count."""
        prepared: List[Tuple[QuestionSnapshot, Optional[Answer], dict]] = []
        for entry in entries:
            snapshot, answer = self.prepare(entry["quiz_question_id"], entry.get("answer"))
            prepared.append((snapshot, answer, entry))

        newly_answered = 0
        for snapshot, answer, entry in prepared:
            if self.record(snapshot, answer, entry.get("time_spent_seconds"), max_time_spent):
                newly_answered += 1
            if entry.get("is_flagged") is not None:
                snapshot.is_flagged = bool(entry["is_flagged"])
        return newly_answered

    def set_flag(self, quiz_question_id: str, is_flagged: bool) -> QuestionSnapshot:
        snapshot = self.question(quiz_question_id)
        snapshot.is_flagged = is_flagged
        return snapshot

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.session.question_snapshots if q.is_answered)

    @property
    def flagged_count(self) -> int:
        return sum(1 for q in self.session.question_snapshots if q.is_flagged)

    @property
    def total(self) -> int:
        return len(self.session.question_snapshots)
