"""
cbt/services/scoring_engine.py
Automatic grading and pass/fail evaluation

Pure functions: no I/O, no clock, no database.

Grading is all-or-nothing per question:
- multiple_choice / true_false: exact, case-sensitive membership in correct_answers
- fill_blank: trimmed, case-insensitive; exact match or either side contains the other
- short_answer: trimmed, case-insensitive exact match only

Aggregation uses round-half-up percentages, computed independently for the
exam and for each subject.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from cbt.config import settings
from cbt.orm.exam import QuestionType
from cbt.schemas.records import ExamRecord, QuestionRecord, SubjectRecord
from cbt.schemas.results import ScoreReport, SubjectScore

logger = logging.getLogger(__name__)


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage(earned: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(Decimal(earned) * 100 / Decimal(total))


def _normalize(value: str) -> str:
    return value.strip().lower()


def grade_question(question: QuestionRecord, answer: Optional[Any]) -> bool:
    """Return True when the answer earns the question's full points."""
    if answer is None:
        return False
    answer = str(answer)
    if not answer.strip():
        return False

    if question.type in (QuestionType.multiple_choice, QuestionType.true_false):
        return answer in question.correct_answers

    given = _normalize(answer)
    candidates = [_normalize(correct) for correct in question.correct_answers]

    if question.type == QuestionType.fill_blank:
        for correct in candidates:
            if not correct:
                continue
            if given == correct or correct in given or given in correct:
                return True
        return False

    if question.type == QuestionType.short_answer:
        return given in candidates

    logger.warning(f"Unknown question type {question.type!r} for question {question.id}")
    return False


def earned_points(questions: Iterable[QuestionRecord], answers: Dict[str, Any]) -> int:
    return sum(
        question.points
        for question in questions
        if grade_question(question, answers.get(question.id))
    )


def overall_pass_mark(subjects: List[SubjectRecord]) -> float:
    """Average of every subject's pass mark; the default pass mark with no subjects."""
    if not subjects:
        return float(settings.DEFAULT_PASS_MARK)
    return sum(subject.pass_mark for subject in subjects) / len(subjects)


def score_subject(subject: SubjectRecord, answers: Dict[str, Any]) -> SubjectScore:
    total = sum(q.points for q in subject.questions)
    earned = earned_points(subject.questions, answers)
    percent = percentage(earned, total)
    return SubjectScore(
        subject_id=subject.id,
        name=subject.name,
        pass_mark=subject.pass_mark,
        percent=percent,
        earned_points=earned,
        total_points=total,
        passed=percent >= subject.pass_mark,
    )


def score_attempt(exam: ExamRecord, answers: Dict[str, Any]) -> ScoreReport:
    """
    Score a full set of answers against an exam.

    Answers for question ids outside the exam are ignored. Unanswered
    questions earn nothing.
    """
    answers = answers or {}
    per_subject = [score_subject(subject, answers) for subject in exam.subjects]

    total = sum(s.total_points for s in per_subject)
    earned = sum(s.earned_points for s in per_subject)
    total_score = percentage(earned, total)
    pass_mark = overall_pass_mark(exam.subjects)

    return ScoreReport(
        total_score=total_score,
        total_points=total,
        earned_points=earned,
        per_subject=per_subject,
        overall_pass_mark=pass_mark,
        passed=total_score >= pass_mark,
    )
