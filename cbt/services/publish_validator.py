"""
cbt/services/publish_validator.py
Publish readiness checks and the draft -> published transition

The first failing check short-circuits with its own reason and message:
    missing_title, no_subjects, unnamed_subject, no_questions,
    empty_subjects, incomplete_questions, invalid_date_range,
    start_in_past
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.exceptions import (
    ExternalStoreError,
    InvalidStateError,
    PublishReadinessError,
)
from cbt.orm.base import utcnow
from cbt.orm.exam import Exam, ExamStatus, QuestionType
from cbt.schemas.records import ExamRecord, IdentityContext, QuestionRecord
from cbt.services.exam_content import load_exam_record
from cbt.services.roles import require_exam_owner

logger = logging.getLogger(__name__)


def is_question_complete(question: QuestionRecord) -> bool:
    if not question.question_text.strip():
        return False
    if not any(answer.strip() for answer in question.correct_answers):
        return False
    if question.type == QuestionType.multiple_choice:
        if any(not option.strip() for option in question.options):
            return False
    return True


def validate_for_publish(exam: ExamRecord, now: datetime) -> None:
    """Raise PublishReadinessError for the first failing check."""
    if not exam.title.strip():
        raise PublishReadinessError(
            "missing_title", "Please enter an exam title before publishing"
        )

    if not exam.subjects:
        raise PublishReadinessError(
            "no_subjects", "Please add at least one subject before publishing the exam"
        )

    if any(not subject.name.strip() for subject in exam.subjects):
        raise PublishReadinessError(
            "unnamed_subject", "Please provide names for all subjects before publishing"
        )

    if not exam.questions:
        raise PublishReadinessError(
            "no_questions", "Please add at least one question to your exam before publishing"
        )

    empty = [subject.name for subject in exam.subjects if not subject.questions]
    if empty:
        raise PublishReadinessError(
            "empty_subjects",
            f"The following subjects need questions before publishing: {', '.join(empty)}",
            details={"subjects": empty}
        )

    incomplete = [q.id for q in exam.questions if not is_question_complete(q)]
    if incomplete:
        raise PublishReadinessError(
            "incomplete_questions",
            "Some questions are incomplete. Please ensure all questions have text, "
            "options (for multiple choice), and correct answers",
            details={"question_ids": incomplete}
        )

    if exam.start_date is not None and exam.end_date is not None:
        if exam.start_date >= exam.end_date:
            raise PublishReadinessError(
                "invalid_date_range", "The exam end date must be after the start date"
            )

    if exam.start_date is not None and exam.start_date < now:
        raise PublishReadinessError(
            "start_in_past", "The exam start date cannot be in the past"
        )


async def publish_exam(
    db: AsyncSession,
    exam_id: str,
    identity: IdentityContext,
    now: Callable[[], datetime] = utcnow,
) -> ExamRecord:
    """
    Validate and flip draft -> published. Owner only.

    Publishing an already published exam is a no-op.
    """
    await require_exam_owner(db, exam_id, identity, "publish exams")

    exam = await load_exam_record(db, exam_id, published_only=False)
    if exam.status == ExamStatus.published:
        return exam
    if exam.status == ExamStatus.archived:
        raise InvalidStateError("Archived exams cannot be published")

    validate_for_publish(exam, now())

    try:
        await db.execute(
            update(Exam)
            .where(Exam.id == exam_id, Exam.creator_id == identity.user_id)
            .values(status=ExamStatus.published, updated_at=now())
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to publish exam {exam_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="publish exam")

    logger.info(f"Exam {exam_id} published by {identity.user_id}")
    return exam.model_copy(update={"status": ExamStatus.published})
