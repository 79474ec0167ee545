"""
cbt/services/exam_content.py
Loads an exam with its subjects and questions into typed records
"""
import logging

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.errors import ErrorCode
from cbt.exceptions import ExamNotPublishedError, ExternalStoreError, NotFoundError
from cbt.orm.exam import Exam, ExamStatus
from cbt.schemas.records import ExamRecord

logger = logging.getLogger(__name__)


async def get_exam_row(db: AsyncSession, exam_id: str) -> Exam:
    try:
        result = await db.execute(
            select(Exam)
            .where(Exam.id == exam_id)
            .execution_options(populate_existing=True)
        )
        exam = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load exam {exam_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="exam load")
    if exam is None:
        raise NotFoundError("Exam", exam_id, code=ErrorCode.EXAM_NOT_FOUND)
    return exam


async def load_exam_record(db: AsyncSession, exam_id: str, published_only: bool = True) -> ExamRecord:
    """
    Load exam + subjects + questions.

    Raises:
        NotFoundError: exam does not exist
        ExamNotPublishedError: published_only and the exam is not published
        ExternalStoreError: the store failed or returned malformed rows
    """
    exam = await get_exam_row(db, exam_id)
    if published_only and exam.status != ExamStatus.published:
        raise ExamNotPublishedError(exam_id)
    try:
        return ExamRecord.model_validate(exam)
    except ValidationError as e:
        logger.error(f"Exam {exam_id} has malformed content: {e}")
        raise ExternalStoreError("validation", "Exam content is malformed", context="exam load")
