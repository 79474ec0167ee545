"""
cbt/services/results_service.py
Result view and the caller's assigned exams

- get_exam_result: most recent completed attempt for (user, exam), joined with
  exam and profile, with pass/fail computed from subject pass marks
- list_available_exams: every code assigned to the caller's email, with a
  derived status (available / completed / expired / not_started)
- list_attempt_history: every attempt of the caller, newest first
- list_exam_results: completed attempts on an exam, for its owner only
"""
import logging
from datetime import datetime
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.errors import ErrorCode
from cbt.exceptions import ExamEndedError, ExamUnavailableError, ExternalStoreError, NotFoundError
from cbt.orm.exam import Exam
from cbt.orm.exam_attempt import ExamAttempt
from cbt.orm.exam_code import ExamCode
from cbt.orm.profile import Profile
from cbt.schemas.records import AttemptRecord, ExamSummaryRecord, IdentityContext, to_naive_utc
from cbt.schemas.results import (
    AttemptHistoryEntry,
    AvailabilityStatus,
    AvailableExamView,
    ExamAttemptResult,
    ExamResultView,
)
from cbt.services.email_service import build_take_url
from cbt.services.exam_availability import check_availability
from cbt.services.exam_content import load_exam_record
from cbt.services.roles import require_exam_owner
from cbt.services.scoring_engine import overall_pass_mark, score_subject

logger = logging.getLogger(__name__)


async def get_latest_completed_attempt(db: AsyncSession, exam_id: str, user_id: str) -> AttemptRecord:
    try:
        result = await db.execute(
            select(ExamAttempt)
            .where(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.user_id == user_id,
                ExamAttempt.completed_at.is_not(None),
            )
            .order_by(ExamAttempt.completed_at.desc())
            .limit(1)
        )
        attempt = result.scalars().first()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load result for exam {exam_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="result lookup")
    if attempt is None:
        raise NotFoundError("Exam result", code=ErrorCode.RESULT_NOT_FOUND)
    return AttemptRecord.model_validate(attempt)


async def get_exam_result(db: AsyncSession, exam_id: str, identity: IdentityContext) -> ExamResultView:
    attempt = await get_latest_completed_attempt(db, exam_id, identity.user_id)
    exam = await load_exam_record(db, exam_id, published_only=False)

    profile = (await db.execute(select(Profile).where(Profile.id == identity.user_id))).scalar_one_or_none()

    pass_mark = overall_pass_mark(exam.subjects)
    subjects = []
    if exam.show_results:
        subjects = [score_subject(subject, attempt.answers) for subject in exam.subjects]

    return ExamResultView(
        attempt_id=attempt.id,
        exam_id=exam.id,
        exam_title=exam.title,
        exam_description=exam.description,
        score=attempt.score or 0,
        total_points=attempt.total_points,
        time_spent=attempt.time_spent,
        completed_at=attempt.completed_at,
        passed=(attempt.score or 0) >= pass_mark,
        overall_pass_mark=pass_mark,
        show_results=exam.show_results,
        subjects=subjects,
        user_name=profile.full_name if profile else None,
        user_email=profile.email if profile else identity.email,
    )


def derive_status(code: ExamCode, completed: bool, now: datetime) -> AvailabilityStatus:
    """Completed, then code expiry, then the exam availability window."""
    if completed:
        return AvailabilityStatus.completed
    expires_at = to_naive_utc(code.expires_at)
    if expires_at is not None and expires_at < now:
        return AvailabilityStatus.expired
    try:
        check_availability(ExamSummaryRecord.model_validate(code.exam), now)
    except ExamEndedError:
        return AvailabilityStatus.expired
    except ExamUnavailableError:
        return AvailabilityStatus.not_started
    return AvailabilityStatus.available


async def list_available_exams(db: AsyncSession, identity: IdentityContext, now: datetime) -> List[AvailableExamView]:
    try:
        codes = (await db.execute(
            select(ExamCode)
            .where(ExamCode.user_email == identity.email)
            .order_by(ExamCode.created_at.desc())
        )).scalars().all()

        if not codes:
            return []

        exam_ids = {code.exam_id for code in codes}
        attempts = (await db.execute(
            select(ExamAttempt)
            .where(
                ExamAttempt.user_id == identity.user_id,
                ExamAttempt.exam_id.in_(exam_ids),
                ExamAttempt.completed_at.is_not(None),
            )
            .order_by(ExamAttempt.completed_at.desc())
        )).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to list exams for {identity.user_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="available exams")

    latest: Dict[str, ExamAttempt] = {}
    for attempt in attempts:
        latest.setdefault(attempt.exam_id, attempt)

    views = []
    for code in codes:
        attempt = latest.get(code.exam_id)
        exam = code.exam
        views.append(AvailableExamView(
            code_id=code.id,
            exam_id=code.exam_id,
            exam_title=exam.title,
            exam_description=exam.description,
            code=code.code,
            expires_at=code.expires_at,
            used=code.used,
            exam_start_date=exam.start_date,
            exam_end_date=exam.end_date,
            exam_status=exam.status.value if hasattr(exam.status, "value") else str(exam.status),
            attempt_completed=attempt is not None,
            attempt_score=attempt.score if attempt is not None else None,
            status=derive_status(code, attempt is not None, now),
            take_url=build_take_url(code.exam_id, code.code),
        ))
    return views


async def list_attempt_history(db: AsyncSession, identity: IdentityContext) -> List[AttemptHistoryEntry]:
    try:
        rows = (await db.execute(
            select(ExamAttempt, Exam)
            .join(Exam, Exam.id == ExamAttempt.exam_id)
            .where(ExamAttempt.user_id == identity.user_id)
            .order_by(ExamAttempt.started_at.desc())
        )).all()
        profile = (await db.execute(select(Profile).where(Profile.id == identity.user_id))).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load attempt history for {identity.user_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="attempt history")

    entries = []
    for attempt, exam in rows:
        passed = None
        if attempt.completed_at is not None:
            passed = (attempt.score or 0) >= overall_pass_mark(exam.subjects)
        entries.append(AttemptHistoryEntry(
            attempt_id=attempt.id,
            exam_id=exam.id,
            exam_title=exam.title,
            exam_description=exam.description,
            score=attempt.score,
            total_points=attempt.total_points,
            time_spent=attempt.time_spent,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            passed=passed,
            show_results=exam.show_results,
            user_name=profile.full_name if profile else None,
            user_email=profile.email if profile else identity.email,
        ))
    return entries


async def list_exam_results(db: AsyncSession, exam_id: str, identity: IdentityContext) -> List[ExamAttemptResult]:
    exam = await require_exam_owner(db, exam_id, identity, "view exam results")
    pass_mark = overall_pass_mark(exam.subjects)

    try:
        rows = (await db.execute(
            select(ExamAttempt, Profile)
            .outerjoin(Profile, Profile.id == ExamAttempt.user_id)
            .where(ExamAttempt.exam_id == exam_id, ExamAttempt.completed_at.is_not(None))
            .order_by(ExamAttempt.completed_at.desc())
        )).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load results for exam {exam_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="exam results")

    return [
        ExamAttemptResult(
            attempt_id=attempt.id,
            user_id=attempt.user_id,
            user_name=profile.full_name if profile else None,
            user_email=profile.email if profile else None,
            score=attempt.score or 0,
            total_points=attempt.total_points,
            time_spent=attempt.time_spent,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            passed=(attempt.score or 0) >= pass_mark,
        )
        for attempt, profile in rows
    ]
