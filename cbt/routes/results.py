"""
cbt/routes/results.py
Result view and the caller's assigned exams
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.auth import get_current_identity
from cbt.database import get_db
from cbt.orm.base import utcnow
from cbt.schemas.records import IdentityContext
from cbt.schemas.results import AttemptHistoryEntry, AvailableExamView, ExamAttemptResult, ExamResultView
from cbt.services.results_service import (
    get_exam_result,
    list_attempt_history,
    list_available_exams,
    list_exam_results,
)

router = APIRouter(tags=["results"])


@router.get("/exam/{exam_id}/result", response_model=ExamResultView)
async def exam_result(
    exam_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Most recent completed attempt of the caller for this exam."""
    return await get_exam_result(db, exam_id, identity)


@router.get("/exams/available", response_model=List[AvailableExamView])
async def available_exams(
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await list_available_exams(db, identity, utcnow())


@router.get("/exams/history", response_model=List[AttemptHistoryEntry])
async def attempt_history(
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Every attempt of the caller, newest first; passed is null while in progress."""
    return await list_attempt_history(db, identity)


@router.get("/exams/{exam_id}/results", response_model=List[ExamAttemptResult])
async def exam_results(
    exam_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Completed attempts on an exam the caller owns."""
    return await list_exam_results(db, exam_id, identity)
