"""
cbt/routes/authoring.py
Authoring API: publishing and access code management (owner only)
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.auth import get_current_identity
from cbt.database import get_db
from cbt.schemas.codes import IssueCodesRequest, IssuedCode
from cbt.schemas.records import AccessCodeRecord, IdentityContext
from cbt.services.code_issuance import delete_code, issue_codes, list_codes
from cbt.services.email_service import EmailSender, get_email_sender
from cbt.services.publish_validator import publish_exam

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authoring"])


@router.post("/exams/{exam_id}/publish")
async def publish(
    exam_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Validate the exam and move it from draft to published.

    Returns 422 with the failing check in details.reason when the exam is
    not ready.
    """
    exam = await publish_exam(db, exam_id, identity)
    return {
        "success": True,
        "exam_id": exam.id,
        "status": exam.status.value,
        "message": "Exam published successfully! Students can now access it with exam codes."
    }


@router.post("/exams/{exam_id}/codes", response_model=List[IssuedCode], status_code=status.HTTP_201_CREATED)
async def generate_codes(
    exam_id: str,
    payload: IssueCodesRequest,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    return await issue_codes(db, exam_id, payload.emails, identity, payload.expires_at, sender=sender)


@router.get("/exams/{exam_id}/codes", response_model=List[AccessCodeRecord])
async def get_codes(
    exam_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_codes(db, exam_id, identity)
    return [AccessCodeRecord.model_validate(row) for row in rows]


@router.delete("/codes/{code_id}")
async def remove_code(
    code_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await delete_code(db, code_id, identity)
    return {"success": True, "code_id": code_id}
