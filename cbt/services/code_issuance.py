"""
cbt/services/code_issuance.py
Access code issuance for published exams

Only the exam owner (with an authoring role) may issue or delete codes.
Codes are uppercase alphanumeric tokens; one code per email address.
"""
import logging
import secrets
import string
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.config import settings
from cbt.errors import ErrorCode
from cbt.exceptions import ExternalStoreError, InvalidStateError, NotFoundError
from cbt.orm.exam import Exam, ExamStatus
from cbt.orm.exam_code import ExamCode
from cbt.schemas.codes import IssuedCode
from cbt.schemas.records import IdentityContext, to_naive_utc
from cbt.services.email_service import EmailSender, build_take_url, get_email_sender, render_code_email
from cbt.services.roles import require_exam_owner

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_code(length: Optional[int] = None) -> str:
    length = length or settings.ACCESS_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def issue_codes(
    db: AsyncSession,
    exam_id: str,
    emails: List[str],
    identity: IdentityContext,
    expires_at: Optional[datetime] = None,
    sender: Optional[EmailSender] = None,
) -> List[IssuedCode]:
    """
    Create one code per email and notify each recipient.

    All codes are committed before any email is sent; a delivery failure is
    reported per code (delivered=False) and never undoes the issuance.
    """
    exam = await require_exam_owner(db, exam_id, identity, "generate exam codes")
    if exam.status != ExamStatus.published:
        raise InvalidStateError(
            "Codes can only be generated for published exams",
            code=ErrorCode.EXAM_NOT_PUBLISHED
        )

    expires_at = to_naive_utc(expires_at)
    rows = [
        ExamCode(
            exam_id=exam_id,
            code=generate_access_code(),
            user_email=email.strip(),
            expires_at=expires_at,
        )
        for email in emails
    ]

    try:
        db.add_all(rows)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to issue codes for exam {exam_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="code issuance")

    logger.info(f"Issued {len(rows)} code(s) for exam {exam_id}")

    sender = sender or get_email_sender()
    issued = []
    for row in rows:
        take_url = build_take_url(exam_id, row.code)
        delivered = await sender.send(
            row.user_email,
            f"Your access code for {exam.title}",
            render_code_email(exam.title, row.code, take_url, row.expires_at),
        )
        if not delivered:
            logger.warning(f"Code {row.id} was generated but the email to {row.user_email} failed")
        issued.append(IssuedCode(
            id=row.id,
            exam_id=exam_id,
            code=row.code,
            user_email=row.user_email,
            expires_at=row.expires_at,
            take_url=take_url,
            delivered=delivered,
        ))
    return issued


async def list_codes(db: AsyncSession, exam_id: str, identity: IdentityContext) -> List[ExamCode]:
    await require_exam_owner(db, exam_id, identity, "view exam codes")
    result = await db.execute(
        select(ExamCode)
        .where(ExamCode.exam_id == exam_id)
        .order_by(ExamCode.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_code(db: AsyncSession, code_id: str, identity: IdentityContext) -> None:
    result = await db.execute(select(ExamCode).where(ExamCode.id == code_id))
    row = result.scalars().first()
    if row is None:
        raise NotFoundError("Access code", code_id, code=ErrorCode.CODE_NOT_FOUND)

    await require_exam_owner(db, row.exam_id, identity, "delete exam codes")

    try:
        await db.execute(delete(ExamCode).where(ExamCode.id == code_id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to delete code {code_id}: {e}")
        raise ExternalStoreError.from_exception(e, context="code deletion")

    logger.info(f"Code {code_id} deleted by {identity.user_id}")
