"""
cbt/services/code_redemption.py
Access code redemption guard

Checks, in order, raising a distinct error for each failure:
1. Normalise (trim + uppercase); blank                 -> EmptyCodeError
2. Look up (code, exam_id), preferring an unused row;
   no row at all                                       -> InvalidOrUsedCodeError
3. expires_at in the past (even when already used)     -> CodeExpiredError
4. Row already used                                    -> InvalidOrUsedCodeError
5. user_email != identity email (case-sensitive)       -> CodeNotAssignedError
6. No profile row for the identity                     -> AccountNotProvisionedError

Success does NOT mark the code used; that happens on submission.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.exceptions import (
    AccountNotProvisionedError,
    CodeExpiredError,
    CodeNotAssignedError,
    EmptyCodeError,
    ExternalStoreError,
    InvalidOrUsedCodeError,
)
from cbt.orm.base import utcnow
from cbt.orm.exam_code import ExamCode
from cbt.orm.profile import Profile
from cbt.schemas.records import AccessCodeRecord, IdentityContext

logger = logging.getLogger(__name__)


def normalize_code(raw_code: Optional[str]) -> str:
    return (raw_code or "").strip().upper()


class CodeRedemptionGuard:
    """Validates an access code for one exam and one identity."""

    def __init__(self, db: AsyncSession, now: Callable[[], datetime] = utcnow):
        self.db = db
        self._now = now

    async def redeem(self, raw_code: str, exam_id: str, identity: IdentityContext) -> AccessCodeRecord:
        code = normalize_code(raw_code)
        if not code:
            raise EmptyCodeError()

        try:
            row = await self._find_code(code, exam_id)
            if row is None:
                logger.warning(f"Rejected code for exam {exam_id}: not found")
                raise InvalidOrUsedCodeError()

            record = AccessCodeRecord.model_validate(row)

            if record.is_expired(self._now()):
                logger.warning(f"Rejected code {record.id}: expired at {record.expires_at}")
                raise CodeExpiredError(record.expires_at)

            if record.used:
                logger.warning(f"Rejected code {record.id}: already used")
                raise InvalidOrUsedCodeError()

            if record.user_email != identity.email:
                logger.warning(f"Rejected code {record.id}: assigned to another account")
                raise CodeNotAssignedError()

            if not await self._profile_exists(identity.user_id):
                logger.warning(f"Rejected code {record.id}: user {identity.user_id} has no profile")
                raise AccountNotProvisionedError()
        except SQLAlchemyError as e:
            logger.error(f"Code lookup failed for exam {exam_id}: {e}")
            raise ExternalStoreError.from_exception(e, context="code verification")

        logger.info(f"Code {record.id} verified for user {identity.user_id} on exam {exam_id}")
        return record

    async def _find_code(self, code: str, exam_id: str) -> Optional[ExamCode]:
        result = await self.db.execute(
            select(ExamCode)
            .where(ExamCode.code == code, ExamCode.exam_id == exam_id)
            .order_by(ExamCode.used.asc(), ExamCode.created_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def _profile_exists(self, user_id: str) -> bool:
        result = await self.db.execute(select(Profile.id).where(Profile.id == user_id))
        return result.scalar_one_or_none() is not None
