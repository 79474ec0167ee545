"""
cbt/services/roles.py
Role checks for authoring operations
"""
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbt.exceptions import (
    AccountNotProvisionedError,
    ExternalStoreError,
    OwnershipViolationError,
    RoleInsufficientError,
)
from cbt.orm.exam import Exam
from cbt.orm.profile import AUTHORING_ROLES, Profile
from cbt.schemas.records import IdentityContext, ProfileRecord
from cbt.services.exam_content import get_exam_row


async def get_profile(db: AsyncSession, user_id: str) -> ProfileRecord:
    try:
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        raise ExternalStoreError.from_exception(e, context="profile lookup")
    if profile is None:
        raise AccountNotProvisionedError()
    return ProfileRecord.model_validate(profile)


async def require_authoring_role(db: AsyncSession, identity: IdentityContext, action: str) -> ProfileRecord:
    """Creators, editors and admins may author; plain users may not."""
    profile = await get_profile(db, identity.user_id)
    if profile.role not in AUTHORING_ROLES:
        raise RoleInsufficientError(action)
    return profile


async def require_exam_owner(db: AsyncSession, exam_id: str, identity: IdentityContext, action: str) -> Exam:
    """Authoring role first, then existence, then ownership."""
    await require_authoring_role(db, identity, action)
    exam = await get_exam_row(db, exam_id)
    if exam.creator_id != identity.user_id:
        raise OwnershipViolationError("exam")
    return exam
