"""
Access code redemption guard.
"""
from datetime import timedelta

import pytest
from sqlalchemy import update

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
from cbt.orm.profile import ProfileRole
from cbt.schemas.records import IdentityContext
from cbt.services.code_redemption import CodeRedemptionGuard, normalize_code
from cbt.tests import factories


@pytest.fixture
async def seeded(db):
    creator = await factories.create_profile(db, "author@x.com", ProfileRole.creator)
    student = await factories.create_profile(db, "a@x.com")
    exam = await factories.create_exam(db, creator, subjects=factories.math_101_subjects())
    code = await factories.create_code(db, exam, "a@x.com", "ABC12345")
    identity = IdentityContext(user_id=student.id, email=student.email)
    return {"exam": exam, "code": code, "identity": identity, "creator": creator}


def test_normalize_code():
    assert normalize_code("  abc12345 ") == "ABC12345"
    assert normalize_code(None) == ""


async def test_valid_code_is_returned(db, seeded):
    record = await CodeRedemptionGuard(db).redeem("abc12345", seeded["exam"].id, seeded["identity"])
    assert record.id == seeded["code"].id
    assert record.used is False


async def test_redemption_does_not_consume_the_code(db, seeded):
    guard = CodeRedemptionGuard(db)
    await guard.redeem("ABC12345", seeded["exam"].id, seeded["identity"])
    again = await guard.redeem("ABC12345", seeded["exam"].id, seeded["identity"])
    assert again.used is False


async def test_used_code_is_rejected(db, seeded):
    guard = CodeRedemptionGuard(db)
    await guard.redeem("ABC12345", seeded["exam"].id, seeded["identity"])

    await db.execute(update(ExamCode).where(ExamCode.id == seeded["code"].id).values(used=True))
    await db.commit()

    with pytest.raises(InvalidOrUsedCodeError):
        await guard.redeem("ABC12345", seeded["exam"].id, seeded["identity"])


@pytest.mark.parametrize("raw", ["", "   ", None])
async def test_blank_code(db, seeded, raw):
    with pytest.raises(EmptyCodeError):
        await CodeRedemptionGuard(db).redeem(raw, seeded["exam"].id, seeded["identity"])


async def test_unknown_code(db, seeded):
    with pytest.raises(InvalidOrUsedCodeError):
        await CodeRedemptionGuard(db).redeem("ZZZ99999", seeded["exam"].id, seeded["identity"])


async def test_code_for_another_exam(db, seeded):
    other = await factories.create_exam(db, seeded["creator"], title="Physics")
    with pytest.raises(InvalidOrUsedCodeError):
        await CodeRedemptionGuard(db).redeem("ABC12345", other.id, seeded["identity"])


@pytest.mark.parametrize("used", [False, True])
async def test_expired_code_reports_expiry_regardless_of_use(db, seeded, used):
    expired_at = utcnow() - timedelta(minutes=5)
    await factories.create_code(db, seeded["exam"], "a@x.com", "OLD00001", used=used, expires_at=expired_at)

    with pytest.raises(CodeExpiredError) as exc_info:
        await CodeRedemptionGuard(db).redeem("old00001", seeded["exam"].id, seeded["identity"])
    assert exc_info.value.expires_at == expired_at


async def test_future_expiry_is_fine(db, seeded):
    await factories.create_code(
        db, seeded["exam"], "a@x.com", "NEW00001", expires_at=utcnow() + timedelta(days=1)
    )
    record = await CodeRedemptionGuard(db).redeem("NEW00001", seeded["exam"].id, seeded["identity"])
    assert record.code == "NEW00001"


async def test_unused_duplicate_is_preferred(db, seeded):
    await factories.create_code(db, seeded["exam"], "a@x.com", "DUP00001", used=True)
    fresh = await factories.create_code(db, seeded["exam"], "a@x.com", "DUP00001")

    record = await CodeRedemptionGuard(db).redeem("DUP00001", seeded["exam"].id, seeded["identity"])
    assert record.id == fresh.id


async def test_email_must_match_exactly(db, seeded):
    identity = seeded["identity"].model_copy(update={"email": "A@x.com"})
    with pytest.raises(CodeNotAssignedError):
        await CodeRedemptionGuard(db).redeem("ABC12345", seeded["exam"].id, identity)


async def test_identity_without_profile(db, seeded):
    ghost = IdentityContext(user_id="no-such-profile", email="a@x.com")
    with pytest.raises(AccountNotProvisionedError):
        await CodeRedemptionGuard(db).redeem("ABC12345", seeded["exam"].id, ghost)


async def test_email_is_checked_before_profile(db, seeded):
    ghost = IdentityContext(user_id="no-such-profile", email="b@x.com")
    with pytest.raises(CodeNotAssignedError):
        await CodeRedemptionGuard(db).redeem("ABC12345", seeded["exam"].id, ghost)


async def test_store_failure_is_wrapped(engine, db, seeded):
    async with engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE exam_attempts")
        await conn.exec_driver_sql("DROP TABLE exam_codes")

    with pytest.raises(ExternalStoreError) as exc_info:
        await CodeRedemptionGuard(db).redeem("ABC12345", seeded["exam"].id, seeded["identity"])
    assert exc_info.value.status_code == 503
    assert exc_info.value.category == "external_store"
