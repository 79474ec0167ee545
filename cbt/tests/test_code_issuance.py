"""
Code issuance, listing and deletion, plus email delivery.
"""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from pydantic import ValidationError
from sqlalchemy import select

from cbt.exceptions import (
    InvalidStateError,
    NotFoundError,
    OwnershipViolationError,
    RoleInsufficientError,
)
from cbt.orm.exam import ExamStatus
from cbt.orm.exam_code import ExamCode
from cbt.orm.profile import ProfileRole
from cbt.schemas.codes import IssueCodesRequest
from cbt.schemas.records import IdentityContext
from cbt.services.code_issuance import (
    CODE_ALPHABET,
    delete_code,
    generate_access_code,
    issue_codes,
    list_codes,
)
from cbt.services.email_service import (
    HttpEmailSender,
    LoggingEmailSender,
    build_take_url,
    render_code_email,
)
from cbt.tests import factories
from cbt.tests.factories import RecordingSender


def identity_of(profile):
    return IdentityContext(user_id=profile.id, email=profile.email)


@pytest.fixture
async def owner(db):
    return await factories.create_profile(db, "author@x.com", ProfileRole.creator, "Author")


@pytest.fixture
async def published(db, owner):
    return await factories.create_exam(db, owner, subjects=factories.math_101_subjects())


# =============================================================================
# Code generation
# =============================================================================

def test_generated_codes_use_uppercase_alphanumerics():
    code = generate_access_code()
    assert len(code) == 8
    assert set(code) <= set(CODE_ALPHABET)
    assert len(generate_access_code(12)) == 12


def test_issue_request_drops_entries_without_at_sign():
    request = IssueCodesRequest(emails=[" a@x.com ", "nope", "", "b@x.com"])
    assert request.emails == ["a@x.com", "b@x.com"]

    with pytest.raises(ValidationError, match="valid email addresses"):
        IssueCodesRequest(emails=["nope", " "])


# =============================================================================
# Issuance
# =============================================================================

async def test_issue_one_code_per_email(db, owner, published):
    sender = RecordingSender()
    expires = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    issued = await issue_codes(
        db, published.id, ["a@x.com", "b@x.com"], identity_of(owner), expires_at=expires, sender=sender
    )

    assert [c.user_email for c in issued] == ["a@x.com", "b@x.com"]
    assert all(c.delivered for c in issued)
    assert all(c.expires_at == datetime(2030, 1, 1, 12, 0) for c in issued)
    assert issued[0].take_url == build_take_url(published.id, issued[0].code)

    rows = (await db.execute(select(ExamCode).where(ExamCode.exam_id == published.id))).scalars().all()
    assert {row.code for row in rows} == {c.code for c in issued}
    assert not any(row.used for row in rows)

    assert [m["to"] for m in sender.sent] == ["a@x.com", "b@x.com"]
    assert issued[0].code in sender.sent[0]["html"]
    assert sender.sent[0]["subject"] == "Your access code for Math 101"


async def test_failed_email_keeps_code(db, owner, published):
    sender = RecordingSender(fail_for={"b@x.com"})

    issued = await issue_codes(db, published.id, ["a@x.com", "b@x.com"], identity_of(owner), sender=sender)

    assert [c.delivered for c in issued] == [True, False]
    rows = (await db.execute(select(ExamCode).where(ExamCode.user_email == "b@x.com"))).scalars().all()
    assert len(rows) == 1


async def test_issue_requires_published_exam(db, owner):
    draft = await factories.create_exam(
        db, owner, subjects=factories.math_101_subjects(), status=ExamStatus.draft
    )
    with pytest.raises(InvalidStateError) as exc_info:
        await issue_codes(db, draft.id, ["a@x.com"], identity_of(owner), sender=RecordingSender())
    assert exc_info.value.code == "EXAM_NOT_PUBLISHED"


async def test_issue_requires_authoring_role(db, published):
    student = await factories.create_profile(db, "a@x.com")
    with pytest.raises(RoleInsufficientError):
        await issue_codes(db, published.id, ["a@x.com"], identity_of(student), sender=RecordingSender())


async def test_issue_requires_ownership(db, published):
    editor = await factories.create_profile(db, "editor@x.com", ProfileRole.editor)
    with pytest.raises(OwnershipViolationError):
        await issue_codes(db, published.id, ["a@x.com"], identity_of(editor), sender=RecordingSender())


async def test_issue_for_missing_exam(db, owner):
    with pytest.raises(NotFoundError) as exc_info:
        await issue_codes(db, "missing", ["a@x.com"], identity_of(owner), sender=RecordingSender())
    assert exc_info.value.code == "EXAM_NOT_FOUND"


# =============================================================================
# Listing and deletion
# =============================================================================

async def test_list_and_delete_codes(db, owner, published):
    first = await factories.create_code(db, published, "a@x.com", "LIST0001")
    await factories.create_code(db, published, "b@x.com", "LIST0002")

    codes = await list_codes(db, published.id, identity_of(owner))
    assert {c.code for c in codes} == {"LIST0001", "LIST0002"}

    await delete_code(db, first.id, identity_of(owner))
    codes = await list_codes(db, published.id, identity_of(owner))
    assert [c.code for c in codes] == ["LIST0002"]


async def test_delete_unknown_code(db, owner):
    with pytest.raises(NotFoundError) as exc_info:
        await delete_code(db, "missing", identity_of(owner))
    assert exc_info.value.code == "CODE_NOT_FOUND"


async def test_delete_requires_ownership(db, published):
    code = await factories.create_code(db, published)
    other = await factories.create_profile(db, "other@x.com", ProfileRole.creator)
    with pytest.raises(OwnershipViolationError):
        await delete_code(db, code.id, identity_of(other))


# =============================================================================
# Email delivery
# =============================================================================

def test_take_url_uses_base_url():
    assert build_take_url("e1", "ABC", base_url="https://cbt.example/") == "https://cbt.example/exam/e1/take?code=ABC"


def test_email_body_escapes_title():
    body = render_code_email("<Algebra & Co>", "ABC12345", "https://x/exam/e1/take?code=ABC12345",
                             expires_at=datetime(2030, 1, 1))
    assert "&lt;Algebra &amp; Co&gt;" in body
    assert "ABC12345" in body
    assert "2030-01-01T00:00:00" in body


async def test_logging_sender_always_succeeds():
    assert await LoggingEmailSender().send("a@x.com", "subject", "<p>hi</p>") is True


async def test_http_sender_posts_message():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    sender = HttpEmailSender("https://mail.example/send", transport=httpx.MockTransport(handler))
    assert await sender.send("a@x.com", "Your code", "<p>ABC</p>") is True
    assert received == [{"to": "a@x.com", "subject": "Your code", "html": "<p>ABC</p>"}]


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, json={"success": False, "error": "quota"}),
])
async def test_http_sender_reports_failure(response):
    sender = HttpEmailSender("https://mail.example/send", transport=httpx.MockTransport(lambda request: response))
    assert await sender.send("a@x.com", "Your code", "<p>ABC</p>") is False


async def test_http_sender_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    sender = HttpEmailSender("https://mail.example/send", transport=httpx.MockTransport(handler))
    assert await sender.send("a@x.com", "Your code", "<p>ABC</p>") is False
