"""
cbt/routes/exam_taking.py
Exam taking API: code verification, session control, answers, submission

The take link `/exam/{exam_id}/take?code=CODE` opens a session and, when a
code is present, verifies it immediately. Both the take link and code
verification are rate limited per client.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from cbt.auth import get_current_identity
from cbt.config import settings
from cbt.database import get_session_factory
from cbt.exceptions import CBTException
from cbt.rate_limit import limiter
from cbt.schemas.exam_taking import (
    AnswerRequest,
    NavigateRequest,
    SessionView,
    SubmissionOutcome,
    VerifyCodeRequest,
)
from cbt.schemas.records import IdentityContext
from cbt.services.session_registry import SessionRegistry, get_session_registry
from cbt.state_machines.attempt_lifecycle import AttemptState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["exam-taking"])


def get_lifecycle_options() -> dict:
    """Extra AttemptLifecycle arguments (clock factory, rng); overridden in tests."""
    return {}


@router.get("/exam/{exam_id}/take", response_model=SessionView)
@limiter.limit(settings.CODE_VERIFY_RATE_LIMIT)
async def open_exam(
    request: Request,  # Required by slowapi
    exam_id: str,
    code: Optional[str] = Query(default=None, description="Pre-filled access code"),
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    options: dict = Depends(get_lifecycle_options),
):
    """
    Open an exam session.

    A pre-filled code is verified right away; a rejection is reported in the
    session view rather than as an HTTP error, so the page can re-prompt.
    Opening the same exam again resumes the caller's open session.
    """
    lifecycle = registry.open(identity, exam_id, session_factory, **options)
    try:
        if code and lifecycle.state == AttemptState.CODE_ENTRY:
            try:
                await lifecycle.enter_code(code)
            except CBTException as e:
                logger.info(f"Session {lifecycle.session_id}: pre-filled code rejected ({e.code})")
        return lifecycle.to_view()
    finally:
        registry.release(lifecycle)


@router.post("/exam/{exam_id}/verify", response_model=SessionView)
@limiter.limit(settings.CODE_VERIFY_RATE_LIMIT)
async def verify_code(
    request: Request,  # Required by slowapi
    exam_id: str,
    payload: VerifyCodeRequest,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    options: dict = Depends(get_lifecycle_options),
):
    if payload.session_id:
        lifecycle = registry.get(payload.session_id, identity, exam_id=exam_id)
    else:
        lifecycle = registry.open(identity, exam_id, session_factory, **options)
    try:
        await lifecycle.enter_code(payload.code)
        return lifecycle.to_view()
    finally:
        registry.release(lifecycle)


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(
    session_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    lifecycle = registry.get(session_id, identity)
    try:
        return lifecycle.to_view()
    finally:
        registry.release(lifecycle)


@router.post("/sessions/{session_id}/start", response_model=SessionView)
async def start_session(
    session_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    lifecycle = registry.get(session_id, identity)
    try:
        await lifecycle.start()
        return lifecycle.to_view()
    finally:
        registry.release(lifecycle)


@router.put("/sessions/{session_id}/answers/{question_id}", response_model=SessionView)
async def save_answer(
    session_id: str,
    question_id: str,
    payload: AnswerRequest,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    lifecycle = registry.get(session_id, identity)
    lifecycle.set_answer(question_id, payload.value)
    return lifecycle.to_view()


@router.post("/sessions/{session_id}/navigate", response_model=SessionView)
async def navigate(
    session_id: str,
    payload: NavigateRequest,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    lifecycle = registry.get(session_id, identity)
    lifecycle.navigate(direction=payload.direction, index=payload.index)
    return lifecycle.to_view()


@router.post("/sessions/{session_id}/submit", response_model=SubmissionOutcome)
async def submit_session(
    session_id: str,
    identity: IdentityContext = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Submit the attempt. Submitting again returns the stored outcome."""
    lifecycle = registry.get(session_id, identity)
    try:
        return await lifecycle.submit(triggered_by="manual")
    finally:
        registry.release(lifecycle)
