"""
Exam Attempt Lifecycle State Machine

State Flow:
    code_entry → code_verified → loading → not_started → in_progress
        → submitting → completed

Error-terminal states: access_denied, date_unavailable, load_error

Key rules:
- Every transition is checked against TRANSITIONS; anything else raises
  InvalidTransitionError
- The identity is an explicit constructor argument
- Each operation opens its own database session from the factory, so a
  lifecycle can outlive the request that created it
- Manual and clock submissions are serialised by one asyncio.Lock; the
  attempt and code writes are conditional updates in one transaction
- Leaving in_progress always cancels the clock
"""
import asyncio
import logging
import random
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cbt.exceptions import (
    AttemptAlreadySubmittedError,
    AuthorizationDenialError,
    CBTException,
    CodeAlreadyConsumedError,
    ExamUnavailableError,
    ExternalStoreError,
    InputValidationError,
    InvalidStateError,
    InvalidTransitionError,
    TemporalUnavailabilityError,
)
from cbt.orm.base import utcnow
from cbt.orm.exam_attempt import ExamAttempt
from cbt.orm.exam_code import ExamCode
from cbt.schemas.exam_taking import (
    ExamOverview,
    QuestionView,
    SessionError,
    SessionView,
    SubmissionOutcome,
    TimerView,
)
from cbt.schemas.records import AccessCodeRecord, ExamRecord, IdentityContext
from cbt.services.answer_store import AnswerStore, QuestionNavigator, build_question_sequence
from cbt.services.code_redemption import CodeRedemptionGuard
from cbt.services.exam_availability import check_availability
from cbt.services.exam_content import load_exam_record
from cbt.services.scoring_engine import round_half_up, score_attempt
from cbt.services.session_clock import ClockEventKind, SessionClock

logger = logging.getLogger(__name__)


class AttemptState(Enum):
    CODE_ENTRY = "code_entry"
    CODE_VERIFIED = "code_verified"
    LOADING = "loading"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ACCESS_DENIED = "access_denied"
    DATE_UNAVAILABLE = "date_unavailable"
    LOAD_ERROR = "load_error"


TERMINAL_STATES = {
    AttemptState.COMPLETED,
    AttemptState.ACCESS_DENIED,
    AttemptState.DATE_UNAVAILABLE,
    AttemptState.LOAD_ERROR,
}


def build_redirect_url(exam_id: str, show_results: bool, score: int, total_points: int, earned: int) -> str:
    if show_results:
        return f"/exam/{exam_id}/result?score={score}&total={total_points}&points={earned}"
    return "/dashboard?message=exam-completed"


class AttemptLifecycle:
    """One user's run through one exam."""

    TRANSITIONS = {
        AttemptState.CODE_ENTRY: [
            AttemptState.CODE_VERIFIED, AttemptState.ACCESS_DENIED, AttemptState.LOAD_ERROR
        ],
        AttemptState.CODE_VERIFIED: [AttemptState.LOADING],
        AttemptState.LOADING: [
            AttemptState.NOT_STARTED, AttemptState.DATE_UNAVAILABLE, AttemptState.LOAD_ERROR
        ],
        AttemptState.NOT_STARTED: [
            AttemptState.IN_PROGRESS, AttemptState.DATE_UNAVAILABLE, AttemptState.LOAD_ERROR
        ],
        AttemptState.IN_PROGRESS: [AttemptState.SUBMITTING],
        AttemptState.SUBMITTING: [
            AttemptState.COMPLETED, AttemptState.IN_PROGRESS, AttemptState.ACCESS_DENIED
        ],
        AttemptState.COMPLETED: [],
        AttemptState.ACCESS_DENIED: [],
        AttemptState.DATE_UNAVAILABLE: [],
        AttemptState.LOAD_ERROR: [],
    }

    def __init__(
        self,
        identity: IdentityContext,
        exam_id: str,
        session_factory: async_sessionmaker,
        clock_factory: Callable[[int], SessionClock] = SessionClock,
        rng: Optional[random.Random] = None,
        now: Callable[[], datetime] = utcnow,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.identity = identity
        self.exam_id = exam_id
        self._session_factory = session_factory
        self._clock_factory = clock_factory
        self._rng = rng
        self._now = now

        self._state = AttemptState.CODE_ENTRY
        self.error: Optional[CBTException] = None

        self.code: Optional[AccessCodeRecord] = None
        self.exam: Optional[ExamRecord] = None
        self.navigator: Optional[QuestionNavigator] = None
        self.answers: Optional[AnswerStore] = None
        self.duration_seconds = 0
        self.attempt_id: Optional[str] = None
        self.outcome: Optional[SubmissionOutcome] = None

        self.clock: Optional[SessionClock] = None
        self._clock_task: Optional[asyncio.Task] = None
        self._submit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State

    @property
    def state(self) -> AttemptState:
        return self._state

    def can_transition(self, new_state: AttemptState) -> bool:
        return new_state in self.TRANSITIONS[self._state]

    def _transition(self, new_state: AttemptState) -> None:
        if not self.can_transition(new_state):
            raise InvalidTransitionError(self._state.value, new_state.value)
        old_state = self._state
        self._state = new_state
        if old_state == AttemptState.IN_PROGRESS:
            self._stop_clock()
        logger.info(f"Session {self.session_id}: {old_state.value} → {new_state.value}")

    def _fail(self, new_state: AttemptState, error: CBTException) -> None:
        self.error = error
        self._transition(new_state)

    def _require(self, expected: AttemptState, target: AttemptState) -> None:
        if self._state != expected:
            raise InvalidTransitionError(self._state.value, target.value)

    # ------------------------------------------------------------------
    # Code entry and loading

    async def enter_code(self, raw_code: str) -> AttemptState:
        """
        Verify an access code, then load the exam.

        Empty or unknown codes leave the session in code_entry so the user
        can try again. Everything else is terminal on failure.
        """
        self._require(AttemptState.CODE_ENTRY, AttemptState.CODE_VERIFIED)
        self.error = None

        try:
            async with self._session_factory() as db:
                guard = CodeRedemptionGuard(db, now=self._now)
                self.code = await guard.redeem(raw_code, self.exam_id, self.identity)
        except InputValidationError as e:
            self.error = e
            raise
        except (AuthorizationDenialError, TemporalUnavailabilityError) as e:
            self._fail(AttemptState.ACCESS_DENIED, e)
            raise
        except ExternalStoreError as e:
            self._fail(AttemptState.LOAD_ERROR, e)
            raise

        self._transition(AttemptState.CODE_VERIFIED)
        await self._load()
        return self._state

    async def _load(self) -> None:
        self._transition(AttemptState.LOADING)
        try:
            async with self._session_factory() as db:
                exam = await load_exam_record(db, self.exam_id, published_only=False)
            check_availability(exam, self._now())
        except ExamUnavailableError as e:
            self._fail(AttemptState.DATE_UNAVAILABLE, e)
            raise
        except CBTException as e:
            self._fail(AttemptState.LOAD_ERROR, e)
            raise

        self.exam = exam
        sequence = build_question_sequence(exam, self._rng)
        self.navigator = QuestionNavigator(sequence)
        self.answers = AnswerStore(q.id for q in sequence)
        self.duration_seconds = exam.time_limit_minutes * 60
        self._transition(AttemptState.NOT_STARTED)

    # ------------------------------------------------------------------
    # Running

    async def start(self) -> AttemptState:
        """Re-check availability, create the attempt row, start the clock."""
        self._require(AttemptState.NOT_STARTED, AttemptState.IN_PROGRESS)

        try:
            check_availability(self.exam, self._now())
        except ExamUnavailableError as e:
            self._fail(AttemptState.DATE_UNAVAILABLE, e)
            raise

        attempt = ExamAttempt(
            exam_id=self.exam.id,
            user_id=self.identity.user_id,
            code_id=self.code.id,
            answers={},
            total_points=self.exam.total_points,
            started_at=self._now(),
        )
        try:
            async with self._session_factory() as db:
                db.add(attempt)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Session {self.session_id}: failed to create attempt: {e}")
            self._fail(AttemptState.LOAD_ERROR, ExternalStoreError.from_exception(e, context="start exam"))
            raise self.error

        self.attempt_id = attempt.id
        self._transition(AttemptState.IN_PROGRESS)
        self._start_clock(self.duration_seconds)
        return self._state

    def _start_clock(self, seconds: int) -> None:
        self.clock = self._clock_factory(seconds)
        self._clock_task = asyncio.create_task(self._run_clock(self.clock))

    def _stop_clock(self) -> None:
        if self.clock is not None:
            self.clock.cancel()
        task = self._clock_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_clock(self, clock: SessionClock) -> None:
        try:
            async for event in clock.events():
                if event.kind is ClockEventKind.EXPIRED:
                    logger.info(f"Session {self.session_id}: time is up, submitting")
                    await self.submit(triggered_by="timer")
        except asyncio.CancelledError:
            pass
        except CBTException as e:
            logger.error(f"Session {self.session_id}: automatic submission failed: {e.message}")

    @property
    def remaining_seconds(self) -> int:
        if self.clock is None:
            return self.duration_seconds
        return self.clock.remaining_seconds

    def set_answer(self, question_id: str, value: Any) -> None:
        if self._state != AttemptState.IN_PROGRESS:
            raise InvalidStateError(
                "Answers can only be changed while the exam is in progress",
                details={"state": self._state.value}
            )
        self.answers.set(question_id, value)

    def navigate(self, direction: Optional[str] = None, index: Optional[int] = None) -> int:
        if self._state != AttemptState.IN_PROGRESS:
            raise InvalidStateError(
                "Navigation is only possible while the exam is in progress",
                details={"state": self._state.value}
            )
        if index is not None:
            return self.navigator.jump(index)
        if direction == "next":
            return self.navigator.next()
        if direction == "previous":
            return self.navigator.previous()
        raise InvalidStateError(f"Unknown navigation direction: {direction}")

    # ------------------------------------------------------------------
    # Submission

    async def submit(self, triggered_by: str = "manual") -> SubmissionOutcome:
        """
        Score and persist the attempt. Idempotent: once completed, every
        further call returns the stored outcome without writing.
        """
        async with self._submit_lock:
            if self._state == AttemptState.COMPLETED:
                return self.outcome
            self._require(AttemptState.IN_PROGRESS, AttemptState.SUBMITTING)

            self._transition(AttemptState.SUBMITTING)
            self.answers.freeze()
            answers = self.answers.snapshot()
            remaining = self.remaining_seconds

            report = score_attempt(self.exam, answers)
            time_spent = round_half_up(Decimal(self.duration_seconds - remaining) / 60)

            try:
                await self._persist_completion(answers, report.total_score, time_spent)
            except AttemptAlreadySubmittedError:
                self.outcome = await self._stored_outcome(triggered_by)
                self._transition(AttemptState.COMPLETED)
                return self.outcome
            except CodeAlreadyConsumedError as e:
                self._fail(AttemptState.ACCESS_DENIED, e)
                raise
            except ExternalStoreError as e:
                self.error = e
                self._transition(AttemptState.IN_PROGRESS)
                if remaining > 0:
                    self.answers.unfreeze()
                    self._start_clock(remaining)
                else:
                    # Time is up: only a retried submit of the same answers is allowed.
                    logger.warning(f"Session {self.session_id}: submission after expiry failed, answers stay frozen")
                raise

            self.outcome = SubmissionOutcome(
                attempt_id=self.attempt_id,
                score=report.total_score,
                earned_points=report.earned_points,
                total_points=report.total_points,
                time_spent=time_spent,
                triggered_by=triggered_by,
                show_results=self.exam.show_results,
                redirect_url=build_redirect_url(
                    self.exam.id, self.exam.show_results,
                    report.total_score, report.total_points, report.earned_points
                ),
                report=report if self.exam.show_results else None,
            )
            self.error = None
            self._transition(AttemptState.COMPLETED)
            logger.info(
                f"Session {self.session_id}: attempt {self.attempt_id} submitted "
                f"({triggered_by}), score={report.total_score}%"
            )
            return self.outcome

    async def _persist_completion(self, answers: dict, score: int, time_spent: int) -> None:
        """Complete the attempt and consume the code, both or neither."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    update(ExamAttempt)
                    .where(ExamAttempt.id == self.attempt_id, ExamAttempt.completed_at.is_(None))
                    .values(
                        answers=answers,
                        score=score,
                        completed_at=self._now(),
                        time_spent=time_spent,
                    )
                )
                if result.rowcount == 0:
                    await db.rollback()
                    raise AttemptAlreadySubmittedError(self.attempt_id)

                result = await db.execute(
                    update(ExamCode)
                    .where(ExamCode.id == self.code.id, ExamCode.used.is_(False))
                    .values(used=True)
                )
                if result.rowcount == 0:
                    await db.rollback()
                    raise CodeAlreadyConsumedError(self.code.id)

                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Session {self.session_id}: failed to submit attempt: {e}")
            raise ExternalStoreError.from_exception(e, context="submit exam")

    async def _stored_outcome(self, triggered_by: str) -> SubmissionOutcome:
        async with self._session_factory() as db:
            stored = (await db.execute(
                select(ExamAttempt).where(ExamAttempt.id == self.attempt_id)
            )).scalar_one()
        report = score_attempt(self.exam, stored.answers or {})
        score = stored.score or 0
        return SubmissionOutcome(
            attempt_id=stored.id,
            score=score,
            earned_points=report.earned_points,
            total_points=stored.total_points,
            time_spent=stored.time_spent or 0,
            triggered_by=triggered_by,
            show_results=self.exam.show_results,
            redirect_url=build_redirect_url(
                self.exam.id, self.exam.show_results, score, stored.total_points, report.earned_points
            ),
            report=report if self.exam.show_results else None,
        )

    # ------------------------------------------------------------------
    # Views

    def close(self) -> None:
        """Stop the clock without submitting (session discarded)."""
        self._stop_clock()

    def to_view(self) -> SessionView:
        view = SessionView(
            session_id=self.session_id,
            exam_id=self.exam_id,
            state=self._state.value,
            outcome=self.outcome,
        )
        if self.error is not None:
            view.error = SessionError(
                code=self.error.code,
                category=self.error.category,
                message=self.error.message,
                details=self.error.details,
            )
        if self.exam is not None:
            view.exam = ExamOverview(
                id=self.exam.id,
                title=self.exam.title,
                description=self.exam.description,
                time_limit_minutes=self.exam.time_limit_minutes,
                total_questions=len(self.navigator),
                total_points=self.exam.total_points,
                subjects=[
                    {"id": s.id, "name": s.name, "questions": len(s.questions), "pass_mark": s.pass_mark}
                    for s in self.exam.subjects
                ],
            )
            view.answered_count = len(self.answers)
            view.timer = TimerView(
                duration_seconds=self.duration_seconds,
                remaining_seconds=self.remaining_seconds,
                running=self.clock is not None and self.clock.running,
            )
        if self._state == AttemptState.IN_PROGRESS and self.navigator.current is not None:
            view.current_question = self._question_view()
        return view

    def _question_view(self) -> QuestionView:
        question = self.navigator.current
        subject = next(s for s in self.exam.subjects if s.id == question.subject_id)
        return QuestionView(
            id=question.id,
            subject_id=question.subject_id,
            subject_name=subject.name,
            type=question.type,
            question_text=question.question_text,
            options=question.options,
            points=question.points,
            index=self.navigator.index,
            total=len(self.navigator),
            is_first=self.navigator.is_first,
            is_last=self.navigator.is_last,
            answer=self.answers.get(question.id),
        )
