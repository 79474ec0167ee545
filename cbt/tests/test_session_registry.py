"""
Session registry: resume, release of failed sessions, per-user cap.
"""
import uuid

import pytest

from cbt.exceptions import NotFoundError, OwnershipViolationError, SessionLimitError
from cbt.schemas.records import IdentityContext
from cbt.services.session_registry import SessionRegistry
from cbt.state_machines.attempt_lifecycle import AttemptState


class StubLifecycle:
    def __init__(self, identity, exam_id, session_factory, **kwargs):
        self.session_id = str(uuid.uuid4())
        self.identity = identity
        self.exam_id = exam_id
        self.state = AttemptState.CODE_ENTRY
        self.closed = False

    def close(self):
        self.closed = True


ADA = IdentityContext(user_id="u-ada", email="a@x.com")
BOB = IdentityContext(user_id="u-bob", email="b@x.com")


@pytest.fixture
def registry():
    return SessionRegistry(lifecycle_factory=StubLifecycle, max_sessions_per_user=3)


def test_reopening_an_exam_resumes_the_session(registry):
    first = registry.open(ADA, "exam-1", None)
    for _ in range(30):
        assert registry.open(ADA, "exam-1", None) is first
    assert len(registry) == 1


def test_failed_sessions_are_released(registry):
    lifecycle = registry.open(ADA, "exam-1", None)

    registry.release(lifecycle)
    assert len(registry) == 1

    lifecycle.state = AttemptState.ACCESS_DENIED
    registry.release(lifecycle)
    assert len(registry) == 0
    assert lifecycle.closed is True


def test_failed_session_is_replaced_on_open(registry):
    failed = registry.open(ADA, "exam-1", None)
    failed.state = AttemptState.LOAD_ERROR

    fresh = registry.open(ADA, "exam-1", None)
    assert fresh is not failed
    assert failed.closed is True
    assert len(registry) == 1


def test_completed_session_kept_until_exam_reopened(registry):
    done = registry.open(ADA, "exam-1", None)
    done.state = AttemptState.COMPLETED

    registry.release(done)
    assert registry.get(done.session_id, ADA) is done

    again = registry.open(ADA, "exam-1", None)
    assert again is not done
    assert len(registry) == 1


def test_cap_evicts_oldest_idle_session(registry):
    timed = registry.open(ADA, "exam-1", None)
    timed.state = AttemptState.IN_PROGRESS
    idle = registry.open(ADA, "exam-2", None)
    registry.open(ADA, "exam-3", None)

    registry.open(ADA, "exam-4", None)

    assert len(registry) == 3
    assert idle.closed is True
    assert timed.closed is False
    with pytest.raises(NotFoundError):
        registry.get(idle.session_id, ADA)


def test_cap_with_every_session_timed_refuses(registry):
    for index in range(3):
        registry.open(ADA, f"exam-{index}", None).state = AttemptState.IN_PROGRESS

    with pytest.raises(SessionLimitError) as exc_info:
        registry.open(ADA, "exam-9", None)
    assert exc_info.value.code == "TOO_MANY_SESSIONS"
    assert len(registry) == 3


def test_cap_is_per_user(registry):
    for index in range(3):
        registry.open(ADA, f"exam-{index}", None)
    for index in range(3):
        registry.open(BOB, f"exam-{index}", None)
    assert len(registry) == 6


def test_get_checks_owner_and_exam(registry):
    lifecycle = registry.open(ADA, "exam-1", None)

    assert registry.get(lifecycle.session_id, ADA, exam_id="exam-1") is lifecycle
    with pytest.raises(NotFoundError):
        registry.get(lifecycle.session_id, ADA, exam_id="exam-2")
    with pytest.raises(OwnershipViolationError):
        registry.get(lifecycle.session_id, BOB)
