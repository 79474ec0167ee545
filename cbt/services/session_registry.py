"""
cbt/services/session_registry.py
In-process registry of live exam sessions for the HTTP surface

Sessions live in memory for the lifetime of the process. A session can
only be reached by the identity that opened it.

Key Design:
- One open session per (user, exam): opening again resumes it
- Sessions that failed terminally are dropped once their view is served
- A completed session is kept until its exam is opened again, so a repeated
  submit still returns the stored outcome
- Each user holds at most MAX_SESSIONS_PER_USER sessions; the oldest one
  not busy or timed is evicted to make room
"""
import logging
from typing import Callable, Dict, List, Optional

from cbt.config import settings
from cbt.errors import ErrorCode
from cbt.exceptions import NotFoundError, OwnershipViolationError, SessionLimitError
from cbt.schemas.records import IdentityContext
from cbt.state_machines.attempt_lifecycle import AttemptLifecycle, AttemptState, TERMINAL_STATES

logger = logging.getLogger(__name__)

FAILED_STATES = TERMINAL_STATES - {AttemptState.COMPLETED}

# Never evicted: mid-verification or timed
PINNED_STATES = {
    AttemptState.CODE_VERIFIED, AttemptState.LOADING, AttemptState.IN_PROGRESS, AttemptState.SUBMITTING,
}


class SessionRegistry:
    def __init__(
        self,
        lifecycle_factory: Optional[Callable[..., AttemptLifecycle]] = None,
        max_sessions_per_user: Optional[int] = None,
    ):
        self._sessions: Dict[str, AttemptLifecycle] = {}
        self._lifecycle_factory = lifecycle_factory or AttemptLifecycle
        self._max_per_user = max_sessions_per_user or settings.MAX_SESSIONS_PER_USER

    def _user_sessions(self, user_id: str) -> List[AttemptLifecycle]:
        return [s for s in self._sessions.values() if s.identity.user_id == user_id]

    def open(self, identity: IdentityContext, exam_id: str, session_factory, **kwargs) -> AttemptLifecycle:
        """Resume the caller's open session for this exam, or start a new one."""
        for lifecycle in self._user_sessions(identity.user_id):
            if lifecycle.state in FAILED_STATES:
                self.discard(lifecycle.session_id)
            elif lifecycle.exam_id == exam_id:
                if lifecycle.state != AttemptState.COMPLETED:
                    logger.info(f"Session {lifecycle.session_id} resumed by {identity.user_id}")
                    return lifecycle
                self.discard(lifecycle.session_id)

        owned = self._user_sessions(identity.user_id)
        if len(owned) >= self._max_per_user:
            evictable = [s for s in owned if s.state not in PINNED_STATES]
            if not evictable:
                logger.warning(f"User {identity.user_id} hit the session limit ({self._max_per_user})")
                raise SessionLimitError(self._max_per_user)
            oldest = evictable[0]
            logger.info(f"Session {oldest.session_id} evicted ({oldest.state.value})")
            self.discard(oldest.session_id)

        lifecycle = self._lifecycle_factory(identity, exam_id, session_factory, **kwargs)
        self._sessions[lifecycle.session_id] = lifecycle
        logger.info(f"Session {lifecycle.session_id} opened by {identity.user_id} for exam {exam_id}")
        return lifecycle

    def get(self, session_id: str, identity: IdentityContext, exam_id: Optional[str] = None) -> AttemptLifecycle:
        lifecycle = self._sessions.get(session_id)
        if lifecycle is None or (exam_id is not None and lifecycle.exam_id != exam_id):
            raise NotFoundError("Session", session_id, code=ErrorCode.SESSION_NOT_FOUND)
        if lifecycle.identity.user_id != identity.user_id:
            raise OwnershipViolationError("session")
        return lifecycle

    def release(self, lifecycle: AttemptLifecycle) -> None:
        """Drop a session that failed terminally; call after its view is served."""
        if lifecycle.state in FAILED_STATES and lifecycle.session_id in self._sessions:
            logger.info(f"Session {lifecycle.session_id} released ({lifecycle.state.value})")
            self.discard(lifecycle.session_id)

    def discard(self, session_id: str) -> None:
        lifecycle = self._sessions.pop(session_id, None)
        if lifecycle is not None:
            lifecycle.close()

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


registry = SessionRegistry()


def get_session_registry() -> SessionRegistry:
    """FastAPI dependency; overridden in tests."""
    return registry
