"""
Exam CLI Commands

Exam operations: validate, publish
"""
import asyncio

from cbt.exceptions import CBTException, PublishReadinessError
from cbt.orm.base import utcnow
from cbt.schemas.records import IdentityContext
from cbt.services.exam_content import load_exam_record
from cbt.services.publish_validator import publish_exam, validate_for_publish
from cbt.services.roles import get_profile


class ExamCommand:
    """Exam CLI command handler."""

    def __init__(self, dry_run: bool = False, session_factory=None):
        self.dry_run = dry_run
        self._session_factory = session_factory

    def _factory(self):
        if self._session_factory is None:
            from cbt.database import AsyncSessionLocal
            return AsyncSessionLocal
        return self._session_factory

    def execute(self, args) -> int:
        """Execute exam command."""
        if args.exam_action == "validate":
            return asyncio.run(self.validate(args.id))
        elif args.exam_action == "publish":
            if self.dry_run:
                print(f"[DRY RUN] Would validate and publish exam {args.id}")
                return asyncio.run(self.validate(args.id))
            return asyncio.run(self.publish(args.id, args.creator_id))
        print("Error: Unknown exam action")
        return 1

    async def validate(self, exam_id: str) -> int:
        print(f"=== Publish Readiness: {exam_id} ===")
        async with self._factory()() as db:
            try:
                exam = await load_exam_record(db, exam_id, published_only=False)
                validate_for_publish(exam, utcnow())
            except PublishReadinessError as e:
                print(f"NOT READY ({e.reason}): {e.message}")
                return 1
            except CBTException as e:
                print(f"Error: {e.message}")
                return 1
        print(f"READY: '{exam.title}' ({len(exam.subjects)} subjects, {len(exam.questions)} questions)")
        return 0

    async def publish(self, exam_id: str, creator_id: str) -> int:
        async with self._factory()() as db:
            try:
                profile = await get_profile(db, creator_id)
                identity = IdentityContext(user_id=profile.id, email=profile.email)
                exam = await publish_exam(db, exam_id, identity)
            except PublishReadinessError as e:
                print(f"NOT READY ({e.reason}): {e.message}")
                return 1
            except CBTException as e:
                print(f"Error: {e.message}")
                return 1
        print(f"Exam {exam.id} is {exam.status.value}")
        return 0
