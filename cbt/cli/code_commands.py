"""
Access Code CLI Commands

Code operations: issue
"""
import asyncio
from datetime import datetime
from typing import List, Optional

from cbt.exceptions import CBTException
from cbt.schemas.records import IdentityContext
from cbt.services.code_issuance import issue_codes
from cbt.services.exam_content import get_exam_row
from cbt.services.roles import get_profile


class CodesCommand:
    """Access code CLI command handler."""

    def __init__(self, dry_run: bool = False, session_factory=None, sender=None):
        self.dry_run = dry_run
        self._session_factory = session_factory
        self._sender = sender

    def _factory(self):
        if self._session_factory is None:
            from cbt.database import AsyncSessionLocal
            return AsyncSessionLocal
        return self._session_factory

    def execute(self, args) -> int:
        """Execute codes command."""
        if args.codes_action == "issue":
            try:
                expires_at = datetime.fromisoformat(args.expires_at) if args.expires_at else None
            except ValueError:
                print(f"Error: Invalid --expires-at value: {args.expires_at}")
                return 1
            if self.dry_run:
                print(f"[DRY RUN] Would issue {len(args.email)} code(s) for exam {args.exam_id}")
                return 0
            return asyncio.run(self.issue(args.exam_id, args.email, expires_at, args.creator_id))
        print("Error: Unknown codes action")
        return 1

    async def issue(
        self,
        exam_id: str,
        emails: List[str],
        expires_at: Optional[datetime] = None,
        creator_id: Optional[str] = None,
    ) -> int:
        async with self._factory()() as db:
            try:
                if creator_id is None:
                    creator_id = (await get_exam_row(db, exam_id)).creator_id
                profile = await get_profile(db, creator_id)
                identity = IdentityContext(user_id=profile.id, email=profile.email)
                issued = await issue_codes(db, exam_id, emails, identity, expires_at, sender=self._sender)
            except CBTException as e:
                print(f"Error: {e.message}")
                return 1

        print(f"=== Issued {len(issued)} code(s) ===")
        for code in issued:
            delivery = "sent" if code.delivered else "EMAIL FAILED"
            print(f"{code.user_email}\t{code.code}\t{code.take_url}\t{delivery}")
        return 0
