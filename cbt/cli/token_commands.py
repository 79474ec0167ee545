"""
Token CLI Command
"""
from datetime import timedelta

from cbt.auth import create_access_token


class TokenCommand:
    """Prints a bearer token for a profile."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        expires = timedelta(minutes=args.minutes) if args.minutes else None
        print(create_access_token(args.user_id, args.email, expires))
        return 0
