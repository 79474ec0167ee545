"""
Database CLI Commands

Database operations: init
"""
import asyncio


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False, engine=None):
        self.dry_run = dry_run
        self._engine = engine

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            if self.dry_run:
                print("[DRY RUN] Would create missing tables")
                return 0
            return asyncio.run(self.init())
        print("Error: Unknown database action")
        return 1

    async def init(self) -> int:
        from cbt.database import engine, init_db

        print("=== Database Initialization ===")
        try:
            await init_db(self._engine or engine)
        except Exception as e:
            print(f"Initialization failed: {e}")
            return 1
        print("Tables are up to date")
        return 0
