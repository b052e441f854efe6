"""
Database CLI Commands

Database operations: init
"""
import asyncio

from ladder.database import build_engine, build_session_factory, init_db, DATABASE_URL


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False, database_url: str = None):
        self.dry_run = dry_run
        self.database_url = database_url or DATABASE_URL

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        else:
            print("Error: Unknown database action")
            return 1

    def _init(self, args) -> int:
        """Create tables and seed the global rule set."""
        print("=== Database Init ===")

        if self.dry_run:
            print(f"[DRY RUN] Would initialize {self.database_url}")
            return 0

        try:
            asyncio.run(self._async_init())
        except Exception as e:
            print(f"✗ Initialization failed: {e}")
            return 1

        print("✓ Tables created, global rule set present")
        return 0

    async def _async_init(self) -> None:
        engine = build_engine(self.database_url)
        try:
            await init_db(bind=engine, session_factory=build_session_factory(engine))
        finally:
            await engine.dispose()
