"""
Round CLI Commands

Round operations: close, preview
"""
import asyncio
import logging

from ladder.core.ownership_guard import Caller
from ladder.database import open_session
from ladder.exceptions import AlreadyClosed, LadderException

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ALREADY_CLOSED = 2


class RoundCommand:
    """Round CLI command handler."""

    def __init__(self, dry_run: bool = False, database_url: str = None):
        self.dry_run = dry_run
        self.database_url = database_url

    def execute(self, args) -> int:
        """Execute round command."""
        if args.round_action == "close":
            return self._close(args)
        elif args.round_action == "preview":
            return self._preview(args)
        else:
            print("Error: Unknown round action")
            return EXIT_FAILED

    def _close(self, args) -> int:
        """Close a round. Exit 2 means it was already closed."""
        caller = Caller(user_id=args.caller, is_admin=args.admin)
        print(f"=== Close Round {args.id} ===")

        if self.dry_run:
            print(f"[DRY RUN] Would close round {args.id} as user {caller.user_id}")
            return EXIT_OK

        try:
            result = asyncio.run(self._async_close(args.id, caller))
        except AlreadyClosed as e:
            print(f"Nothing to do: {e.message}")
            return EXIT_ALREADY_CLOSED
        except LadderException as e:
            hint = " (safe to retry)" if e.retryable else ""
            print(f"✗ {e.code}: {e.message}{hint}")
            return EXIT_FAILED

        print(f"✓ Round {result.round_number} closed")
        print(f"  Players scored: {result.points_written}")
        print(f"  Groups scored:  {result.groups_scored} ({result.groups_skipped} skipped)")
        print(f"  Rules:          {result.rules_scope}")
        return EXIT_OK

    async def _async_close(self, round_id: int, caller: Caller):
        from ladder.services.round_closer import RoundCloser

        async with open_session(self.database_url) as session:
            return await RoundCloser.close_round(session, round_id, caller)

    def _preview(self, args) -> int:
        """Show the points a round would produce if closed now."""
        print(f"=== Round {args.id} Preview ===")

        try:
            preview = asyncio.run(self._async_preview(args.id))
        except LadderException as e:
            print(f"✗ {e.code}: {e.message}")
            return EXIT_FAILED

        print(f"Status: {preview['status']}")
        for group in preview["groups"]:
            print(f"\nCourt {group['court_number']} (group {group['group_id']})")
            for player_id, points in sorted(group["points"].items(), key=lambda kv: -kv[1]):
                print(f"  {player_id:<8} {points:>4}")

        if preview["skipped_group_ids"]:
            print(f"\nSkipped groups: {preview['skipped_group_ids']}")
        return EXIT_OK

    async def _async_preview(self, round_id: int) -> dict:
        from ladder.services.round_service import preview_round_points

        async with open_session(self.database_url) as session:
            return await preview_round_points(session, round_id)
