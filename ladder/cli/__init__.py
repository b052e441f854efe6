#!/usr/bin/env python3
"""
Ladder League CLI

Usage:
    python -m ladder.cli <command> [options]

Commands:
    round       Round operations (close, preview)
    ranking     League ranking (show)
    db          Database operations (init)

Exit codes:
    0   success
    1   failure (see message; "safe to retry" when rolled back)
    2   round already closed, nothing to do

Environment:
    DATABASE_URL    SQLAlchemy async URL (default sqlite+aiosqlite:///./ladder.db)
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from ladder import __version__
from ladder.cli.db_commands import DbCommand
from ladder.cli.ranking_commands import RankingCommand
from ladder.cli.round_commands import RoundCommand
from ladder.config.settings import settings


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ladder",
        description="Ladder League Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s round preview --id 12
  %(prog)s round close --id 12 --caller 3
  %(prog)s ranking show --competition 1
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing"
    )

    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Round commands
    round_parser = subparsers.add_parser("round", help="Round operations")
    round_subparsers = round_parser.add_subparsers(dest="round_action")

    # round close
    close_parser = round_subparsers.add_parser("close", help="Close a round and rebuild the ranking")
    close_parser.add_argument("--id", type=int, required=True, help="Round ID")
    close_parser.add_argument("--caller", type=int, required=True, help="Acting user ID")
    close_parser.add_argument("--admin", action="store_true", help="Act with admin rights")

    # round preview
    preview_parser = round_subparsers.add_parser("preview", help="Show points without closing")
    preview_parser.add_argument("--id", type=int, required=True, help="Round ID")

    # Ranking commands
    ranking_parser = subparsers.add_parser("ranking", help="League ranking")
    ranking_subparsers = ranking_parser.add_subparsers(dest="ranking_action")

    show_parser = ranking_subparsers.add_parser("show", help="Show a competition's ranking")
    show_parser.add_argument("--competition", "-c", type=int, required=True, help="Competition ID")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create tables and seed the global rule set")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    # Setup logging
    setup_logging(parsed.log_level)

    # Route to appropriate command handler
    command_map = {
        "round": RoundCommand,
        "ranking": RankingCommand,
        "db": DbCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](
            dry_run=parsed.dry_run,
            database_url=parsed.database_url,
        )
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
