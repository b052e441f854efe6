"""
Ranking CLI Commands
"""
import asyncio

from ladder.database import open_session


class RankingCommand:
    """Ranking CLI command handler."""

    def __init__(self, dry_run: bool = False, database_url: str = None):
        self.dry_run = dry_run
        self.database_url = database_url

    def execute(self, args) -> int:
        if args.ranking_action == "show":
            return self._show(args)
        print("Error: Unknown ranking action")
        return 1

    def _show(self, args) -> int:
        print(f"=== Competition {args.competition} Ranking ===")

        try:
            rows = asyncio.run(self._async_show(args.competition))
        except Exception as e:
            print(f"Error: {e}")
            return 1

        if not rows:
            print("No closed rounds yet")
            return 0

        print(f"\n{'#':<5} {'Player':<40} {'Points':>8}")
        print("-" * 55)
        for row in rows:
            name = row["player_name"] or str(row["player_id"])
            print(f"{row['rank']:<5} {name[:38]:<40} {row['total_points']:>8}")
        return 0

    async def _async_show(self, competition_id: int):
        from ladder.services.standings_service import list_league_ranking

        async with open_session(self.database_url) as session:
            return await list_league_ranking(session, competition_id)
