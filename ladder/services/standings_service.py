"""
Standings Service

Read side of the league: cumulative ranking, per-round points and the
promotion/relegation outcome of a round.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.core.ownership_guard import Caller, require_competition_scope
from ladder.orm.competition import Competition
from ladder.orm.round import Round, RoundStatus
from ladder.orm.standings import LeagueRanking, RoundPoints
from ladder.services.match_score_store import load_group_inputs
from ladder.services.promotion import resolve_promotion_relegation
from ladder.services.round_service import get_round
from ladder.services.rules_service import resolve_rules
from ladder.services.scoring_engine import ScoringRules, score_groups, should_skip_group

logger = logging.getLogger(__name__)


async def list_league_ranking(
    db: AsyncSession,
    competition_id: int,
    caller: Optional[Caller] = None
) -> List[Dict[str, Any]]:
    """
    Ranking of a competition, best first.

    Ordered by total points descending, ties by player id ascending. Rank is
    the 1-based row position.
    """
    if caller is not None:
        competition = await db.get(Competition, competition_id)
        require_competition_scope(competition, caller)

    result = await db.execute(
        select(LeagueRanking)
        .where(LeagueRanking.competition_id == competition_id)
        .order_by(LeagueRanking.total_points.desc(), LeagueRanking.player_id)
    )
    rows = result.unique().scalars().all()

    return [
        {
            "rank": index,
            "player_id": row.player_id,
            "player_name": row.player.full_name if row.player else None,
            "total_points": row.total_points,
        }
        for index, row in enumerate(rows, start=1)
    ]


async def list_round_points(
    db: AsyncSession,
    round_id: int,
    caller: Optional[Caller] = None
) -> List[RoundPoints]:
    """Persisted points of a round (empty until it is closed)."""
    await get_round(db, round_id, caller)
    result = await db.execute(
        select(RoundPoints)
        .where(RoundPoints.round_id == round_id)
        .order_by(RoundPoints.points.desc(), RoundPoints.player_id)
    )
    return list(result.unique().scalars().all())


async def prior_ranking_order(db: AsyncSession, round_obj: Round) -> List[int]:
    """
    League order a round's tie-breaks are judged against.

    For a closed round this is rebuilt from the closed rounds numbered before
    it, so later closes never change its outcome. An open round uses the
    current ranking.
    """
    if not round_obj.is_closed:
        ranking = await db.execute(
            select(LeagueRanking.player_id)
            .where(LeagueRanking.competition_id == round_obj.competition_id)
            .order_by(LeagueRanking.total_points.desc(), LeagueRanking.player_id)
        )
        return list(ranking.scalars().all())

    total_points = func.sum(RoundPoints.points)
    earlier = await db.execute(
        select(RoundPoints.player_id)
        .join(Round, Round.id == RoundPoints.round_id)
        .where(
            Round.competition_id == round_obj.competition_id,
            Round.status == RoundStatus.CLOSED.value,
            Round.number < round_obj.number,
        )
        .group_by(RoundPoints.player_id)
        .order_by(total_points.desc(), RoundPoints.player_id)
    )
    return list(earlier.scalars().all())


async def round_movements(
    db: AsyncSession,
    round_id: int,
    caller: Optional[Caller] = None
) -> List[Dict[str, Any]]:
    """
    Promotion/relegation outcome of every scored group in a round.

    A closed round uses its persisted points; an open round uses the live
    preview. Ties fall back to the league order before the round
    (see prior_ranking_order).
    """
    round_obj = await get_round(db, round_id, caller)
    rule_set = await resolve_rules(db, round_obj.competition_id)
    groups = await load_group_inputs(db, round_id)

    if round_obj.is_closed:
        persisted = await db.execute(
            select(RoundPoints.player_id, RoundPoints.points)
            .where(RoundPoints.round_id == round_id)
        )
        round_points = {row.player_id: row.points for row in persisted.all()}
        group_points = {
            group.group_id: {
                seat.player_id: round_points[seat.player_id]
                for seat in group.seats
                if seat.player_id in round_points
            }
            for group in groups
            if not should_skip_group(group.seats)
        }
    else:
        group_points = score_groups(groups, ScoringRules.from_rule_set(rule_set)).group_points

    prior_order = await prior_ranking_order(db, round_obj)

    movements = []
    for group in sorted(groups, key=lambda g: (g.court_number or 0, g.group_id)):
        points = group_points.get(group.group_id)
        if not points:
            continue
        result = resolve_promotion_relegation(
            points,
            prior_order,
            rule_set.promotion_count,
            rule_set.relegation_count,
        )
        movements.append({
            "group_id": group.group_id,
            "court_number": group.court_number,
            **result.as_dict(),
        })

    logger.debug(f"Round {round_id}: movements computed for {len(movements)} groups")
    return movements
