"""
Match Score Store

Read-only view of a round's court groups, seats and recorded matches, and
conversion into the immutable inputs of the scoring engine.
"""
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.orm.round import CourtGroup, CourtPlayer, Match
from ladder.services.scoring_engine import GroupInput, MatchInput, SeatInput


async def list_groups(
    db: AsyncSession,
    round_id: int,
    include_cancelled: bool = False
) -> List[CourtGroup]:
    """List a round's court groups, cancelled ones excluded by default."""
    query = select(CourtGroup).where(CourtGroup.round_id == round_id)
    if not include_cancelled:
        query = query.where(CourtGroup.is_cancelled.is_(False))
    result = await db.execute(
        query.order_by(CourtGroup.id).execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def list_seats(db: AsyncSession, group_id: int) -> List[CourtPlayer]:
    result = await db.execute(
        select(CourtPlayer)
        .where(CourtPlayer.group_id == group_id)
        .order_by(CourtPlayer.position)
        .execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def list_matches(db: AsyncSession, group_id: int) -> List[Match]:
    result = await db.execute(
        select(Match)
        .where(Match.group_id == group_id)
        .order_by(Match.match_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def to_seat_input(seat: CourtPlayer) -> SeatInput:
    return SeatInput(
        player_id=seat.player_id,
        position=seat.position,
        attendance=seat.attendance,
    )


def to_match_input(match: Match) -> MatchInput:
    return MatchInput(
        match_number=match.match_number,
        team1=(match.team1_pos1, match.team1_pos2),
        team2=(match.team2_pos1, match.team2_pos2),
        score_team1=match.score_team1,
        score_team2=match.score_team2,
        is_recorded=bool(match.is_recorded),
    )


def to_group_input(
    group: CourtGroup,
    seats: Sequence[CourtPlayer],
    matches: Sequence[Match]
) -> GroupInput:
    return GroupInput(
        group_id=group.id,
        seats=tuple(to_seat_input(s) for s in seats),
        matches=tuple(to_match_input(m) for m in matches),
        court_number=group.court.court_number if group.court is not None else None,
    )


async def load_group_inputs(db: AsyncSession, round_id: int) -> List[GroupInput]:
    """
    Load every non-cancelled group of a round with its seats and matches.

    Every read uses populate_existing so a session that read the round
    earlier still sees the latest committed seats and scores.
    """
    inputs = []
    for group in await list_groups(db, round_id):
        seats = await list_seats(db, group.id)
        matches = await list_matches(db, group.id)
        inputs.append(to_group_input(group, seats, matches))
    return inputs
