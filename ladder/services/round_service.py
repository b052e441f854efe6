"""
Round Service

Round lifecycle and score entry for a competition organizer:

- create rounds, seat court groups, start rounds
- record match scores and attendance while the round is open
- live points preview (nothing is written)

Closing a round lives in round_closer; every edit here is rejected once the
round is closed.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ladder.core.locks import round_locks
from ladder.core.ownership_guard import Caller, require_competition_scope
from ladder.exceptions import (
    DuplicateRound, InvalidScore, NotFoundOrDenied, RoundLocked, ValidationFailed
)
from ladder.orm.competition import Competition, Court, Player, TimeSlot
from ladder.orm.round import (
    Attendance, CourtGroup, CourtPlayer, Match, Round, RoundStatus, SEATS_PER_GROUP
)
from ladder.services.match_score_store import load_group_inputs
from ladder.services.rules_service import resolve_rules
from ladder.services.scoring_engine import (
    MATCH_PAIRINGS, ScoringRules, is_valid_score, score_groups
)
from ladder.state_machines.round_state import RoundStateMachine

logger = logging.getLogger(__name__)

# present -> absent -> substitute -> present
ATTENDANCE_CYCLE = {
    Attendance.PRESENT.value: Attendance.ABSENT.value,
    Attendance.ABSENT.value: Attendance.SUBSTITUTE.value,
    Attendance.SUBSTITUTE.value: Attendance.PRESENT.value,
}


# =============================================================================
# Loading helpers
# =============================================================================

async def _get_competition(db: AsyncSession, competition_id: int) -> Optional[Competition]:
    result = await db.execute(select(Competition).where(Competition.id == competition_id))
    return result.scalar_one_or_none()


async def get_round(
    db: AsyncSession,
    round_id: int,
    caller: Optional[Caller] = None,
    for_update: bool = False
) -> Round:
    """
    Fetch a round, checking the caller's competition scope when given.

    Raises:
        NotFoundOrDenied: round missing or outside the caller's scope
    """
    query = select(Round).where(Round.id == round_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    round_obj = result.scalar_one_or_none()

    if round_obj is None:
        raise NotFoundOrDenied("Round not found or access denied", round_id=round_id)

    if caller is not None:
        competition = await _get_competition(db, round_obj.competition_id)
        require_competition_scope(competition, caller, "Round")

    return round_obj


def _ensure_editable(round_obj: Round) -> None:
    if round_obj.is_closed:
        raise RoundLocked(
            f"Round {round_obj.number} is closed and can no longer be edited",
            round_id=round_obj.id,
        )


@asynccontextmanager
async def editing_round(db: AsyncSession, round_id: int, caller: Caller):
    """
    Hold the round's close lock and yield the round re-read under a row lock.

    Commit inside the block. A close that is in flight finishes first, so an
    edit either lands before the close or is rejected with RoundLocked.
    """
    async with round_locks.hold(("round", round_id)):
        round_obj = await get_round(db, round_id, caller, for_update=True)
        _ensure_editable(round_obj)
        yield round_obj


async def _get_group(db: AsyncSession, group_id: int, caller: Caller) -> Tuple[CourtGroup, Round]:
    result = await db.execute(select(CourtGroup).where(CourtGroup.id == group_id))
    group = result.unique().scalar_one_or_none()
    if group is None:
        raise NotFoundOrDenied("Court group not found or access denied", group_id=group_id)
    round_obj = await get_round(db, group.round_id, caller)
    return group, round_obj


async def get_group_detail(db: AsyncSession, group_id: int) -> CourtGroup:
    """Group with seats (and their players) and matches eagerly loaded."""
    result = await db.execute(
        select(CourtGroup)
        .where(CourtGroup.id == group_id)
        .options(
            selectinload(CourtGroup.seats),
            selectinload(CourtGroup.matches),
        )
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one()


# =============================================================================
# Round lifecycle
# =============================================================================

async def create_round(
    db: AsyncSession,
    competition_id: int,
    number: int,
    round_date: date,
    caller: Caller
) -> Round:
    """
    Create a new draft round.

    Raises:
        NotFoundOrDenied: competition missing or not the caller's
        ValidationFailed: non-positive round number
        DuplicateRound: the number already exists in the competition
    """
    competition = await _get_competition(db, competition_id)
    require_competition_scope(competition, caller)

    if number is None or number < 1:
        raise ValidationFailed("Round number must be positive", field="number")

    existing = await db.execute(
        select(func.count(Round.id)).where(
            Round.competition_id == competition_id,
            Round.number == number,
        )
    )
    if existing.scalar() > 0:
        raise DuplicateRound(
            f"Round {number} already exists for competition {competition_id}",
            competition_id=competition_id,
            number=number,
        )

    round_obj = Round(
        competition_id=competition_id,
        number=number,
        round_date=round_date,
        status=RoundStatus.DRAFT.value,
    )
    db.add(round_obj)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateRound(
            f"Round {number} already exists for competition {competition_id}",
            competition_id=competition_id,
            number=number,
        ) from e

    await db.refresh(round_obj)
    logger.info(f"✓ Created round {number} (ID: {round_obj.id}) in competition {competition_id}")
    return round_obj


async def start_round(db: AsyncSession, round_id: int, caller: Caller) -> Round:
    """Move a round from draft to running."""
    async with round_locks.hold(("round", round_id)):
        round_obj = await get_round(db, round_id, caller, for_update=True)
        RoundStateMachine(round_obj).transition(RoundStatus.RUNNING, caller)
        await db.commit()
    await db.refresh(round_obj)
    return round_obj


async def _check_time_slot(db: AsyncSession, round_obj: Round, time_slot_id: int) -> TimeSlot:
    time_slot = await db.get(TimeSlot, time_slot_id)
    if time_slot is None or time_slot.competition_id != round_obj.competition_id:
        raise ValidationFailed(
            f"Time slot {time_slot_id} does not belong to this competition",
            field="time_slot_id",
        )
    return time_slot


async def _check_players(db: AsyncSession, round_obj: Round, player_ids: Sequence[int]) -> None:
    found = await db.execute(
        select(Player.id).where(
            Player.id.in_(player_ids),
            Player.competition_id == round_obj.competition_id,
        )
    )
    missing = set(player_ids) - set(found.scalars().all())
    if missing:
        raise ValidationFailed(
            f"Players not in this competition: {sorted(missing)}",
            field="player_ids",
        )


async def _check_slot_free(
    db: AsyncSession,
    round_id: int,
    court_id: int,
    time_slot_id: int,
    exclude_group_id: Optional[int] = None
) -> None:
    query = select(CourtGroup.id).where(
        CourtGroup.round_id == round_id,
        CourtGroup.court_id == court_id,
        CourtGroup.time_slot_id == time_slot_id,
    )
    if exclude_group_id is not None:
        query = query.where(CourtGroup.id != exclude_group_id)
    taken = await db.execute(query)
    if taken.first() is not None:
        raise ValidationFailed("This court and time slot already have a group in the round")


async def add_court_group(
    db: AsyncSession,
    round_id: int,
    court_id: int,
    time_slot_id: int,
    player_ids: Sequence[int],
    caller: Caller
) -> CourtGroup:
    """
    Seat up to four players on one tier x time slot and create the three
    fixed-pairing matches (unrecorded).

    Players take positions 1..N in the order given.
    """
    player_ids = list(player_ids)
    if not player_ids or len(player_ids) > SEATS_PER_GROUP:
        raise ValidationFailed(
            f"A court group seats between 1 and {SEATS_PER_GROUP} players",
            field="player_ids",
        )
    if len(set(player_ids)) != len(player_ids):
        raise ValidationFailed("A player can only take one seat per group", field="player_ids")

    async with editing_round(db, round_id, caller) as round_obj:
        court = await db.get(Court, court_id)
        if court is None or court.competition_id != round_obj.competition_id:
            raise ValidationFailed(f"Court {court_id} does not belong to this competition", field="court_id")

        time_slot = await _check_time_slot(db, round_obj, time_slot_id)
        await _check_players(db, round_obj, player_ids)
        await _check_slot_free(db, round_id, court_id, time_slot_id)

        group = CourtGroup(
            round_id=round_id,
            competition_id=round_obj.competition_id,
            court_id=court_id,
            time_slot_id=time_slot_id,
            is_cancelled=False,
        )
        group.seats = [
            CourtPlayer(player_id=player_id, position=position, attendance=Attendance.PRESENT.value)
            for position, player_id in enumerate(player_ids, start=1)
        ]
        group.matches = [
            Match(
                match_number=pairing.match_number,
                team1_pos1=pairing.team1[0],
                team1_pos2=pairing.team1[1],
                team2_pos1=pairing.team2[0],
                team2_pos2=pairing.team2[1],
                is_recorded=False,
            )
            for pairing in MATCH_PAIRINGS
        ]
        db.add(group)
        await db.commit()

    logger.info(
        f"✓ Group {group.id} added to round {round_id}: court {court.court_number}, "
        f"slot {time_slot.slot_time}, {len(player_ids)} players"
    )
    return await get_group_detail(db, group.id)


async def cancel_group(
    db: AsyncSession,
    group_id: int,
    caller: Caller,
    cancelled: bool = True
) -> CourtGroup:
    """Cancel (or reinstate) a group. Cancelled groups never score."""
    group, round_obj = await _get_group(db, group_id, caller)

    async with editing_round(db, round_obj.id, caller):
        group.is_cancelled = bool(cancelled)
        await db.commit()

    logger.info(f"Group {group_id} in round {round_obj.id} {'cancelled' if cancelled else 'reinstated'}")
    return group


async def set_physical_court(
    db: AsyncSession,
    group_id: int,
    physical_court_number: Optional[int],
    caller: Caller
) -> CourtGroup:
    """Record which physical court a group plays on (None clears it)."""
    group, round_obj = await _get_group(db, group_id, caller)

    async with editing_round(db, round_obj.id, caller):
        if physical_court_number is not None:
            competition = await _get_competition(db, round_obj.competition_id)
            if not 1 <= physical_court_number <= competition.physical_courts_count:
                raise ValidationFailed(
                    f"Physical court must be between 1 and {competition.physical_courts_count}",
                    field="physical_court_number",
                )

        group.physical_court_number = physical_court_number
        await db.commit()
    return group


async def set_group_slot(
    db: AsyncSession,
    group_id: int,
    time_slot_id: int,
    caller: Caller
) -> CourtGroup:
    """
    Move a group to another time slot of the competition.

    Raises:
        ValidationFailed: slot outside the competition, or the court is
            already taken at that slot
        RoundLocked: the round is closed
    """
    group, round_obj = await _get_group(db, group_id, caller)

    async with editing_round(db, round_obj.id, caller):
        time_slot = await _check_time_slot(db, round_obj, time_slot_id)
        await _check_slot_free(db, round_obj.id, group.court_id, time_slot_id, exclude_group_id=group_id)

        group.time_slot_id = time_slot_id
        await db.commit()

    logger.info(f"Group {group_id} in round {round_obj.id} moved to slot {time_slot.slot_time}")
    return await get_group_detail(db, group_id)


async def assign_seat(
    db: AsyncSession,
    group_id: int,
    position: int,
    player_id: int,
    caller: Caller
) -> CourtGroup:
    """
    Put a player in one seat of a group.

    Whoever held that position is unseated, and the player leaves any other
    seat of the same group. The new seat starts as present.
    """
    if position is None or not 1 <= position <= SEATS_PER_GROUP:
        raise ValidationFailed(
            f"Seat position must be between 1 and {SEATS_PER_GROUP}",
            field="position",
        )

    group, round_obj = await _get_group(db, group_id, caller)

    async with editing_round(db, round_obj.id, caller):
        await _check_players(db, round_obj, [player_id])

        group = await get_group_detail(db, group_id)
        for seat in [s for s in group.seats if s.position == position or s.player_id == player_id]:
            group.seats.remove(seat)
        # deletes must reach the database before the insert reuses the position
        await db.flush()

        group.seats.append(CourtPlayer(
            player_id=player_id,
            position=position,
            attendance=Attendance.PRESENT.value,
        ))
        await db.commit()

    logger.info(f"Group {group_id}: player {player_id} seated at position {position}")
    return await get_group_detail(db, group_id)


# =============================================================================
# Score and attendance entry
# =============================================================================

async def record_match_score(
    db: AsyncSession,
    match_id: int,
    score_team1: int,
    score_team2: int,
    caller: Caller
) -> Match:
    """
    Record both team scores of a match and mark it recorded.

    Raises:
        NotFoundOrDenied: match missing or outside the caller's scope
        RoundLocked: the round is closed
        InvalidScore: a score is not an integer 0..7
    """
    match = await db.get(Match, match_id)
    if match is None:
        raise NotFoundOrDenied("Match not found or access denied", match_id=match_id)

    _, round_obj = await _get_group(db, match.group_id, caller)

    async with editing_round(db, round_obj.id, caller):
        for field_name, score in (("score_team1", score_team1), ("score_team2", score_team2)):
            if not is_valid_score(score):
                raise InvalidScore(field=field_name, value=score)

        match.score_team1 = score_team1
        match.score_team2 = score_team2
        match.is_recorded = True
        await db.commit()

    logger.info(f"Match {match_id} (group {match.group_id}) recorded {score_team1}-{score_team2}")
    return match


async def _get_seat(db: AsyncSession, court_player_id: int, caller: Caller) -> Tuple[CourtPlayer, Round]:
    result = await db.execute(select(CourtPlayer).where(CourtPlayer.id == court_player_id))
    seat = result.unique().scalar_one_or_none()
    if seat is None:
        raise NotFoundOrDenied("Seat not found or access denied", court_player_id=court_player_id)

    _, round_obj = await _get_group(db, seat.group_id, caller)
    return seat, round_obj


def _apply_attendance(seat: CourtPlayer, attendance: str, substitute_name: Optional[str]) -> None:
    seat.attendance = attendance
    seat.substitute_name = substitute_name if attendance == Attendance.SUBSTITUTE.value else None


async def set_attendance(
    db: AsyncSession,
    court_player_id: int,
    attendance: str,
    caller: Caller,
    substitute_name: Optional[str] = None
) -> CourtPlayer:
    """
    Set a seat's attendance.

    A substitute plays the seat and scores as present; the name is kept for
    the record and cleared for any other attendance.
    """
    if isinstance(attendance, Attendance):
        attendance = attendance.value
    if attendance not in ATTENDANCE_CYCLE:
        raise ValidationFailed(f"Invalid attendance: {attendance}", field="attendance")

    seat, round_obj = await _get_seat(db, court_player_id, caller)
    async with editing_round(db, round_obj.id, caller):
        _apply_attendance(seat, attendance, substitute_name)
        await db.commit()

    logger.info(f"Seat {court_player_id} (player {seat.player_id}) attendance → {attendance}")
    return seat


async def cycle_attendance(db: AsyncSession, court_player_id: int, caller: Caller) -> CourtPlayer:
    """Advance a seat's attendance one step: present → absent → substitute → present."""
    seat, round_obj = await _get_seat(db, court_player_id, caller)
    async with editing_round(db, round_obj.id, caller):
        await db.refresh(seat)
        _apply_attendance(seat, ATTENDANCE_CYCLE[seat.attendance], None)
        await db.commit()

    logger.info(f"Seat {court_player_id} (player {seat.player_id}) attendance → {seat.attendance}")
    return seat


# =============================================================================
# Preview
# =============================================================================

async def preview_round_points(
    db: AsyncSession,
    round_id: int,
    caller: Optional[Caller] = None
) -> Dict[str, Any]:
    """
    Compute the points the round would produce if closed now.

    Read-only: nothing is persisted and no lock is taken.

    Returns:
        {
            "round_id", "status",
            "groups": [{"group_id", "court_number", "points": {player_id: points}}],
            "skipped_group_ids": [...],
            "points": {player_id: points}
        }
    """
    round_obj = await get_round(db, round_id, caller)
    rule_set = await resolve_rules(db, round_obj.competition_id)
    groups = await load_group_inputs(db, round_id)
    scoring = score_groups(groups, ScoringRules.from_rule_set(rule_set))

    group_rows: List[Dict[str, Any]] = [
        {
            "group_id": group.group_id,
            "court_number": group.court_number,
            "points": scoring.group_points[group.group_id],
        }
        for group in groups
        if group.group_id in scoring.group_points
    ]

    return {
        "round_id": round_obj.id,
        "status": round_obj.status,
        "groups": group_rows,
        "skipped_group_ids": list(scoring.skipped_group_ids),
        "points": dict(scoring.points),
    }
