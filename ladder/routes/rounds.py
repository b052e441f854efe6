"""
Round API Routes

Round lifecycle, score entry and the round-closing transaction.
Domain errors propagate to the application's exception handlers.
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config.settings import settings
from ladder.core.ownership_guard import Caller
from ladder.database import get_db
from ladder.errors import ErrorResponse, feature_disabled
from ladder.rbac import get_current_caller
from ladder.schemas.ladder import (
    AttendanceRequest, CloseRoundResponse, GroupMovement, MatchResponse,
    MatchScoreRequest, RoundPointsEntry, RoundPreviewResponse, RoundResponse,
    SeatResponse
)
from ladder.services import round_service, standings_service
from ladder.services.round_closer import RoundCloser

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Rounds"],
    responses={
        409: {"model": ErrorResponse, "description": "Round state conflict"},
        404: {"model": ErrorResponse, "description": "Resource not found or access denied"},
        400: {"model": ErrorResponse, "description": "Bad request"}
    }
)


# =============================================================================
# Request Models
# =============================================================================

class CreateRoundRequest(BaseModel):
    number: int = Field(..., ge=1, description="Round number within the competition")
    round_date: date


class AddGroupRequest(BaseModel):
    court_id: int
    time_slot_id: int
    player_ids: List[int] = Field(..., min_length=1, max_length=4)


class GroupResponse(BaseModel):
    id: int
    round_id: int
    court_id: int
    time_slot_id: int
    physical_court_number: Optional[int] = None
    is_cancelled: bool = False
    seats: List[SeatResponse]
    matches: List[MatchResponse]


class PhysicalCourtRequest(BaseModel):
    physical_court_number: Optional[int] = Field(None, ge=1)


class GroupSlotRequest(BaseModel):
    time_slot_id: int


class SeatAssignRequest(BaseModel):
    player_id: int


class CancelGroupRequest(BaseModel):
    cancelled: bool = True


def group_response(group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        round_id=group.round_id,
        court_id=group.court_id,
        time_slot_id=group.time_slot_id,
        physical_court_number=group.physical_court_number,
        is_cancelled=bool(group.is_cancelled),
        seats=[SeatResponse.model_validate(s) for s in group.seats],
        matches=[MatchResponse.model_validate(m) for m in group.matches],
    )


# =============================================================================
# Round lifecycle
# =============================================================================

@router.post(
    "/competitions/{competition_id}/rounds",
    response_model=RoundResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_round(
    competition_id: int,
    request: CreateRoundRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    round_obj = await round_service.create_round(
        db, competition_id, request.number, request.round_date, caller
    )
    return RoundResponse.model_validate(round_obj)


@router.post(
    "/rounds/{round_id}/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_court_group(
    round_id: int,
    request: AddGroupRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    group = await round_service.add_court_group(
        db, round_id, request.court_id, request.time_slot_id, request.player_ids, caller
    )
    return group_response(group)


@router.put("/groups/{group_id}/physical-court", response_model=GroupResponse)
async def set_physical_court(
    group_id: int,
    request: PhysicalCourtRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    await round_service.set_physical_court(db, group_id, request.physical_court_number, caller)
    return group_response(await round_service.get_group_detail(db, group_id))


@router.put("/groups/{group_id}/slot", response_model=GroupResponse)
async def set_group_slot(
    group_id: int,
    request: GroupSlotRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Move a group to another time slot."""
    group = await round_service.set_group_slot(db, group_id, request.time_slot_id, caller)
    return group_response(group)


@router.put("/groups/{group_id}/seats/{position}", response_model=GroupResponse)
async def assign_seat(
    group_id: int,
    position: int,
    request: SeatAssignRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Seat a player; the seat's previous holder and the player's other seat are cleared."""
    group = await round_service.assign_seat(db, group_id, position, request.player_id, caller)
    return group_response(group)


@router.post("/groups/{group_id}/cancel", response_model=GroupResponse)
async def cancel_group(
    group_id: int,
    request: CancelGroupRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    await round_service.cancel_group(db, group_id, caller, request.cancelled)
    return group_response(await round_service.get_group_detail(db, group_id))


@router.post("/rounds/{round_id}/start", response_model=RoundResponse)
async def start_round(
    round_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Move a draft round to running."""
    round_obj = await round_service.start_round(db, round_id, caller)
    return RoundResponse.model_validate(round_obj)


@router.post("/rounds/{round_id}/close", response_model=CloseRoundResponse)
async def close_round(
    round_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """
    Close a round: compute and persist every player's points and rebuild the
    league ranking, atomically.

    - 404: round missing or not yours
    - 409 ALREADY_CLOSED: nothing to do
    - 500 RULES_NOT_FOUND: no rule set configured
    - 503 PERSISTENCE_FAILURE: rolled back, safe to retry
    """
    result = await RoundCloser.close_round(db, round_id, caller)
    return CloseRoundResponse(**result.as_dict())


@router.get("/rounds/{round_id}/preview", response_model=RoundPreviewResponse)
async def preview_round(
    round_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Live points preview. Nothing is written."""
    if not settings.FEATURE_ROUND_PREVIEW:
        raise feature_disabled("Round preview")
    return await round_service.preview_round_points(db, round_id, caller)


@router.get("/rounds/{round_id}/points", response_model=List[RoundPointsEntry])
async def get_round_points(
    round_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    rows = await standings_service.list_round_points(db, round_id, caller)
    return [RoundPointsEntry.model_validate(row) for row in rows]


@router.get("/rounds/{round_id}/movements", response_model=List[GroupMovement])
async def get_round_movements(
    round_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Promoted / stays / relegated per scored group."""
    return await standings_service.round_movements(db, round_id, caller)


# =============================================================================
# Score entry
# =============================================================================

@router.put("/matches/{match_id}/score", response_model=MatchResponse)
async def record_match_score(
    match_id: int,
    request: MatchScoreRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    match = await round_service.record_match_score(
        db, match_id, request.score_team1, request.score_team2, caller
    )
    return MatchResponse.model_validate(match)


@router.put("/court-players/{court_player_id}/attendance", response_model=SeatResponse)
async def set_attendance(
    court_player_id: int,
    request: AttendanceRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    if request.attendance is None:
        seat = await round_service.cycle_attendance(db, court_player_id, caller)
    else:
        seat = await round_service.set_attendance(
            db, court_player_id, request.attendance, caller, request.substitute_name
        )
    return SeatResponse.model_validate(seat)
