"""
Competition API Routes

League ranking and rule set management.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.core.ownership_guard import Caller
from ladder.database import get_db
from ladder.errors import ErrorResponse
from ladder.rbac import get_current_caller
from ladder.schemas.ladder import RankingEntry, RuleSetResponse, RuleSetUpdate
from ladder.services import rules_service, standings_service

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Competitions"],
    responses={
        404: {"model": ErrorResponse, "description": "Resource not found or access denied"},
        400: {"model": ErrorResponse, "description": "Bad request"}
    }
)


@router.get("/competitions/{competition_id}/ranking", response_model=List[RankingEntry])
async def get_ranking(
    competition_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """League ranking, best first, as of the last closed round."""
    return await standings_service.list_league_ranking(db, competition_id, caller)


# =============================================================================
# Rules
# =============================================================================

@router.get("/competitions/{competition_id}/rules", response_model=RuleSetResponse)
async def get_rules(
    competition_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Effective rules: the competition override if any, else the global default."""
    rule_set = await rules_service.get_effective_rules(db, competition_id, caller)
    return RuleSetResponse.model_validate(rule_set)


@router.put("/competitions/{competition_id}/rules", response_model=RuleSetResponse)
async def put_rules(
    competition_id: int,
    request: RuleSetUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    rule_set = await rules_service.upsert_competition_rules(
        db, competition_id, request.model_dump(exclude_unset=True), caller
    )
    return RuleSetResponse.model_validate(rule_set)


@router.delete("/competitions/{competition_id}/rules")
async def delete_rules(
    competition_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Drop the override; the global default applies again."""
    removed = await rules_service.delete_competition_rules(db, competition_id, caller)
    return {"success": True, "removed": removed}


@router.put("/rules/global", response_model=RuleSetResponse)
async def put_global_rules(
    request: RuleSetUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db)
):
    """Admin only."""
    rule_set = await rules_service.update_global_rules(
        db, request.model_dump(exclude_unset=True), caller
    )
    return RuleSetResponse.model_validate(rule_set)
