"""
Pydantic Schemas for the ladder API

Request and response models for rounds, score entry, standings and rules.
"""
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Round Schemas
# ============================================================================

class RoundResponse(BaseModel):
    """Schema for round response."""
    id: int
    competition_id: int
    number: int
    round_date: date
    status: str

    class Config:
        from_attributes = True


class CloseRoundResponse(BaseModel):
    """Schema for a successful round close."""
    success: bool = True
    round_id: int
    competition_id: int
    round_number: int
    rules_scope: str
    points_written: int
    groups_scored: int
    groups_skipped: int
    ranking_rows: int


class GroupPreview(BaseModel):
    group_id: int
    court_number: Optional[int] = None
    points: Dict[int, int]


class RoundPreviewResponse(BaseModel):
    """Points the round would produce if closed now."""
    round_id: int
    status: str
    groups: List[GroupPreview]
    skipped_group_ids: List[int]
    points: Dict[int, int]


class RoundPointsEntry(BaseModel):
    player_id: int
    points: int

    class Config:
        from_attributes = True


class GroupMovement(BaseModel):
    group_id: int
    court_number: Optional[int] = None
    promoted: List[int]
    stays: List[int]
    relegated: List[int]


# ============================================================================
# Score / Attendance Schemas
# ============================================================================

class MatchScoreRequest(BaseModel):
    """Schema for recording a match score. Range 0..7 is checked server-side."""
    score_team1: int = Field(..., description="Games won by team 1 (0-7)")
    score_team2: int = Field(..., description="Games won by team 2 (0-7)")


class MatchResponse(BaseModel):
    id: int
    group_id: int
    match_number: int
    score_team1: Optional[int] = None
    score_team2: Optional[int] = None
    is_recorded: bool

    class Config:
        from_attributes = True


class AttendanceRequest(BaseModel):
    """Set attendance explicitly, or omit it to advance one step."""
    attendance: Optional[str] = Field(None, description="present | absent | substitute")
    substitute_name: Optional[str] = None


class SeatResponse(BaseModel):
    id: int
    group_id: int
    player_id: int
    position: int
    attendance: str
    substitute_name: Optional[str] = None

    class Config:
        from_attributes = True


# ============================================================================
# Standings / Rules Schemas
# ============================================================================

class RankingEntry(BaseModel):
    rank: int
    player_id: int
    player_name: Optional[str] = None
    total_points: int


class RuleSetResponse(BaseModel):
    id: int
    scope: str
    competition_id: Optional[int] = None
    absence_penalty: int
    use_min_actual_when_absent: bool
    three_absences_bonus: int
    promotion_count: int
    relegation_count: int
    allow_merge_courts: bool
    notification_template: Optional[str] = None

    class Config:
        from_attributes = True


class RuleSetUpdate(BaseModel):
    """Partial rule override; unset fields keep their current value."""
    absence_penalty: Optional[int] = Field(None, le=0)
    use_min_actual_when_absent: Optional[bool] = None
    three_absences_bonus: Optional[int] = None
    promotion_count: Optional[int] = Field(None, ge=0)
    relegation_count: Optional[int] = Field(None, ge=0)
    allow_merge_courts: Optional[bool] = None
    notification_template: Optional[str] = None
