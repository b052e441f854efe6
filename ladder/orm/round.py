"""
Round Models

Core ladder play structure:
- Round: one numbered period of a competition (draft -> running -> closed)
- CourtGroup: one ranking tier x one time slot within a round
- CourtPlayer: a seat (position 1-4) in a group, with attendance
- Match: one of the three fixed pairings of a group, scored 0-7 per team
"""
import enum

from sqlalchemy import (
    Column, Integer, String, Date, ForeignKey, Boolean,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import relationship, validates

from ladder.orm.base import BaseModel


# =============================================================================
# Enums
# =============================================================================

class RoundStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    CLOSED = "closed"


class Attendance(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    SUBSTITUTE = "substitute"


# Forward-only lifecycle; closed is terminal
ROUND_STATUS_TRANSITIONS = {
    RoundStatus.DRAFT.value: [RoundStatus.RUNNING.value, RoundStatus.CLOSED.value],
    RoundStatus.RUNNING.value: [RoundStatus.CLOSED.value],
    RoundStatus.CLOSED.value: [],
}

MIN_SCORE = 0
MAX_SCORE = 7
SEATS_PER_GROUP = 4
MATCHES_PER_GROUP = 3


# =============================================================================
# Table: rounds
# =============================================================================

class Round(BaseModel):
    """
    One numbered period of play.

    Closing is irreversible: once closed, the round's points and the ranking
    they contributed to are never touched again.
    """
    __tablename__ = "rounds"

    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    number = Column(Integer, nullable=False)
    round_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default=RoundStatus.DRAFT.value)

    # Relationships
    competition = relationship("Competition", back_populates="rounds")
    groups = relationship("CourtGroup", back_populates="round", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("competition_id", "number", name="uq_round_competition_number"),
        Index("idx_rounds_competition_number", "competition_id", "number"),
        CheckConstraint("number > 0", name="ck_round_number_positive"),
        CheckConstraint(
            "status IN ('draft', 'running', 'closed')",
            name="ck_round_status_valid"
        ),
    )

    @validates("status")
    def validate_status(self, key, value):
        if isinstance(value, RoundStatus):
            value = value.value
        if self.status and self.status != value and value not in ROUND_STATUS_TRANSITIONS.get(self.status, []):
            raise ValueError(f"Invalid status transition: {self.status} → {value}")
        return value

    @property
    def is_closed(self) -> bool:
        return self.status == RoundStatus.CLOSED.value

    def __repr__(self):
        return f"<Round(id={self.id}, number={self.number}, status='{self.status}')>"


# =============================================================================
# Table: court_groups
# =============================================================================

class CourtGroup(BaseModel):
    """
    Pairing of one ranking tier (court) with one time slot in a round.

    physical_court_number records where the group actually plays; court_id is
    the tier.
    """
    __tablename__ = "court_groups"

    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False
    )
    time_slot_id = Column(
        Integer,
        ForeignKey("time_slots.id", ondelete="CASCADE"),
        nullable=False
    )
    court_id = Column(
        Integer,
        ForeignKey("courts.id", ondelete="CASCADE"),
        nullable=False
    )
    physical_court_number = Column(Integer, nullable=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)

    # Relationships
    round = relationship("Round", back_populates="groups")
    court = relationship("Court", lazy="joined")
    time_slot = relationship("TimeSlot", lazy="joined")
    seats = relationship(
        "CourtPlayer",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="CourtPlayer.position"
    )
    matches = relationship(
        "Match",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Match.match_number"
    )

    __table_args__ = (
        UniqueConstraint("round_id", "time_slot_id", "court_id", name="uq_group_round_slot_court"),
    )


# =============================================================================
# Table: court_players
# =============================================================================

class CourtPlayer(BaseModel):
    """A player's seat within a court group."""
    __tablename__ = "court_players"

    group_id = Column(
        Integer,
        ForeignKey("court_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    player_id = Column(
        Integer,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False
    )
    position = Column(Integer, nullable=False)
    attendance = Column(String(16), nullable=False, default=Attendance.PRESENT.value)
    substitute_name = Column(String(200), nullable=True)

    group = relationship("CourtGroup", back_populates="seats")
    player = relationship("Player", lazy="joined")

    __table_args__ = (
        UniqueConstraint("group_id", "player_id", name="uq_seat_group_player"),
        UniqueConstraint("group_id", "position", name="uq_seat_group_position"),
        CheckConstraint("position BETWEEN 1 AND 4", name="ck_seat_position_range"),
        CheckConstraint(
            "attendance IN ('present', 'absent', 'substitute')",
            name="ck_seat_attendance_valid"
        ),
    )

    @validates("attendance")
    def validate_attendance(self, key, value):
        if isinstance(value, Attendance):
            return value.value
        if value not in {a.value for a in Attendance}:
            raise ValueError(f"Invalid attendance: {value}")
        return value


# =============================================================================
# Table: matches
# =============================================================================

class Match(BaseModel):
    """
    One of the three fixed pairings of a group.

    Scores of an unrecorded match never count, whatever value is stored.
    """
    __tablename__ = "matches"

    group_id = Column(
        Integer,
        ForeignKey("court_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    match_number = Column(Integer, nullable=False)
    team1_pos1 = Column(Integer, nullable=False)
    team1_pos2 = Column(Integer, nullable=False)
    team2_pos1 = Column(Integer, nullable=False)
    team2_pos2 = Column(Integer, nullable=False)
    score_team1 = Column(Integer, nullable=True)
    score_team2 = Column(Integer, nullable=True)
    is_recorded = Column(Boolean, nullable=False, default=False)

    group = relationship("CourtGroup", back_populates="matches")

    __table_args__ = (
        UniqueConstraint("group_id", "match_number", name="uq_match_group_number"),
        CheckConstraint("match_number BETWEEN 1 AND 3", name="ck_match_number_range"),
        CheckConstraint(
            "score_team1 IS NULL OR (score_team1 >= 0 AND score_team1 <= 7)",
            name="ck_match_score_team1_range"
        ),
        CheckConstraint(
            "score_team2 IS NULL OR (score_team2 >= 0 AND score_team2 <= 7)",
            name="ck_match_score_team2_range"
        ),
    )
