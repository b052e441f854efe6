"""
Competition Models

A competition is a recurring ladder. It owns its rounds, its ranking tiers
(courts), its time slots and its players.
"""
from sqlalchemy import (
    Column, Integer, String, ForeignKey, Text, Boolean, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from ladder.orm.base import BaseModel


class Competition(BaseModel):
    """Recurring ladder competition, owned by one organizer."""
    __tablename__ = "competitions"

    owner_user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    weekday = Column(String(16), nullable=False, default="Thursday")
    rounds_count = Column(Integer, nullable=False, default=6)
    max_courts_per_slot = Column(Integer, nullable=False, default=4)
    physical_courts_count = Column(Integer, nullable=False, default=6)
    is_finished = Column(Boolean, nullable=False, default=False)

    # Relationships
    rounds = relationship("Round", back_populates="competition", cascade="all, delete-orphan")
    time_slots = relationship("TimeSlot", back_populates="competition", cascade="all, delete-orphan")
    courts = relationship("Court", back_populates="competition", cascade="all, delete-orphan")
    players = relationship("Player", back_populates="competition", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Competition(id={self.id}, name='{self.name}')>"


class TimeSlot(BaseModel):
    """A playing time within the competition's weekday, e.g. "09:00"."""
    __tablename__ = "time_slots"

    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    slot_time = Column(String(8), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    competition = relationship("Competition", back_populates="time_slots")

    __table_args__ = (
        UniqueConstraint("competition_id", "slot_time", name="uq_time_slot_competition_time"),
    )


class Court(BaseModel):
    """
    Ranking tier. court_number 1 is the top tier; promotion moves a player
    towards lower numbers.
    """
    __tablename__ = "courts"

    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    court_number = Column(Integer, nullable=False)

    competition = relationship("Competition", back_populates="courts")

    __table_args__ = (
        UniqueConstraint("competition_id", "court_number", name="uq_court_competition_number"),
    )


class Player(BaseModel):
    __tablename__ = "players"

    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False
    )
    full_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    competition = relationship("Competition", back_populates="players")

    __table_args__ = (
        Index("idx_players_competition_active", "competition_id", "is_active"),
    )

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.full_name}')>"
