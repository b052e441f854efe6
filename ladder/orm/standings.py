"""
Standings Models

- RoundPoints: authoritative points per (round, player), written only when
  the round closes
- LeagueRanking: per (competition, player) total across closed rounds,
  rebuilt wholesale on every close
"""
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from ladder.orm.base import BaseModel


class RoundPoints(BaseModel):
    __tablename__ = "round_points"

    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    player_id = Column(
        Integer,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False
    )
    points = Column(Integer, nullable=False, default=0)

    player = relationship("Player", lazy="joined")

    __table_args__ = (
        UniqueConstraint("round_id", "player_id", name="uq_round_points_round_player"),
        Index("idx_round_points_round", "round_id"),
    )

    def __repr__(self):
        return f"<RoundPoints(round={self.round_id}, player={self.player_id}, points={self.points})>"


class LeagueRanking(BaseModel):
    __tablename__ = "league_rankings"

    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=False
    )
    player_id = Column(
        Integer,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False
    )
    total_points = Column(Integer, nullable=False, default=0)

    player = relationship("Player", lazy="joined")

    __table_args__ = (
        UniqueConstraint("competition_id", "player_id", name="uq_ranking_competition_player"),
        Index("idx_ranking_competition_points", "competition_id", "total_points"),
    )

    def __repr__(self):
        return f"<LeagueRanking(competition={self.competition_id}, player={self.player_id}, total={self.total_points})>"
