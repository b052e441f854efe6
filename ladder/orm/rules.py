"""
Rule Set Model

Scoring and movement rules. One global row always exists; a competition may
carry its own override, which takes precedence.
"""
import enum

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Text, Boolean, UniqueConstraint, CheckConstraint
)

from ladder.orm.base import BaseModel


class RulesScope(str, enum.Enum):
    GLOBAL = "global"
    COMPETITION = "competition"


DEFAULT_ABSENCE_PENALTY = -5
DEFAULT_THREE_ABSENCES_BONUS = 9
DEFAULT_PROMOTION_COUNT = 1
DEFAULT_RELEGATION_COUNT = 1


class RuleSet(BaseModel):
    __tablename__ = "rule_sets"

    scope = Column(String(16), nullable=False, default=RulesScope.GLOBAL.value)
    competition_id = Column(
        Integer,
        ForeignKey("competitions.id", ondelete="CASCADE"),
        nullable=True
    )

    # Absence scoring
    absence_penalty = Column(Integer, nullable=False, default=DEFAULT_ABSENCE_PENALTY)
    use_min_actual_when_absent = Column(Boolean, nullable=False, default=True)
    three_absences_bonus = Column(Integer, nullable=False, default=DEFAULT_THREE_ABSENCES_BONUS)

    # Promotion / relegation
    promotion_count = Column(Integer, nullable=False, default=DEFAULT_PROMOTION_COUNT)
    relegation_count = Column(Integer, nullable=False, default=DEFAULT_RELEGATION_COUNT)

    # Other
    allow_merge_courts = Column(Boolean, nullable=False, default=True)
    notification_template = Column(Text, nullable=True, default="")

    __table_args__ = (
        UniqueConstraint("competition_id", name="uq_rule_set_competition"),
        CheckConstraint("scope IN ('global', 'competition')", name="ck_rule_set_scope_valid"),
        CheckConstraint(
            "(scope = 'global' AND competition_id IS NULL) OR "
            "(scope = 'competition' AND competition_id IS NOT NULL)",
            name="ck_rule_set_scope_competition"
        ),
        CheckConstraint("absence_penalty <= 0", name="ck_rule_set_penalty_non_positive"),
        CheckConstraint("promotion_count >= 0", name="ck_rule_set_promotion_non_negative"),
        CheckConstraint("relegation_count >= 0", name="ck_rule_set_relegation_non_negative"),
    )

    @property
    def is_global(self) -> bool:
        return self.scope == RulesScope.GLOBAL.value

    def __repr__(self):
        return f"<RuleSet(id={self.id}, scope='{self.scope}', competition={self.competition_id})>"
