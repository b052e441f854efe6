"""
Rules Service

Resolves the single effective rule set for a competition and manages the
global default and per-competition overrides.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, case, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.core.ownership_guard import Caller, require_admin, require_competition_scope
from ladder.exceptions import RulesNotFound, ValidationFailed
from ladder.orm.competition import Competition
from ladder.orm.rules import RuleSet, RulesScope

logger = logging.getLogger(__name__)

RULE_FIELDS = (
    "absence_penalty",
    "use_min_actual_when_absent",
    "three_absences_bonus",
    "promotion_count",
    "relegation_count",
    "allow_merge_courts",
    "notification_template",
)


async def resolve_rules(db: AsyncSession, competition_id: int) -> RuleSet:
    """
    Resolve the effective rule set for a competition.

    The competition override wins over the global default.

    Args:
        db: Database session
        competition_id: Competition whose rules are needed

    Returns:
        Effective RuleSet

    Raises:
        RulesNotFound: if neither an override nor a global rule set exists
    """
    result = await db.execute(
        select(RuleSet)
        .where(
            or_(
                RuleSet.competition_id == competition_id,
                RuleSet.scope == RulesScope.GLOBAL.value,
            )
        )
        .order_by(
            case((RuleSet.competition_id == competition_id, 0), else_=1),
            RuleSet.id,
        )
        .limit(1)
    )
    rule_set = result.scalar_one_or_none()

    if rule_set is None:
        logger.error(f"No rule set found for competition {competition_id} and no global default")
        raise RulesNotFound(
            f"Rules not found for competition {competition_id}",
            competition_id=competition_id,
        )

    return rule_set


async def get_global_rules(db: AsyncSession) -> Optional[RuleSet]:
    result = await db.execute(
        select(RuleSet)
        .where(RuleSet.scope == RulesScope.GLOBAL.value)
        .order_by(RuleSet.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_competition_override(db: AsyncSession, competition_id: int) -> Optional[RuleSet]:
    result = await db.execute(
        select(RuleSet).where(RuleSet.competition_id == competition_id)
    )
    return result.scalar_one_or_none()


async def ensure_global_rules(db: AsyncSession) -> RuleSet:
    """
    Seed the global default rule set if none exists.

    Idempotent: safe to run on every startup.
    """
    rule_set = await get_global_rules(db)
    if rule_set is not None:
        logger.info(f"✓ Global rule set already present (ID: {rule_set.id})")
        return rule_set

    rule_set = RuleSet(scope=RulesScope.GLOBAL.value, competition_id=None)
    db.add(rule_set)
    await db.commit()
    await db.refresh(rule_set)
    logger.info(f"✓ Seeded global rule set (ID: {rule_set.id})")
    return rule_set


def validate_rule_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep known rule fields and check their ranges.

    Raises:
        ValidationFailed: on unknown fields or out-of-range values
    """
    unknown = set(values) - set(RULE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Unknown rule fields: {', '.join(sorted(unknown))}")

    penalty = values.get("absence_penalty")
    if penalty is not None and penalty > 0:
        raise ValidationFailed("absence_penalty must be zero or negative", field="absence_penalty")

    for key in ("promotion_count", "relegation_count"):
        count = values.get(key)
        if count is not None and count < 0:
            raise ValidationFailed(f"{key} must not be negative", field=key)

    return {key: value for key, value in values.items() if value is not None}


async def _get_competition(db: AsyncSession, competition_id: int) -> Optional[Competition]:
    result = await db.execute(select(Competition).where(Competition.id == competition_id))
    return result.scalar_one_or_none()


async def upsert_competition_rules(
    db: AsyncSession,
    competition_id: int,
    values: Dict[str, Any],
    caller: Caller,
) -> RuleSet:
    """
    Create or update a competition's rule override.

    Unspecified fields of a new override start from the global defaults.
    """
    competition = await _get_competition(db, competition_id)
    require_competition_scope(competition, caller)
    cleaned = validate_rule_values(values)

    rule_set = await get_competition_override(db, competition_id)
    if rule_set is None:
        base = await get_global_rules(db)
        seed = {field: getattr(base, field) for field in RULE_FIELDS} if base else {}
        seed.update(cleaned)
        rule_set = RuleSet(
            scope=RulesScope.COMPETITION.value,
            competition_id=competition_id,
            **seed,
        )
        db.add(rule_set)
        logger.info(f"Creating rule override for competition {competition_id}")
    else:
        for key, value in cleaned.items():
            setattr(rule_set, key, value)
        logger.info(f"Updating rule override for competition {competition_id}: {sorted(cleaned)}")

    await db.commit()
    await db.refresh(rule_set)
    return rule_set


async def delete_competition_rules(
    db: AsyncSession,
    competition_id: int,
    caller: Caller,
) -> bool:
    """Drop a competition's override so the global rules apply again."""
    competition = await _get_competition(db, competition_id)
    require_competition_scope(competition, caller)

    rule_set = await get_competition_override(db, competition_id)
    if rule_set is None:
        return False

    await db.delete(rule_set)
    await db.commit()
    logger.info(f"Removed rule override for competition {competition_id}")
    return True


async def update_global_rules(
    db: AsyncSession,
    values: Dict[str, Any],
    caller: Caller,
) -> RuleSet:
    """Update the global default rule set. Admin only."""
    require_admin(caller, "Rule set")
    cleaned = validate_rule_values(values)

    rule_set = await get_global_rules(db)
    if rule_set is None:
        raise RulesNotFound("Global rule set is missing")

    for key, value in cleaned.items():
        setattr(rule_set, key, value)
    await db.commit()
    await db.refresh(rule_set)
    return rule_set


async def get_effective_rules(db: AsyncSession, competition_id: int, caller: Caller) -> RuleSet:
    """Effective rule set of a competition the caller may manage."""
    competition = await _get_competition(db, competition_id)
    require_competition_scope(competition, caller)
    return await resolve_rules(db, competition_id)
