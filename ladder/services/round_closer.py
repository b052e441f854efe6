"""
Round Closer

Closes a round as one atomic, idempotent, concurrency-safe unit:

1. Lock the round (row lock + in-process lock keyed by round id)
2. Resolve the effective rule set
3. Discard any points left behind by an earlier failed attempt
4. Score every non-cancelled group with at least two seated players
5. Write one RoundPoints row per scored player
6. Rebuild the competition's LeagueRanking from scratch
7. Flip the round to closed
8. Commit, or roll back everything

Any failure leaves no visible trace, so a failed close can simply be run
again from the start.
"""
import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config.settings import settings
from ladder.core.locks import round_locks
from ladder.core.ownership_guard import Caller, can_manage_competition
from ladder.exceptions import (
    AlreadyClosed, LadderException, NotFoundOrDenied, PersistenceFailure
)
from ladder.orm.competition import Competition
from ladder.orm.round import Round, RoundStatus
from ladder.orm.standings import RoundPoints, LeagueRanking
from ladder.services.match_score_store import load_group_inputs
from ladder.services.rules_service import resolve_rules
from ladder.services.scoring_engine import ScoringRules, score_groups
from ladder.state_machines.round_state import RoundStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloseRoundResult:
    round_id: int
    competition_id: int
    round_number: int
    rules_scope: str
    points_written: int
    groups_scored: int
    groups_skipped: int
    ranking_rows: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RoundCloser:
    """
    Round closing transaction.

    All steps run inside the caller's session; only close_round commits or
    rolls back.
    """

    @staticmethod
    async def lock_round_for_close(
        db: AsyncSession,
        round_id: int,
        caller: Caller
    ) -> Round:
        """
        Lock the round row and check it may be closed by this caller.

        Raises:
            NotFoundOrDenied: round missing or caller does not own its competition
            AlreadyClosed: round already closed
        """
        result = await db.execute(
            select(Round)
            .where(Round.id == round_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        round_obj = result.scalar_one_or_none()

        if round_obj is None:
            raise NotFoundOrDenied("Round not found or access denied", round_id=round_id)

        competition = await db.get(Competition, round_obj.competition_id)
        if competition is None or not can_manage_competition(caller, competition):
            logger.warning(f"User {caller.user_id} denied close of round {round_id}")
            raise NotFoundOrDenied("Round not found or access denied", round_id=round_id)

        if round_obj.is_closed:
            logger.info(f"Round {round_id} is already closed - nothing to do")
            raise AlreadyClosed(f"Round {round_obj.number} is already closed", round_id=round_id)

        return round_obj

    @staticmethod
    async def replace_round_points(
        db: AsyncSession,
        round_id: int,
        points: Mapping[int, int]
    ) -> int:
        """
        Delete every RoundPoints row of the round and insert the new set.

        Returns:
            Number of rows written
        """
        await db.execute(delete(RoundPoints).where(RoundPoints.round_id == round_id))

        rows = [
            RoundPoints(round_id=round_id, player_id=player_id, points=value)
            for player_id, value in sorted(points.items())
        ]
        db.add_all(rows)
        await db.flush()
        return len(rows)

    @staticmethod
    async def lock_competition_ranking(db: AsyncSession, competition_id: int) -> None:
        """Row-lock the competition so ranking rebuilds never interleave."""
        await db.execute(
            select(Competition.id)
            .where(Competition.id == competition_id)
            .with_for_update()
        )

    @staticmethod
    async def rebuild_league_ranking(
        db: AsyncSession,
        competition_id: int,
        as_of_round_id: int
    ) -> int:
        """
        Recompute the competition's ranking from all closed rounds plus the
        round being closed (its status has not flipped yet).

        Returns:
            Number of ranking rows written
        """
        await db.execute(
            delete(LeagueRanking).where(LeagueRanking.competition_id == competition_id)
        )

        totals = await db.execute(
            select(
                RoundPoints.player_id,
                func.sum(RoundPoints.points).label("total_points"),
            )
            .join(Round, Round.id == RoundPoints.round_id)
            .where(
                Round.competition_id == competition_id,
                or_(
                    Round.status == RoundStatus.CLOSED.value,
                    Round.id == as_of_round_id,
                ),
            )
            .group_by(RoundPoints.player_id)
            .order_by(RoundPoints.player_id)
        )

        rows = [
            LeagueRanking(
                competition_id=competition_id,
                player_id=row.player_id,
                total_points=int(row.total_points or 0),
            )
            for row in totals.all()
        ]
        db.add_all(rows)
        await db.flush()
        return len(rows)

    @staticmethod
    def set_round_status(round_obj: Round, status: RoundStatus, caller: Caller) -> Round:
        return RoundStateMachine(round_obj).transition(status, caller)

    @staticmethod
    async def _close_locked(
        db: AsyncSession,
        round_id: int,
        caller: Caller,
        stack: AsyncExitStack
    ) -> CloseRoundResult:
        round_obj = await RoundCloser.lock_round_for_close(db, round_id, caller)
        competition_id = round_obj.competition_id
        logger.info(f"Round {round_id} locked for close by user {caller.user_id}")

        rule_set = await resolve_rules(db, competition_id)
        rules = ScoringRules.from_rule_set(rule_set)
        logger.info(f"Round {round_id}: using {rule_set.scope} rule set {rule_set.id}")

        groups = await load_group_inputs(db, round_id)
        scoring = score_groups(groups, rules)
        for group_id in scoring.skipped_group_ids:
            logger.debug(f"Round {round_id}: group {group_id} skipped (fewer than 2 seated players)")

        points_written = await RoundCloser.replace_round_points(db, round_id, scoring.points)
        logger.info(
            f"Round {round_id}: wrote {points_written} point rows "
            f"from {scoring.groups_scored} groups ({len(scoring.skipped_group_ids)} skipped)"
        )

        # Held until commit/rollback together with the round lock
        await stack.enter_async_context(round_locks.hold(("competition", competition_id)))
        await RoundCloser.lock_competition_ranking(db, competition_id)
        ranking_rows = await RoundCloser.rebuild_league_ranking(db, competition_id, round_id)
        logger.info(f"Competition {competition_id}: ranking rebuilt ({ranking_rows} players)")

        RoundCloser.set_round_status(round_obj, RoundStatus.CLOSED, caller)
        await db.flush()

        return CloseRoundResult(
            round_id=round_id,
            competition_id=competition_id,
            round_number=round_obj.number,
            rules_scope=rule_set.scope,
            points_written=points_written,
            groups_scored=scoring.groups_scored,
            groups_skipped=len(scoring.skipped_group_ids),
            ranking_rows=ranking_rows,
        )

    @staticmethod
    async def _abort(db: AsyncSession, round_id: int) -> None:
        try:
            await db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback after failed close of round {round_id} also failed: {e}")

    @staticmethod
    async def close_round(
        db: AsyncSession,
        round_id: int,
        caller: Caller,
        timeout: Optional[float] = None
    ) -> CloseRoundResult:
        """
        Close a round: compute points, persist them, rebuild the ranking.

        Args:
            db: Database session (no other work pending on it)
            round_id: Round to close
            caller: Identity performing the close
            timeout: Seconds before the close is aborted; defaults to
                CLOSE_ROUND_TIMEOUT_SECONDS, 0 disables

        Returns:
            CloseRoundResult summary

        Raises:
            NotFoundOrDenied: round missing or not the caller's
            AlreadyClosed: round was closed before (or by a concurrent close)
            RulesNotFound: no rule set configured
            PersistenceFailure: storage fault or timeout; fully rolled back
        """
        if timeout is None:
            timeout = settings.CLOSE_ROUND_TIMEOUT_SECONDS

        async with AsyncExitStack() as stack:
            await stack.enter_async_context(round_locks.hold(("round", round_id)))
            try:
                work = RoundCloser._close_locked(db, round_id, caller, stack)
                if timeout and timeout > 0:
                    result = await asyncio.wait_for(work, timeout=timeout)
                else:
                    result = await work
                await db.commit()

            except LadderException:
                await RoundCloser._abort(db, round_id)
                raise

            except asyncio.TimeoutError:
                await RoundCloser._abort(db, round_id)
                logger.error(f"Closing round {round_id} timed out after {timeout}s - rolled back")
                raise PersistenceFailure(
                    f"Closing round {round_id} timed out",
                    round_id=round_id,
                )

            except SQLAlchemyError as e:
                await RoundCloser._abort(db, round_id)
                logger.error(f"Storage failure while closing round {round_id}: {type(e).__name__}: {e}")
                raise PersistenceFailure(
                    f"Storage failure while closing round {round_id}",
                    round_id=round_id,
                ) from e

            except (Exception, asyncio.CancelledError):
                await RoundCloser._abort(db, round_id)
                raise

        logger.info(
            f"✓ Round {result.round_number} (ID: {round_id}) closed: "
            f"{result.points_written} players scored"
        )
        return result


close_round = RoundCloser.close_round
