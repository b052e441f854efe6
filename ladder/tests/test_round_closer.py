"""
Round Closer Test Suite

Atomicity, idempotence, concurrency and ranking completeness of the
round-closing transaction.
"""
import asyncio

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from ladder.exceptions import (
    AlreadyClosed, NotFoundOrDenied, PersistenceFailure, RoundLocked, RulesNotFound
)
from ladder.orm.round import Match, Round, RoundStatus
from ladder.orm.rules import RuleSet
from ladder.orm.standings import LeagueRanking, RoundPoints
from ladder.services import round_service
from ladder.services.round_closer import CloseRoundResult, RoundCloser
from ladder.core.locks import round_locks

FULL_SCORES = [(6, 3), (7, 5), (4, 6)]


async def round_points(db, round_id):
    result = await db.execute(
        select(RoundPoints.player_id, RoundPoints.points).where(RoundPoints.round_id == round_id)
    )
    return {row.player_id: row.points for row in result.all()}


async def ranking(db, competition_id):
    result = await db.execute(
        select(LeagueRanking.player_id, LeagueRanking.total_points)
        .where(LeagueRanking.competition_id == competition_id)
    )
    return {row.player_id: row.total_points for row in result.all()}


async def round_status(db, round_id):
    result = await db.execute(select(Round.status).where(Round.id == round_id))
    return result.scalar_one()


# =============================================================================
# Happy path
# =============================================================================

class TestCloseRound:

    @pytest.mark.asyncio
    async def test_close_writes_points_ranking_and_status(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await league.add_group(round_id, 2, league.pids(5, 6, 7, 8), absent=league.pids(6, 7, 8), slot=1)

        result = await RoundCloser.close_round(db_session, round_id, owner)

        assert isinstance(result, CloseRoundResult)
        assert result.points_written == 8
        assert result.groups_scored == 2
        assert result.groups_skipped == 0
        assert result.rules_scope == "global"

        expected = dict(zip(league.pids(1, 2, 3, 4, 5, 6, 7, 8), [17, 17, 16, 12, 9, -5, -5, -5]))
        assert await round_points(db_session, round_id) == expected
        assert await ranking(db_session, league.competition_id) == expected
        assert await round_status(db_session, round_id) == RoundStatus.CLOSED.value

    @pytest.mark.asyncio
    async def test_draft_round_can_be_closed(self, db_session, league, owner):
        round_obj = await league.add_round(1, status=RoundStatus.DRAFT.value)
        await league.add_group(round_obj, 1, league.pids(1, 2), scores=[(7, 0)])

        await RoundCloser.close_round(db_session, round_obj.id, owner)

        assert await round_status(db_session, round_obj.id) == RoundStatus.CLOSED.value

    @pytest.mark.asyncio
    async def test_admin_may_close_any_round(self, db_session, league, admin):
        round_obj = await league.add_round(1)
        await league.add_group(round_obj, 1, league.pids(1, 2, 3, 4))

        result = await RoundCloser.close_round(db_session, round_obj.id, admin)
        assert result.points_written == 4

    @pytest.mark.asyncio
    async def test_competition_override_is_used(self, db_session, league, owner):
        db_session.add(RuleSet(
            scope="competition",
            competition_id=league.competition_id,
            absence_penalty=-2,
            three_absences_bonus=4,
        ))
        await db_session.commit()
        round_obj = await league.add_round(1)
        await league.add_group(round_obj, 1, league.pids(1, 2, 3, 4), absent=league.pids(2, 3, 4))

        result = await RoundCloser.close_round(db_session, round_obj.id, owner)

        assert result.rules_scope == "competition"
        points = await round_points(db_session, round_obj.id)
        assert points == dict(zip(league.pids(1, 2, 3, 4), [4, -2, -2, -2]))


# =============================================================================
# Skipped and cancelled groups
# =============================================================================

class TestGroupFiltering:

    @pytest.mark.asyncio
    async def test_small_and_cancelled_groups_produce_no_rows(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await league.add_group(round_id, 2, league.pids(5), scores=[(7, 7)])
        await league.add_group(round_id, 3, league.pids(9, 10, 11, 12), scores=FULL_SCORES, cancelled=True)

        result = await RoundCloser.close_round(db_session, round_id, owner)

        points = await round_points(db_session, round_id)
        assert set(points) == set(league.pids(1, 2, 3, 4))
        assert result.groups_skipped == 1
        assert result.groups_scored == 1

    @pytest.mark.asyncio
    async def test_round_without_groups_still_closes(self, db_session, league, owner):
        round_obj = await league.add_round(1)

        result = await RoundCloser.close_round(db_session, round_obj.id, owner)

        assert result.points_written == 0
        assert await round_status(db_session, round_obj.id) == RoundStatus.CLOSED.value


# =============================================================================
# Ranking completeness
# =============================================================================

class TestRankingRebuild:

    @pytest.mark.asyncio
    async def test_ranking_sums_all_closed_rounds(self, db_session, league, owner):
        first = await league.add_round(1)
        first_id = first.id
        await league.add_group(first_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await RoundCloser.close_round(db_session, first_id, owner)
        first_points = await round_points(db_session, first_id)

        second = await league.add_round(2)
        second_id = second.id
        await league.add_group(second_id, 1, league.pids(1, 2, 5, 6), scores=[(1, 0), None, None])
        await RoundCloser.close_round(db_session, second_id, owner)

        # closing a later round leaves earlier round points alone
        assert await round_points(db_session, first_id) == first_points

        totals = await ranking(db_session, league.competition_id)
        p = league.pid
        assert totals == {
            p(1): 17 + 1,
            p(2): 17 + 1,
            p(3): 16,
            p(4): 12,
            p(5): 0,
            p(6): 0,
        }

        # ranking total equals the sum of round points for every player
        sums = await db_session.execute(
            select(RoundPoints.player_id, func.sum(RoundPoints.points)).group_by(RoundPoints.player_id)
        )
        assert totals == {player_id: total for player_id, total in sums.all()}

    @pytest.mark.asyncio
    async def test_points_of_open_rounds_are_ignored(self, db_session, league, owner):
        open_round = await league.add_round(3)
        db_session.add(RoundPoints(round_id=open_round.id, player_id=league.pid(1), points=50))
        await db_session.commit()

        closing = await league.add_round(1)
        await league.add_group(closing, 1, league.pids(1, 2), scores=[(2, 1)])
        await RoundCloser.close_round(db_session, closing.id, owner)

        totals = await ranking(db_session, league.competition_id)
        assert totals[league.pid(1)] == 2

    @pytest.mark.asyncio
    async def test_leftover_points_of_same_round_are_replaced(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        db_session.add(RoundPoints(round_id=round_id, player_id=league.pid(16), points=99))
        await db_session.commit()
        await league.add_group(round_id, 1, league.pids(1, 2), scores=[(2, 1)])

        await RoundCloser.close_round(db_session, round_id, owner)

        assert await round_points(db_session, round_id) == {league.pid(1): 2, league.pid(2): 2}

    @pytest.mark.asyncio
    async def test_other_competitions_untouched(self, db_session, league, league_builder, owner):
        other = await league_builder.create(db_session, with_global_rules=False)
        other_round = await other.add_round(1)
        await other.add_group(other_round, 1, other.pids(1, 2), scores=[(5, 5)])
        await RoundCloser.close_round(db_session, other_round.id, owner)

        round_obj = await league.add_round(1)
        await league.add_group(round_obj, 1, league.pids(1, 2), scores=[(1, 1)])
        await RoundCloser.close_round(db_session, round_obj.id, owner)

        assert await ranking(db_session, other.competition_id) == {other.pid(1): 5, other.pid(2): 5}


# =============================================================================
# Idempotence and authorization
# =============================================================================

class TestIdempotence:

    @pytest.mark.asyncio
    async def test_second_close_is_already_closed(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await RoundCloser.close_round(db_session, round_id, owner)
        before_points = await round_points(db_session, round_id)
        before_ranking = await ranking(db_session, league.competition_id)

        with pytest.raises(AlreadyClosed) as exc_info:
            await RoundCloser.close_round(db_session, round_id, owner)

        assert exc_info.value.category == "already_done"
        assert await round_points(db_session, round_id) == before_points
        assert await ranking(db_session, league.competition_id) == before_ranking

    @pytest.mark.asyncio
    async def test_stranger_gets_not_found(self, db_session, league, stranger):
        round_obj = await league.add_round(1)
        round_id = round_obj.id

        with pytest.raises(NotFoundOrDenied):
            await RoundCloser.close_round(db_session, round_id, stranger)

        assert await round_status(db_session, round_id) == RoundStatus.RUNNING.value

    @pytest.mark.asyncio
    async def test_missing_round_is_not_found(self, db_session, league, owner):
        with pytest.raises(NotFoundOrDenied):
            await RoundCloser.close_round(db_session, 4242, owner)

    @pytest.mark.asyncio
    async def test_missing_rules_leave_round_open(self, db_session, league_builder, owner):
        league = await league_builder.create(db_session, with_global_rules=False)
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2), scores=[(3, 1)])

        with pytest.raises(RulesNotFound):
            await RoundCloser.close_round(db_session, round_id, owner)

        assert await round_status(db_session, round_id) == RoundStatus.RUNNING.value
        assert await round_points(db_session, round_id) == {}


# =============================================================================
# Failure atomicity
# =============================================================================

class TestAtomicity:

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_everything(self, db_session, league, owner, monkeypatch):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)

        async def broken_rebuild(db, competition_id, as_of_round_id):
            raise OperationalError("INSERT INTO league_rankings", {}, Exception("disk I/O error"))

        monkeypatch.setattr(RoundCloser, "rebuild_league_ranking", staticmethod(broken_rebuild))

        with pytest.raises(PersistenceFailure) as exc_info:
            await RoundCloser.close_round(db_session, round_id, owner)

        assert exc_info.value.retryable is True
        assert await round_points(db_session, round_id) == {}
        assert await ranking(db_session, league.competition_id) == {}
        assert await round_status(db_session, round_id) == RoundStatus.RUNNING.value

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self, db_session, league, owner, monkeypatch):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        original = RoundCloser.rebuild_league_ranking

        async def broken_rebuild(db, competition_id, as_of_round_id):
            raise OperationalError("DELETE FROM league_rankings", {}, Exception("database is locked"))

        monkeypatch.setattr(RoundCloser, "rebuild_league_ranking", staticmethod(broken_rebuild))
        with pytest.raises(PersistenceFailure):
            await RoundCloser.close_round(db_session, round_id, owner)

        monkeypatch.setattr(RoundCloser, "rebuild_league_ranking", staticmethod(original))
        result = await RoundCloser.close_round(db_session, round_id, owner)

        assert result.points_written == 4
        assert await round_status(db_session, round_id) == RoundStatus.CLOSED.value

    @pytest.mark.asyncio
    async def test_timeout_aborts_without_partial_commit(self, db_session, league, owner, monkeypatch):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)

        async def slow_rebuild(db, competition_id, as_of_round_id):
            await asyncio.sleep(5)
            return 0

        monkeypatch.setattr(RoundCloser, "rebuild_league_ranking", staticmethod(slow_rebuild))

        with pytest.raises(PersistenceFailure):
            await RoundCloser.close_round(db_session, round_id, owner, timeout=0.05)

        assert await round_points(db_session, round_id) == {}
        assert await round_status(db_session, round_id) == RoundStatus.RUNNING.value
        assert len(round_locks) == 0


# =============================================================================
# Concurrency
# =============================================================================

class TestConcurrentClose:

    @pytest.mark.asyncio
    async def test_racing_closes_write_exactly_once(self, session_factory, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)

        async def close_in_own_session():
            async with session_factory() as session:
                return await RoundCloser.close_round(session, round_id, owner)

        results = await asyncio.gather(
            close_in_own_session(),
            close_in_own_session(),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, CloseRoundResult)]
        already = [r for r in results if isinstance(r, AlreadyClosed)]
        assert len(successes) == 1
        assert len(already) == 1

        count = await db_session.execute(
            select(func.count(RoundPoints.id)).where(RoundPoints.round_id == round_id)
        )
        assert count.scalar() == 4
        assert len(round_locks) == 0

    @pytest.mark.asyncio
    async def test_score_edit_during_close_is_rejected(
        self, session_factory, db_session, league, owner, monkeypatch
    ):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        group = await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        match_id = group.matches[0].id
        original = RoundCloser.rebuild_league_ranking

        async def slow_rebuild(db, competition_id, as_of_round_id):
            await asyncio.sleep(0.3)
            return await original(db, competition_id, as_of_round_id)

        monkeypatch.setattr(RoundCloser, "rebuild_league_ranking", staticmethod(slow_rebuild))

        async def close_in_own_session():
            async with session_factory() as session:
                return await RoundCloser.close_round(session, round_id, owner)

        async def edit_in_own_session():
            await asyncio.sleep(0.1)
            async with session_factory() as session:
                return await round_service.record_match_score(session, match_id, 0, 7, owner)

        closed, edited = await asyncio.gather(
            close_in_own_session(),
            edit_in_own_session(),
            return_exceptions=True,
        )

        assert isinstance(closed, CloseRoundResult)
        assert isinstance(edited, RoundLocked)

        stored = await db_session.get(Match, match_id, populate_existing=True)
        assert (stored.score_team1, stored.score_team2) == (6, 3)
        assert (await round_points(db_session, round_id))[league.pid(1)] == 17
        assert len(round_locks) == 0
