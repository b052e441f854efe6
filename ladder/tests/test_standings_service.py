"""
Standings Service Tests

League ranking listing, per-round points and promotion/relegation of a round.
"""
import pytest

from ladder.exceptions import NotFoundOrDenied
from ladder.orm.rules import RuleSet
from ladder.services import round_service, standings_service
from ladder.services.round_closer import RoundCloser

FULL_SCORES = [(6, 3), (7, 5), (4, 6)]


async def one_up_one_down(db, league):
    db.add(RuleSet(
        scope="competition",
        competition_id=league.competition_id,
        promotion_count=1,
        relegation_count=1,
    ))
    await db.commit()


class TestLeagueRanking:

    @pytest.mark.asyncio
    async def test_ranking_ordered_with_names(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        await league.add_group(round_obj, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await RoundCloser.close_round(db_session, round_obj.id, owner)

        rows = await standings_service.list_league_ranking(db_session, league.competition_id, owner)

        assert [row["rank"] for row in rows] == [1, 2, 3, 4]
        assert [row["player_id"] for row in rows] == league.pids(1, 2, 3, 4)
        assert [row["total_points"] for row in rows] == [17, 17, 16, 12]
        assert rows[0]["player_name"] == "Player 01"

    @pytest.mark.asyncio
    async def test_stranger_gets_not_found(self, db_session, league, stranger):
        with pytest.raises(NotFoundOrDenied):
            await standings_service.list_league_ranking(db_session, league.competition_id, stranger)


class TestRoundMovements:

    @pytest.mark.asyncio
    async def test_closed_round_ties_use_ranking_before_the_round(self, db_session, league, owner):
        await one_up_one_down(db_session, league)
        p = league.pid

        first = await league.add_round(1)
        first_id = first.id
        await league.add_group(first_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES, absent=[p(1)])
        await RoundCloser.close_round(db_session, first_id, owner)

        # p1 is ranked (last, -5) and p5 unranked; both score 7 in round 2
        second = await league.add_round(2)
        second_id = second.id
        await league.add_group(second_id, 1, league.pids(1, 5), scores=[(7, 0)])

        before = await standings_service.round_movements(db_session, second_id, owner)
        await RoundCloser.close_round(db_session, second_id, owner)
        after = await standings_service.round_movements(db_session, second_id, owner)

        assert before[0]["promoted"] == [p(1)]
        assert after[0]["promoted"] == [p(1)]
        assert after[0]["relegated"] == [p(5)]

        # a later close does not rewrite round 2's outcome
        third = await league.add_round(3)
        third_id = third.id
        await league.add_group(third_id, 1, league.pids(5, 6), scores=[(7, 7)])
        await RoundCloser.close_round(db_session, third_id, owner)

        assert await standings_service.round_movements(db_session, second_id, owner) == after

    @pytest.mark.asyncio
    async def test_open_round_uses_current_ranking(self, db_session, league, owner):
        await one_up_one_down(db_session, league)
        p = league.pid

        first = await league.add_round(1)
        first_id = first.id
        await league.add_group(first_id, 1, league.pids(7, 8), scores=[(3, 0)])
        await RoundCloser.close_round(db_session, first_id, owner)

        second = await league.add_round(2)
        await league.add_group(second.id, 1, league.pids(6, 8), scores=[(2, 0)])

        (group,) = await standings_service.round_movements(db_session, second.id, owner)

        # p6 and p8 tie on 2; only p8 is ranked
        assert group["promoted"] == [p(8)]
        assert group["relegated"] == [p(6)]

    @pytest.mark.asyncio
    async def test_skipped_groups_have_no_movements(self, db_session, league, owner):
        round_obj = await league.add_round(1)
        round_id = round_obj.id
        await league.add_group(round_id, 1, league.pids(1, 2, 3, 4), scores=FULL_SCORES)
        await league.add_group(round_id, 2, league.pids(5), slot=1)
        await RoundCloser.close_round(db_session, round_id, owner)

        movements = await standings_service.round_movements(db_session, round_id, owner)

        assert [m["court_number"] for m in movements] == [1]


class TestPriorRankingOrder:

    @pytest.mark.asyncio
    async def test_only_earlier_closed_rounds_count(self, db_session, league, owner):
        first = await league.add_round(1)
        first_id = first.id
        await league.add_group(first_id, 1, league.pids(1, 2), scores=[(1, 0)])
        await RoundCloser.close_round(db_session, first_id, owner)

        second = await league.add_round(2)
        second_id = second.id
        await league.add_group(second_id, 1, league.pids(3, 4), scores=[(5, 0)])
        await RoundCloser.close_round(db_session, second_id, owner)

        first_round = await round_service.get_round(db_session, first_id)
        second_round = await round_service.get_round(db_session, second_id)

        assert await standings_service.prior_ranking_order(db_session, first_round) == []
        assert await standings_service.prior_ranking_order(db_session, second_round) == league.pids(1, 2)
