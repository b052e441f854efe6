"""
Match Score Store Tests

Read helpers and conversion into scoring-engine inputs.
"""
import pytest

from ladder.orm.round import Attendance
from ladder.services import match_score_store


class TestMatchScoreStore:

    @pytest.mark.asyncio
    async def test_list_groups_skips_cancelled_by_default(self, db_session, league):
        round_obj = await league.add_round(1)
        active = await league.add_group(round_obj, 1, league.pids(1, 2, 3, 4))
        cancelled = await league.add_group(round_obj, 2, league.pids(5, 6, 7, 8), cancelled=True)

        groups = await match_score_store.list_groups(db_session, round_obj.id)
        everything = await match_score_store.list_groups(db_session, round_obj.id, include_cancelled=True)

        assert [g.id for g in groups] == [active.id]
        assert [g.id for g in everything] == [active.id, cancelled.id]

    @pytest.mark.asyncio
    async def test_seats_and_matches_are_ordered(self, db_session, league):
        round_obj = await league.add_round(1)
        group = await league.add_group(round_obj, 1, league.pids(4, 3, 2, 1), scores=[(1, 2)])

        seats = await match_score_store.list_seats(db_session, group.id)
        matches = await match_score_store.list_matches(db_session, group.id)

        assert [s.position for s in seats] == [1, 2, 3, 4]
        assert [s.player_id for s in seats] == league.pids(4, 3, 2, 1)
        assert [m.match_number for m in matches] == [1, 2, 3]
        assert [m.is_recorded for m in matches] == [True, False, False]

    @pytest.mark.asyncio
    async def test_load_group_inputs(self, db_session, league):
        round_obj = await league.add_round(1)
        group = await league.add_group(
            round_obj, 3, league.pids(1, 2, 3, 4), scores=[(6, 3), None, (4, 6)], absent=[league.pid(2)]
        )

        (group_input,) = await match_score_store.load_group_inputs(db_session, round_obj.id)

        assert group_input.group_id == group.id
        assert group_input.court_number == 3
        assert group_input.seats[1].attendance == Attendance.ABSENT.value
        assert group_input.seats[1].is_absent
        assert group_input.matches[0].team1 == (1, 2)
        assert group_input.matches[0].score_team1 == 6
        assert group_input.matches[1].is_recorded is False
