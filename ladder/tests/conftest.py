"""
Shared fixtures: a temporary file-backed SQLite database and a small league
builder that seeds competitions, rounds and court groups straight through
the ORM.
"""
from datetime import date
from itertools import zip_longest
from typing import AsyncGenerator, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.core.ownership_guard import Caller
from ladder.database import build_engine, build_session_factory
from ladder.orm.base import Base
from ladder.orm.competition import Competition, Court, Player, TimeSlot
from ladder.orm.round import Attendance, CourtGroup, CourtPlayer, Match, Round, RoundStatus
from ladder.orm.rules import RuleSet, RulesScope
from ladder.services.scoring_engine import MATCH_PAIRINGS

OWNER = Caller(user_id=7)
STRANGER = Caller(user_id=99)
ADMIN = Caller(user_id=1, is_admin=True)


class LeagueBuilder:
    """Seeds one competition with courts, time slots and players."""

    def __init__(self, db: AsyncSession, competition: Competition, courts: Dict[int, Court],
                 slots: List[TimeSlot], players: List[Player]):
        self.db = db
        self.competition = competition
        # ids are captured up front: a rollback expires every loaded instance
        self.competition_id = competition.id
        self.court_ids = {number: court.id for number, court in courts.items()}
        self.slot_ids = [slot.id for slot in slots]
        self.player_ids = [player.id for player in players]

    @classmethod
    async def create(
        cls,
        db: AsyncSession,
        owner: Caller = OWNER,
        court_count: int = 4,
        player_count: int = 16,
        with_global_rules: bool = True,
    ) -> "LeagueBuilder":
        competition = Competition(owner_user_id=owner.user_id, name="Thursday Ladder", physical_courts_count=6)
        db.add(competition)
        await db.flush()

        courts = {n: Court(competition_id=competition.id, court_number=n) for n in range(1, court_count + 1)}
        slots = [
            TimeSlot(competition_id=competition.id, slot_time="09:00", sort_order=0),
            TimeSlot(competition_id=competition.id, slot_time="10:30", sort_order=1),
        ]
        players = [
            Player(competition_id=competition.id, full_name=f"Player {i:02d}")
            for i in range(1, player_count + 1)
        ]
        db.add_all(list(courts.values()) + slots + players)

        if with_global_rules:
            db.add(RuleSet(scope=RulesScope.GLOBAL.value, competition_id=None))

        await db.commit()
        return cls(db, competition, courts, slots, players)

    def pid(self, index: int) -> int:
        """Player id by 1-based seed index."""
        return self.player_ids[index - 1]

    def pids(self, *indexes: int) -> List[int]:
        return [self.pid(i) for i in indexes]

    async def add_round(self, number: int, status: str = RoundStatus.RUNNING.value) -> Round:
        round_obj = Round(
            competition_id=self.competition_id,
            number=number,
            round_date=date(2024, 1, number),
            status=status,
        )
        self.db.add(round_obj)
        await self.db.commit()
        return round_obj

    async def add_group(
        self,
        round_obj,
        court_number: int,
        player_ids: Sequence[int],
        scores: Iterable[Optional[Tuple[int, int]]] = (),
        absent: Iterable[int] = (),
        substitute: Iterable[int] = (),
        slot: int = 0,
        cancelled: bool = False,
    ) -> CourtGroup:
        """
        Seat players in order and create the three pairings.

        scores holds (team1, team2) per match number, None for unrecorded.
        """
        absent, substitute = set(absent), set(substitute)
        group = CourtGroup(
            round_id=round_obj if isinstance(round_obj, int) else round_obj.id,
            competition_id=self.competition_id,
            court_id=self.court_ids[court_number],
            time_slot_id=self.slot_ids[slot],
            is_cancelled=cancelled,
        )
        group.seats = [
            CourtPlayer(
                player_id=player_id,
                position=position,
                attendance=(
                    Attendance.ABSENT.value if player_id in absent
                    else Attendance.SUBSTITUTE.value if player_id in substitute
                    else Attendance.PRESENT.value
                ),
            )
            for position, player_id in enumerate(player_ids, start=1)
        ]
        matches = []
        for pairing, score in zip_longest(MATCH_PAIRINGS, list(scores)):
            matches.append(Match(
                match_number=pairing.match_number,
                team1_pos1=pairing.team1[0],
                team1_pos2=pairing.team1[1],
                team2_pos1=pairing.team2[0],
                team2_pos2=pairing.team2[1],
                score_team1=score[0] if score else None,
                score_team2=score[1] if score else None,
                is_recorded=score is not None,
            ))
        group.matches = matches
        self.db.add(group)
        await self.db.commit()
        return group


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async engine on a fresh SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ladder_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def league(db_session: AsyncSession) -> LeagueBuilder:
    """Competition owned by OWNER, 4 courts, 2 slots, 16 players, global rules."""
    return await LeagueBuilder.create(db_session)


@pytest.fixture
def league_builder():
    """The builder class, for tests that seed on their own event loop."""
    return LeagueBuilder


@pytest.fixture
def owner() -> Caller:
    return OWNER


@pytest.fixture
def stranger() -> Caller:
    return STRANGER


@pytest.fixture
def admin() -> Caller:
    return ADMIN
