"""
Scoring Engine: group point calculation.

Pure functions over immutable inputs. No database access, no side effects,
no exceptions of their own: malformed attendance or scores are rejected by
validation before data ever reaches this module.

Positions 1-4 are seats A-D. Each group plays three fixed pairings:
    Match 1: A+B vs C+D
    Match 2: A+C vs B+D
    Match 3: A+D vs B+C
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ladder.orm.round import Attendance, MIN_SCORE, MAX_SCORE


MIN_SEATED_PLAYERS = 2
MASS_ABSENCE_THRESHOLD = 3


@dataclass(frozen=True)
class Pairing:
    match_number: int
    team1: Tuple[int, int]
    team2: Tuple[int, int]


MATCH_PAIRINGS: Tuple[Pairing, ...] = (
    Pairing(match_number=1, team1=(1, 2), team2=(3, 4)),
    Pairing(match_number=2, team1=(1, 3), team2=(2, 4)),
    Pairing(match_number=3, team1=(1, 4), team2=(2, 3)),
)


@dataclass(frozen=True)
class SeatInput:
    player_id: int
    position: int
    attendance: str = Attendance.PRESENT.value

    @property
    def is_absent(self) -> bool:
        return self.attendance == Attendance.ABSENT.value


@dataclass(frozen=True)
class MatchInput:
    match_number: int
    team1: Tuple[int, int]
    team2: Tuple[int, int]
    score_team1: Optional[int] = None
    score_team2: Optional[int] = None
    is_recorded: bool = False

    @classmethod
    def for_pairing(
        cls,
        pairing: Pairing,
        score_team1: Optional[int] = None,
        score_team2: Optional[int] = None,
        is_recorded: bool = False,
    ) -> "MatchInput":
        return cls(
            match_number=pairing.match_number,
            team1=pairing.team1,
            team2=pairing.team2,
            score_team1=score_team1,
            score_team2=score_team2,
            is_recorded=is_recorded,
        )

    def score_for_position(self, position: int) -> int:
        """Team score credited to the seat, 0 if unrecorded or not playing."""
        if not self.is_recorded:
            return 0
        if position in self.team1:
            return self.score_team1 or 0
        if position in self.team2:
            return self.score_team2 or 0
        return 0


@dataclass(frozen=True)
class ScoringRules:
    absence_penalty: int
    use_min_actual_when_absent: bool
    three_absences_bonus: int

    @classmethod
    def from_rule_set(cls, rule_set) -> "ScoringRules":
        return cls(
            absence_penalty=rule_set.absence_penalty,
            use_min_actual_when_absent=bool(rule_set.use_min_actual_when_absent),
            three_absences_bonus=rule_set.three_absences_bonus,
        )


@dataclass(frozen=True)
class GroupInput:
    """Everything the calculator needs to know about one court group."""
    group_id: int
    seats: Tuple[SeatInput, ...]
    matches: Tuple[MatchInput, ...] = ()
    court_number: Optional[int] = None


@dataclass
class RoundScoring:
    """Outcome of scoring every group of a round."""
    points: Dict[int, int] = field(default_factory=dict)
    group_points: Dict[int, Dict[int, int]] = field(default_factory=dict)
    skipped_group_ids: List[int] = field(default_factory=list)

    @property
    def groups_scored(self) -> int:
        return len(self.group_points)


def is_valid_score(score) -> bool:
    """Scores are integers 0-7 inclusive (bool is not an integer score)."""
    if score is None or isinstance(score, bool) or not isinstance(score, int):
        return False
    return MIN_SCORE <= score <= MAX_SCORE


def should_skip_group(seats: Sequence[SeatInput]) -> bool:
    """Groups with fewer than two seated players produce no points at all."""
    return len(seats) < MIN_SEATED_PLAYERS


def raw_points(seats: Iterable[SeatInput], matches: Iterable[MatchInput]) -> Dict[int, int]:
    """
    Sum of recorded team scores for every non-absent seat.

    Each match's two scores are each credited to exactly two seats, so with four
    attendees the total equals twice the sum of all recorded scores.
    """
    recorded = [m for m in matches if m.is_recorded]
    return {
        seat.player_id: sum(m.score_for_position(seat.position) for m in recorded)
        for seat in seats
        if not seat.is_absent
    }


def absence_points(rules: ScoringRules, attendee_points: Mapping[int, int]) -> int:
    """
    Points for an absentee in a group below the mass-absence threshold.

    With the fallback enabled an absentee never scores better than the worst
    attendee of the same group.
    """
    penalty = rules.absence_penalty
    if rules.use_min_actual_when_absent and attendee_points:
        worst = min(attendee_points.values())
        if worst < penalty:
            return worst
    return penalty


def calculate_group_points(
    seats: Sequence[SeatInput],
    matches: Sequence[MatchInput],
    rules: ScoringRules,
) -> Dict[int, int]:
    """
    Calculate points per player for a single court group.

    Args:
        seats: Seated players with attendance
        matches: The group's matches (recorded or not)
        rules: Effective scoring rules

    Returns:
        Mapping player_id -> points covering every seat exactly once
    """
    absent = [s for s in seats if s.is_absent]
    attending = [s for s in seats if not s.is_absent]

    # Mass absence: match data is not consulted at all
    if len(absent) >= MASS_ABSENCE_THRESHOLD:
        points = {s.player_id: rules.three_absences_bonus for s in attending}
        points.update({s.player_id: rules.absence_penalty for s in absent})
        return points

    points = raw_points(attending, matches)
    if absent:
        penalty = absence_points(rules, points)
        points.update({s.player_id: penalty for s in absent})
    return points


def score_groups(groups: Iterable[GroupInput], rules: ScoringRules) -> RoundScoring:
    """
    Score every group of a round independently.

    Skipped groups emit nothing. When a player appears in more than one group,
    the later group's value wins.
    """
    scoring = RoundScoring()
    for group in groups:
        if should_skip_group(group.seats):
            scoring.skipped_group_ids.append(group.group_id)
            continue
        group_points = calculate_group_points(group.seats, group.matches, rules)
        scoring.group_points[group.group_id] = group_points
        scoring.points.update(group_points)
    return scoring
