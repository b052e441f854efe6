"""
Promotion / Relegation Resolver.

Deterministic ordering of a group's players and positional partition into
promoted, stays and relegated.

Ordering:
1. Points, descending
2. Better (lower) prior ranking position
3. Ranked players before unranked players
4. Player id, ascending (two unranked players on equal points)
"""
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence


@dataclass(frozen=True)
class MovementResult:
    promoted: List[int] = field(default_factory=list)
    stays: List[int] = field(default_factory=list)
    relegated: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, List[int]]:
        return {
            "promoted": list(self.promoted),
            "stays": list(self.stays),
            "relegated": list(self.relegated),
        }


def prior_positions(prior_order: Sequence[int]) -> Dict[int, int]:
    """Map player_id -> 0-based ranking position (first occurrence wins)."""
    positions: Dict[int, int] = {}
    for index, player_id in enumerate(prior_order):
        positions.setdefault(player_id, index)
    return positions


def order_players(points: Mapping[int, int], prior_order: Sequence[int]) -> List[int]:
    """Order a group's players best first."""
    positions = prior_positions(prior_order)

    def sort_key(player_id: int):
        position = positions.get(player_id)
        return (
            -points[player_id],
            0 if position is not None else 1,
            position if position is not None else 0,
            player_id,
        )

    return sorted(points, key=sort_key)


def resolve_promotion_relegation(
    points: Mapping[int, int],
    prior_order: Sequence[int],
    promotion_count: int,
    relegation_count: int,
) -> MovementResult:
    """
    Partition a group's players into promoted / stays / relegated.

    Args:
        points: player_id -> points for the round
        prior_order: player ids in league ranking order, best first
        promotion_count: how many move up
        relegation_count: how many move down

    Returns:
        MovementResult. When the counts cover the whole group the middle bucket
        is simply empty; promotion is filled first.
    """
    ordered = order_players(points, prior_order)
    n = len(ordered)
    promoted_n = min(max(promotion_count, 0), n)
    relegated_n = min(max(relegation_count, 0), n - promoted_n)

    return MovementResult(
        promoted=ordered[:promoted_n],
        stays=ordered[promoted_n:n - relegated_n],
        relegated=ordered[n - relegated_n:],
    )
