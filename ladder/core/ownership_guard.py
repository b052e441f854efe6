"""
Ownership Enforcement Layer

Caller identity and competition ownership checks.

Rules:
- A competition's owner may manage everything inside it
- Admins may manage every competition and the global rule set
- Any mismatch raises NotFoundOrDenied (NOT a distinct "forbidden") so a
  caller cannot discover which rounds or competitions exist
"""
from dataclasses import dataclass
from typing import Any

from ladder.exceptions import NotFoundOrDenied


@dataclass(frozen=True)
class Caller:
    """Explicit identity of whoever is invoking an operation."""
    user_id: int
    is_admin: bool = False


def can_manage_competition(caller: Caller, competition: Any) -> bool:
    """
    Check whether caller may mutate a competition and its rounds.

    Args:
        caller: Calling identity
        competition: Entity with an owner_user_id attribute

    Returns:
        True if owner or admin
    """
    if caller.is_admin:
        return True
    return getattr(competition, "owner_user_id", None) == caller.user_id


def require_competition_scope(competition: Any, caller: Caller, what: str = "Competition") -> None:
    """
    Verify caller may act on the competition.

    Raises:
        NotFoundOrDenied: if the competition is missing or not the caller's
    """
    if competition is None or not can_manage_competition(caller, competition):
        raise NotFoundOrDenied(f"{what} not found or access denied")


def require_admin(caller: Caller, what: str = "Resource") -> None:
    """Verify caller is an admin."""
    if not caller.is_admin:
        raise NotFoundOrDenied(f"{what} not found or access denied")
