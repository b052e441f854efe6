"""
Round State Machine
Strict server-side status enforcement for ladder rounds.

    draft ──► running ──► closed
      └──────────────────►┘

No back transitions. closed is terminal and only reached through the
round closer.
"""
import logging
from typing import Dict, List

from ladder.core.ownership_guard import Caller
from ladder.exceptions import AlreadyClosed, InvalidTransition
from ladder.orm.round import Round, RoundStatus, ROUND_STATUS_TRANSITIONS

logger = logging.getLogger(__name__)


class RoundStateMachine:
    """
    Server-side state machine for rounds.

    Validates the transition and applies it to the (already locked) round
    object. Persisting is left to the caller's transaction.
    """

    ALLOWED_TRANSITIONS: Dict[RoundStatus, List[RoundStatus]] = {
        RoundStatus(state): [RoundStatus(target) for target in targets]
        for state, targets in ROUND_STATUS_TRANSITIONS.items()
    }

    def __init__(self, round_obj: Round):
        self.round = round_obj

    @property
    def current(self) -> RoundStatus:
        return RoundStatus(self.round.status)

    def allowed_targets(self) -> List[RoundStatus]:
        return list(self.ALLOWED_TRANSITIONS.get(self.current, []))

    def can_transition(self, new_status: RoundStatus) -> bool:
        return new_status in self.allowed_targets()

    def transition(self, new_status: RoundStatus, actor: Caller) -> Round:
        """
        Move the round to new_status.

        Raises:
            AlreadyClosed: closing a round that is already closed
            InvalidTransition: any other transition not in ALLOWED_TRANSITIONS
        """
        old_status = self.current

        if old_status == RoundStatus.CLOSED and new_status == RoundStatus.CLOSED:
            raise AlreadyClosed(f"Round {self.round.id} is already closed", round_id=self.round.id)

        if not self.can_transition(new_status):
            raise InvalidTransition(
                f"Cannot transition from {old_status.value} to {new_status.value}. "
                f"Allowed: {[s.value for s in self.allowed_targets()]}",
                round_id=self.round.id,
                from_status=old_status.value,
                to_status=new_status.value,
            )

        self.round.status = new_status.value
        logger.info(
            f"Round {self.round.id} status {old_status.value} → {new_status.value} "
            f"by user {actor.user_id}"
        )
        return self.round
