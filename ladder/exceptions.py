"""
ladder/exceptions.py
Domain exceptions for round closing and league management.

Every exception carries:
- status_code: HTTP status hint used by the API layer
- code: machine-readable error code
- category: which of the user-visible outcome classes it belongs to

The categories keep "already done" (safe to ignore), "failed, retry"
(safe to retry) and "misconfigured" (operator attention) distinguishable.
"""


class ErrorCategory:
    """User-visible outcome classes for domain errors."""
    ALREADY_DONE = "already_done"
    RETRY = "retry"
    MISCONFIGURED = "misconfigured"
    DENIED = "denied"
    INVALID = "invalid"


class LadderException(Exception):
    """Base exception for the ladder backend"""
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    category: str = ErrorCategory.RETRY
    default_message: str = "An internal error occurred"

    def __init__(self, message: str = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.RETRY


class NotFoundOrDenied(LadderException):
    """
    Raised when a resource does not exist or the caller may not act on it.

    Deliberately indistinguishable: an unauthorized caller learns nothing
    about whether the resource exists.
    """
    status_code = 404
    code = "NOT_FOUND_OR_DENIED"
    category = ErrorCategory.DENIED
    default_message = "Round not found or access denied"


class AlreadyClosed(LadderException):
    """Raised when closing a round that is already closed. Nothing to do."""
    status_code = 409
    code = "ALREADY_CLOSED"
    category = ErrorCategory.ALREADY_DONE
    default_message = "Round is already closed"


class RulesNotFound(LadderException):
    """
    Raised when neither a competition override nor a global rule set exists.

    Configuration integrity failure; never retried.
    """
    status_code = 500
    code = "RULES_NOT_FOUND"
    category = ErrorCategory.MISCONFIGURED
    default_message = "No rule set configured"


class PersistenceFailure(LadderException):
    """
    Raised when the storage layer fails during an atomic operation.

    The operation was rolled back in full and may be retried from scratch.
    """
    status_code = 503
    code = "PERSISTENCE_FAILURE"
    category = ErrorCategory.RETRY
    default_message = "Storage failure, operation rolled back"


class InvalidTransition(LadderException):
    """Raised when a round status transition is not allowed."""
    status_code = 409
    code = "STATE_TRANSITION_INVALID"
    category = ErrorCategory.INVALID
    default_message = "Invalid round status transition"


class RoundLocked(LadderException):
    """Raised when editing groups, seats or scores of a closed round."""
    status_code = 409
    code = "ROUND_LOCKED"
    category = ErrorCategory.INVALID
    default_message = "Round is closed and can no longer be edited"


class DuplicateRound(LadderException):
    """Raised when a round number already exists for the competition."""
    status_code = 409
    code = "DUPLICATE"
    category = ErrorCategory.INVALID
    default_message = "Round number already exists for this competition"


class ValidationFailed(LadderException):
    """Raised when input data fails integrity validation."""
    status_code = 400
    code = "INVALID_INPUT"
    category = ErrorCategory.INVALID
    default_message = "Invalid input"


class InvalidScore(ValidationFailed):
    """Raised when a match score is outside 0..7 or not an integer."""
    default_message = "Scores must be integers between 0 and 7"
