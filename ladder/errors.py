"""
ladder/errors.py
Centralized API error handling.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "category": "already_done | retry | misconfigured | denied | invalid",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 200: Successful, valid request
- 400: Invalid input / malformed request
- 401: Authentication missing or expired
- 404: Resource does not exist OR caller may not see it
- 409: Conflict with current round state (already closed, locked, bad transition)
- 422: Validation error (Pydantic)
- 500: Misconfiguration (missing rule set) or internal failure
- 503: Storage failure, safe to retry
"""

import logging
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ladder.exceptions import ErrorCategory, LadderException

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    NOT_FOUND = "NOT_FOUND"
    NOT_FOUND_OR_DENIED = "NOT_FOUND_OR_DENIED"

    ALREADY_CLOSED = "ALREADY_CLOSED"
    ROUND_LOCKED = "ROUND_LOCKED"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    DUPLICATE = "DUPLICATE"
    FEATURE_DISABLED = "FEATURE_DISABLED"

    RULES_NOT_FOUND = "RULES_NOT_FOUND"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    category: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


ERROR_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Error",
    503: "Service Unavailable",
}


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        category: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.category = category
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.category:
            result["category"] = self.category
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def api_error_from_domain(exc: LadderException) -> APIError:
    """
    Translate a domain exception into the API error envelope.

    Misconfiguration and storage failures never leak internal details
    beyond the message and code.
    """
    error = ERROR_TITLES.get(exc.status_code, "Error")
    details = dict(exc.details) if exc.details else None

    if exc.category == ErrorCategory.MISCONFIGURED:
        logger.error(f"Configuration error surfaced to caller: {exc.code}: {exc.message}")
    elif exc.category == ErrorCategory.RETRY:
        details = {**(details or {}), "retryable": True}

    return APIError(
        status_code=exc.status_code,
        error=error,
        message=exc.message,
        code=exc.code,
        category=exc.category,
        details=details,
    )


def feature_disabled(feature: str) -> APIError:
    """404 for endpoints switched off by configuration"""
    return APIError(
        status_code=status.HTTP_404_NOT_FOUND,
        error="Not Found",
        message=f"{feature} is disabled",
        code=ErrorCode.FEATURE_DISABLED,
    )
