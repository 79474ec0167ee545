"""
cbt/errors.py
Centralized error codes and response helpers

CORE PRINCIPLES:
- Every failure resolves to a named reason, never a generic error
- No 500 errors caused by user input
- Errors are user-safe (no stack traces) and machine-readable

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Invalid input (empty / unknown access code, unknown question)
- 401: Authentication missing or expired
- 403: Authorization denial or temporal unavailability
- 404: Resource does not exist
- 409: Invalid state transition / already submitted
- 422: Validation error (Pydantic) or publish readiness failure
- 429: Rate limit exceeded
- 503: Persistence collaborator failure
"""

import logging
from typing import Optional, Dict, Any, Tuple

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Code redemption
    EMPTY_CODE = "EMPTY_CODE"
    INVALID_OR_USED_CODE = "INVALID_OR_USED_CODE"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_NOT_ASSIGNED_TO_ACCOUNT = "CODE_NOT_ASSIGNED_TO_ACCOUNT"
    ACCOUNT_NOT_PROVISIONED = "ACCOUNT_NOT_PROVISIONED"
    CODE_ALREADY_CONSUMED = "CODE_ALREADY_CONSUMED"

    # Availability
    EXAM_NOT_YET_STARTED = "EXAM_NOT_YET_STARTED"
    EXAM_ENDED = "EXAM_ENDED"
    EXAM_NOT_PUBLISHED = "EXAM_NOT_PUBLISHED"

    # Auth
    AUTH_REQUIRED = "AUTH_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    ROLE_INSUFFICIENT = "ROLE_INSUFFICIENT"
    OWNERSHIP_VIOLATION = "OWNERSHIP_VIOLATION"

    NOT_FOUND = "NOT_FOUND"
    EXAM_NOT_FOUND = "EXAM_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    RESULT_NOT_FOUND = "RESULT_NOT_FOUND"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"

    INVALID_STATE = "INVALID_STATE"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    TOO_MANY_SESSIONS = "TOO_MANY_SESSIONS"

    # Publish readiness
    PUBLISH_NOT_READY = "PUBLISH_NOT_READY"

    RATE_LIMITED = "RATE_LIMITED"

    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


# Ordered: the first bucket whose keywords appear in the failure text wins.
STORE_ERROR_BUCKETS = (
    ("connection", ("connection", "network", "unable to open", "could not connect"),
     "Unable to connect to the database. Please check your connection and try again."),
    ("permission", ("permission", "unauthorized", "forbidden", "denied"),
     "You don't have permission to perform this action. Please contact your administrator."),
    ("validation", ("validation", "invalid", "not null", "check constraint"),
     "Some of the submitted information is invalid. Please check all fields and try again."),
    ("duplicate", ("unique", "duplicate"),
     "A record with the same values already exists."),
    ("reference", ("foreign key", "reference"),
     "There's a problem with the exam data structure. Please refresh and try again."),
    ("timeout", ("timeout", "time out", "timed out", "database is locked"),
     "The operation took too long to complete. Please try again."),
    ("server", ("server error", "internal error"),
     "There's a temporary problem with our servers. Please try again in a few minutes."),
    ("auth", ("authentication", "session"),
     "Your session has expired. Please log out and log back in."),
)


def describe_store_error(error: BaseException) -> Tuple[str, str]:
    """
    Map a persistence failure to a (bucket, human-readable message) pair.

    Buckets: connection, permission, validation, duplicate, reference,
    timeout, server, auth, unknown.
    """
    text = str(error).lower()
    for bucket, keywords, message in STORE_ERROR_BUCKETS:
        if any(keyword in text for keyword in keywords):
            return bucket, message
    return "unknown", "An unexpected error occurred. Please try again."


def error_payload(
    error: str,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Build the standard error body"""
    content = {
        "success": False,
        "error": error,
        "message": message,
        "code": code
    }
    if details:
        content["details"] = details
    return content


def get_error_summary() -> Dict[str, Any]:
    """Return summary of error handling system for documentation"""
    return {
        "service": "cbt-error-handler",
        "response_structure": {
            "success": "boolean (always false for errors)",
            "error": "string (error type)",
            "message": "string (human-readable)",
            "code": "string (machine-readable)",
            "details": "object (optional)"
        },
        "error_codes": [
            attr for attr in dir(ErrorCode)
            if not attr.startswith('_')
        ]
    }
