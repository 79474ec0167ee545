"""
cbt/exceptions.py
Typed exceptions for the exam attempt lifecycle

Taxonomy (category attribute):
- input_validation: empty / unknown code, unknown question; user re-prompted
- authorization: code not assigned to account, account not provisioned,
  insufficient role, not the owner
- temporal: code expired, exam not started yet, exam ended, exam not published
- publish_readiness: exam structurally incomplete
- invalid_state: transition not allowed, already submitted
- not_found: missing exam / session / result
- external_store: persistence collaborator failure (never retried here)
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from cbt.errors import ErrorCode, describe_store_error, error_payload


def _format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class CBTException(Exception):
    """Base exception for the CBT backend"""
    status_code: int = 500
    error: str = "Internal Error"
    code: str = ErrorCode.INTERNAL_ERROR
    category: str = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return error_payload(self.error, self.message, self.code, self.details)

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


# ================= INPUT VALIDATION =================

class InputValidationError(CBTException):
    status_code = 400
    error = "Bad Request"
    code = ErrorCode.INVALID_INPUT
    category = "input_validation"


class EmptyCodeError(InputValidationError):
    code = ErrorCode.EMPTY_CODE

    def __init__(self):
        super().__init__("Please enter your access code")


class InvalidOrUsedCodeError(InputValidationError):
    code = ErrorCode.INVALID_OR_USED_CODE

    def __init__(self):
        super().__init__(
            "Invalid or expired access code. Please check your code and try again."
        )


class UnknownQuestionError(InputValidationError):
    code = ErrorCode.QUESTION_NOT_FOUND

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(
            f"Question '{question_id}' is not part of this exam",
            details={"question_id": question_id}
        )


# ================= AUTHORIZATION =================

class AuthorizationDenialError(CBTException):
    status_code = 403
    error = "Forbidden"
    code = ErrorCode.FORBIDDEN
    category = "authorization"


class CodeNotAssignedError(AuthorizationDenialError):
    code = ErrorCode.CODE_NOT_ASSIGNED_TO_ACCOUNT

    def __init__(self):
        super().__init__(
            "This access code is not assigned to your account. Please use the correct "
            "access code for your account or contact your administrator."
        )


class AccountNotProvisionedError(AuthorizationDenialError):
    code = ErrorCode.ACCOUNT_NOT_PROVISIONED

    def __init__(self):
        super().__init__(
            "Your account is not properly registered in the system. Please contact your "
            "administrator to set up your account before taking exams."
        )


class RoleInsufficientError(AuthorizationDenialError):
    code = ErrorCode.ROLE_INSUFFICIENT

    def __init__(self, action: str):
        super().__init__(
            f"You don't have permission to {action}",
            details={"action": action}
        )


class OwnershipViolationError(AuthorizationDenialError):
    code = ErrorCode.OWNERSHIP_VIOLATION

    def __init__(self, resource_name: str = "resource"):
        super().__init__(f"This {resource_name} does not belong to you")


# ================= TEMPORAL UNAVAILABILITY =================

class TemporalUnavailabilityError(CBTException):
    status_code = 403
    error = "Unavailable"
    category = "temporal"


class CodeExpiredError(TemporalUnavailabilityError):
    code = ErrorCode.CODE_EXPIRED

    def __init__(self, expires_at: datetime):
        self.expires_at = expires_at
        super().__init__(
            "This access code has expired. Please contact your administrator for a new code.",
            details={"expires_at": _format_instant(expires_at)}
        )


class ExamUnavailableError(TemporalUnavailabilityError):
    """Raised by the availability policy; every subclass maps to date_unavailable."""


class ExamNotYetStartedError(ExamUnavailableError):
    code = ErrorCode.EXAM_NOT_YET_STARTED

    def __init__(self, starts_at: datetime):
        self.starts_at = starts_at
        super().__init__(
            f"This exam is not yet available. It will start on {_format_instant(starts_at)}.",
            details={"starts_at": _format_instant(starts_at)}
        )


class ExamEndedError(ExamUnavailableError):
    code = ErrorCode.EXAM_ENDED

    def __init__(self, ended_at: datetime):
        self.ended_at = ended_at
        super().__init__(
            f"This exam has ended. It was available until {_format_instant(ended_at)}.",
            details={"ended_at": _format_instant(ended_at)}
        )


class ExamNotPublishedError(ExamUnavailableError):
    code = ErrorCode.EXAM_NOT_PUBLISHED

    def __init__(self, exam_id: Optional[str] = None):
        super().__init__(
            "This exam is not published",
            details={"exam_id": exam_id} if exam_id else None
        )


# ================= PUBLISH READINESS =================

class PublishReadinessError(CBTException):
    """Exam is structurally incomplete; the reason is one specific check."""
    status_code = 422
    error = "Not Ready"
    code = ErrorCode.PUBLISH_NOT_READY
    category = "publish_readiness"

    def __init__(self, reason: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        merged = {"reason": reason}
        merged.update(details or {})
        super().__init__(message, details=merged)


# ================= STATE =================

class InvalidStateError(CBTException):
    status_code = 409
    error = "Invalid State"
    code = ErrorCode.INVALID_STATE
    category = "invalid_state"


class InvalidTransitionError(InvalidStateError):
    code = ErrorCode.STATE_TRANSITION_INVALID

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {from_state} → {to_state}",
            details={"from_state": from_state, "to_state": to_state}
        )


class AttemptAlreadySubmittedError(InvalidStateError):
    code = ErrorCode.ALREADY_COMPLETED

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(
            "This exam attempt has already been submitted",
            details={"attempt_id": attempt_id}
        )


class CodeAlreadyConsumedError(InvalidStateError):
    code = ErrorCode.CODE_ALREADY_CONSUMED

    def __init__(self, code_id: str):
        self.code_id = code_id
        super().__init__(
            "This access code was already used to submit another attempt",
            details={"code_id": code_id}
        )


class SessionLimitError(InvalidStateError):
    code = ErrorCode.TOO_MANY_SESSIONS

    def __init__(self, limit: int):
        super().__init__(
            "Too many exams are in progress. Finish or submit one before opening another.",
            details={"limit": limit}
        )


# ================= NOT FOUND =================

class NotFoundError(CBTException):
    status_code = 404
    error = "Not Found"
    code = ErrorCode.NOT_FOUND
    category = "not_found"

    def __init__(self, resource: str, identifier: Any = None, code: Optional[str] = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, code=code)


# ================= EXTERNAL STORE =================

class ExternalStoreError(CBTException):
    """Persistence failure, surfaced with a human-readable bucket."""
    status_code = 503
    error = "Store Unavailable"
    code = ErrorCode.STORE_UNAVAILABLE
    category = "external_store"

    def __init__(self, bucket: str, message: str, context: str = ""):
        self.bucket = bucket
        self.context = context
        super().__init__(message, details={"bucket": bucket, "context": context} if context else {"bucket": bucket})

    @classmethod
    def from_exception(cls, error: BaseException, context: str = "") -> "ExternalStoreError":
        bucket, message = describe_store_error(error)
        return cls(bucket, message, context)
