"""Estimator error handling.

Custom exceptions and error codes shared by services and entry points.
"""

from typing import Optional, Dict, Any


class ErrorCode:
    """Error code constants."""

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"

    # Identity Errors
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"

    # Firestore Errors
    FIRESTORE_ERROR = "FIRESTORE_ERROR"
    ESTIMATE_NOT_FOUND = "ESTIMATE_NOT_FOUND"
    FIRESTORE_WRITE_FAILED = "FIRESTORE_WRITE_FAILED"

    # Storage Errors
    STORAGE_UPLOAD_FAILED = "STORAGE_UPLOAD_FAILED"

    # LLM Errors
    LLM_ERROR = "LLM_ERROR"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_CONTEXT_TOO_LONG = "LLM_CONTEXT_TOO_LONG"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class EstimatorError(Exception):
    """Base exception for estimator errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(EstimatorError):
    """Validation-specific error."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict] = None,
        code: str = ErrorCode.VALIDATION_ERROR
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class NotFoundError(EstimatorError):
    """Raised when an estimate does not exist."""

    def __init__(self, estimate_id: str):
        super().__init__(
            code=ErrorCode.ESTIMATE_NOT_FOUND,
            message=f"Estimate not found: {estimate_id}",
            details={"estimate_id": estimate_id}
        )
        self.estimate_id = estimate_id


class AuthorizationError(EstimatorError):
    """Raised when the caller is unknown or does not own the estimate."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.NOT_AUTHORIZED,
        details: Optional[Dict] = None
    ):
        super().__init__(code=code, message=message, details=details)
