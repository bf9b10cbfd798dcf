"""
Ledger Core - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes so a routing layer
can translate ledger failures into consistent responses.

Usage:
    from ledger.exceptions import NotFoundError, ValidationError

    # Unknown record
    raise NotFoundError("JournalEntry", entry_id)

    # With custom message
    raise ValidationError("Description is required", field="description")
"""
from typing import Any, Dict, Optional


class LedgerException(Exception):
    """
    Base exception for all ledger core errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code a routing layer should return
        details: Additional context for debugging
    """

    error_code: str = "LEDGER_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(LedgerException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class InvalidAccountError(ValidationError):
    """Raised when a journal line references an account that cannot take postings."""

    error_code = "INVALID_ACCOUNT"

    def __init__(
        self,
        account_code: str,
        *,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["reason"] = reason
        super().__init__(
            f"Account {account_code} cannot accept postings: {reason}",
            field="account_id",
            value=account_code,
            details=details,
        )


class InvalidStateError(LedgerException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(LedgerException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(LedgerException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate resource."""

    error_code = "DUPLICATE_ERROR"

    def __init__(
        self,
        resource: str = "Resource",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        message = f"{resource} already exists"
        if field and value:
            message = f"{resource} with {field}='{value}' already exists"
        super().__init__(message, details=details)


class ConcurrencyError(ConflictError):
    """Raised when concurrent modification is detected."""

    error_code = "CONCURRENCY_ERROR"

    def __init__(
        self,
        message: str = "Resource was modified by another user",
        *,
        expected_version: Optional[int] = None,
        current_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if current_version is not None:
            details["current_version"] = current_version
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class DomainRuleError(LedgerException):
    """Raised when an accounting rule is violated."""

    error_code = "DOMAIN_RULE_VIOLATION"
    status_code = 422

    def __init__(
        self,
        message: str = "Domain rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class UnbalancedEntryError(ValidationError):
    """Raised when journal entry debits and credits do not match."""

    error_code = "UNBALANCED_ENTRY"

    def __init__(
        self,
        total_debits: Any,
        total_credits: Any,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["total_debits"] = str(total_debits)
        details["total_credits"] = str(total_credits)
        super().__init__(
            f"Entry is not balanced: debits {total_debits} != credits {total_credits}",
            details=details,
        )
