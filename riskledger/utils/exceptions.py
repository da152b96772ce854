from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    RISK = "risk"
    STORAGE = "storage"
    REPOSITORY = "repository"
    SERVICE = "service"


class RiskLedgerError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SERVICE,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.category = category
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.category.value}] {self.message}"]
        if self.code:
            parts.append(f"Code: {self.code}")
        if self.original_error is not None:
            parts.append(f"Caused by: {self.original_error}")
        return " | ".join(parts)


class ValidationError(RiskLedgerError):
    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message, ErrorCategory.VALIDATION, code or "VALIDATION_FAILED")


class RiskLimitExceededError(RiskLedgerError):
    """Trade rejected by the gate; ``limit`` is the bound it was measured against."""

    def __init__(self, message: str, reason: Any = None, limit: float = 0.0) -> None:
        super().__init__(message, ErrorCategory.RISK, "RISK_LIMIT_EXCEEDED")
        self.reason = reason
        self.limit = limit


class StorageError(RiskLedgerError):
    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message, ErrorCategory.STORAGE, "STORAGE_ERROR", original_error)


class RepositoryError(RiskLedgerError):
    def __init__(
        self,
        message: str,
        operation: str = "",
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.REPOSITORY, "REPOSITORY_ERROR", original_error)
        self.operation = operation


class ServiceError(RiskLedgerError):
    def __init__(
        self,
        message: str,
        operation: str = "",
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.SERVICE, code or "SERVICE_ERROR", original_error)
        self.operation = operation


def format_error_message(error: BaseException, context: str = "") -> str:
    """Render an error for the dismissible banner shown to the user."""
    if isinstance(error, (ValidationError, RiskLimitExceededError)):
        message = error.message
    elif isinstance(error, RiskLedgerError):
        message = f"{error.category.value.capitalize()} error: {error.message}"
    else:
        message = f"Unexpected error: {error}"
    return f"{context}: {message}" if context else message
