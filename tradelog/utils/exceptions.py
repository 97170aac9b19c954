from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    STORAGE = "storage"
    DATA = "data"
    SYSTEM = "system"


class TradeLogError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        status_code: Optional[int] = None,
        field: Optional[str] = None,
    ) -> None:
        self.message = message
        self.category = category
        self.status_code = status_code
        self.field = field
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.category.value}] {self.message}"]
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        if self.field:
            parts.append(f"Field: {self.field}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Response body for the API error handler."""
        return {"error": self.message, "category": self.category.value, "field": self.field}


class AuthenticationError(TradeLogError):
    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message, ErrorCategory.AUTHENTICATION, 401)


class PermissionDeniedError(TradeLogError):
    def __init__(self, message: str = "Not allowed") -> None:
        super().__init__(message, ErrorCategory.PERMISSION, 403)


class ValidationError(TradeLogError):
    def __init__(self, message: str, field: Optional[str] = None, status_code: int = 422) -> None:
        super().__init__(message, ErrorCategory.VALIDATION, status_code, field)


class DuplicateError(ValidationError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, field, status_code=409)


class NotFoundError(TradeLogError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.NOT_FOUND, 404)


class StorageError(TradeLogError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, ErrorCategory.STORAGE, status_code)


class DataError(TradeLogError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, ErrorCategory.DATA, status_code)
