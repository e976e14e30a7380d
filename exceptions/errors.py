"""
Custom exception classes for the application.

Every error carries a stable code so the admin UI can tell an invalid file
apart from a partially failed sync.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "UNSUPPORTED_FILE_TYPE")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class AuthorizationError(AppError):
    """Caller is not an authenticated administrator (401)."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(
            code="NOT_AUTHORIZED",
            message=message,
            status_code=401
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None,
        code: str = "DATABASE_ERROR"
    ):
        super().__init__(
            code=code,
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# INPUT ERRORS
# ===================

class InputError(ValidationError):
    """Uploaded spreadsheet cannot be used. No writes are attempted."""


class UnsupportedFileTypeError(InputError):
    """File extension is not a spreadsheet type."""

    def __init__(self, filename: str, allowed: tuple[str, ...]):
        super().__init__(
            code="UNSUPPORTED_FILE_TYPE",
            message=f"Only Excel files are supported ({', '.join(allowed)})",
            details={"filename": filename, "allowed": list(allowed)}
        )


class EmptyFileError(InputError):
    """Upload is empty or the sheet has no rows."""

    def __init__(self, message: str = "File contains no data"):
        super().__init__(
            code="EMPTY_FILE",
            message=message
        )


class FileTooLargeError(InputError):
    """Upload exceeds the configured size limit."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"File is larger than {limit_bytes // (1024 * 1024)} MB",
            details={"size_bytes": size_bytes, "limit_bytes": limit_bytes}
        )


class SheetDecodeError(InputError):
    """Workbook bytes could not be decoded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="SHEET_DECODE_ERROR",
            message=message,
            details=details
        )


class SheetStructureError(InputError):
    """Header row or the name/quantity columns were not found."""

    def __init__(self, reason: str, details: Optional[dict] = None):
        super().__init__(
            code="SHEET_STRUCTURE_NOT_FOUND",
            message=(
                'Required columns not found. Expected a product name column '
                '(e.g. "Номенклатура") and a quantity column (e.g. "Конечный остаток")'
            ),
            details={"reason": reason, **(details or {})}
        )


# ===================
# STORAGE ERRORS
# ===================

class StorageError(DatabaseError):
    """Base for failures of the catalog storage collaborator."""

    transient = False


class TransientStorageError(StorageError):
    """Connection drop, timeout or contention. Safe to retry."""

    transient = True

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(operation, message, details, code="STORAGE_TRANSIENT_ERROR")


class PermanentStorageError(StorageError):
    """Constraint violation or malformed request. Retrying will not help."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(operation, message, details, code="STORAGE_PERMANENT_ERROR")
