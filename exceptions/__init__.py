"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    ValidationError,
    AuthorizationError,
    ExternalServiceError,
    DatabaseError,

    # Spreadsheet input
    InputError,
    UnsupportedFileTypeError,
    EmptyFileError,
    FileTooLargeError,
    SheetDecodeError,
    SheetStructureError,

    # Storage
    StorageError,
    TransientStorageError,
    PermanentStorageError,
)

__all__ = [
    # Base
    "AppError",
    "ValidationError",
    "AuthorizationError",
    "ExternalServiceError",
    "DatabaseError",

    # Spreadsheet input
    "InputError",
    "UnsupportedFileTypeError",
    "EmptyFileError",
    "FileTooLargeError",
    "SheetDecodeError",
    "SheetStructureError",

    # Storage
    "StorageError",
    "TransientStorageError",
    "PermanentStorageError",
]
