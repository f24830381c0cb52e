"""Custom exceptions for the application."""
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds callers can match on."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    CACHE_UNAVAILABLE = "cache_unavailable"
    STORAGE = "storage"
    INTERNAL = "internal"


STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.CACHE_UNAVAILABLE: 503,
    ErrorKind.STORAGE: 500,
    ErrorKind.INTERNAL: 500,
}


class CatalogException(Exception):
    """Base exception for all catalog errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: ErrorKind = None):
        self.message = message
        if kind is not None:
            self.kind = kind
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


class NotFoundException(CatalogException):
    """Raised when a resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(message)


class ValidationException(CatalogException):
    """Raised when validation fails."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class DuplicateException(CatalogException):
    """Raised when attempting to create a duplicate resource."""

    kind = ErrorKind.DUPLICATE

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} with identifier '{identifier}' already exists"
        super().__init__(message)


class CacheUnavailableException(CatalogException):
    """Raised by cache reads when the backend is absent, unreachable or too slow."""

    kind = ErrorKind.CACHE_UNAVAILABLE

    def __init__(self, message: str = "cache backend unavailable"):
        super().__init__(f"Cache error: {message}")


class StorageException(CatalogException):
    """Raised when file storage operations fail."""

    kind = ErrorKind.STORAGE

    def __init__(self, message: str):
        super().__init__(f"Storage error: {message}")


class DatabaseException(CatalogException):
    """Raised when database operations fail."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(f"Database error: {message}")
