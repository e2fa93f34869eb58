"""
Custom exceptions for Auscult.
"""

from models.results import ErrorCode


class AuscultError(Exception):
    """Base exception for Auscult errors."""
    pass


class ConfigError(AuscultError):
    """Raised when the configuration file cannot be read."""
    pass


class CategoryStoreError(AuscultError):
    """Base exception for failures raised by a category store.

    Each subclass carries the ErrorCode the coordinator reports to callers.
    """

    code = ErrorCode.INTERNAL_ERROR


class NotFoundError(CategoryStoreError):
    """Raised when a referenced category does not exist."""

    code = ErrorCode.NOT_FOUND


class ConflictError(CategoryStoreError):
    """Raised when a write collides with existing data, e.g. a sibling name."""

    code = ErrorCode.CONFLICT


class InvalidCategoryError(CategoryStoreError):
    """Raised when a payload breaks a category invariant, e.g. an empty name."""

    code = ErrorCode.VALIDATION_ERROR


class InvalidParentError(InvalidCategoryError):
    """Raised when a parent reference would break the two-level hierarchy."""
    pass


class DeleteRestrictedError(CategoryStoreError):
    """Raised when an unforced delete would affect children or audio."""

    code = ErrorCode.DELETE_RESTRICTED


class StoreUnavailableError(CategoryStoreError):
    """Raised when the store cannot be reached (locked or missing database)."""

    code = ErrorCode.NETWORK_ERROR
