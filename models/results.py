"""Result types returned by validation and coordinator operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Kinds of failure an operation can report to its caller."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    DELETE_RESTRICTED = "DELETE_RESTRICTED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ValidationCode(str, Enum):
    """Field-level and tree-level validation problems."""

    NAME_REQUIRED = "NAME_REQUIRED"
    NAME_TOO_LONG = "NAME_TOO_LONG"
    DESCRIPTION_TOO_LONG = "DESCRIPTION_TOO_LONG"
    INVALID_PARENT = "INVALID_PARENT"
    INVALID_LEVEL = "INVALID_LEVEL"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    NOT_FOUND = "NOT_FOUND"
    SELECTION_MISMATCH = "SELECTION_MISMATCH"
    LEVEL_MISMATCH = "LEVEL_MISMATCH"
    ORPHANED = "ORPHANED"
    TOO_MANY_CHILDREN = "TOO_MANY_CHILDREN"


@dataclass
class ValidationError:
    """A single validation problem, optionally tied to a form field."""

    code: ValidationCode
    message: str
    field: Optional[str] = None


@dataclass
class ValidationResult:
    """Every problem found in a candidate payload."""

    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def codes(self) -> List[ValidationCode]:
        """Return the error codes in the order they were found."""
        return [error.code for error in self.errors]


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class HierarchyIssue:
    """A structural problem found by tree-wide validation."""

    code: ValidationCode
    severity: IssueSeverity
    category_id: str
    category_name: str
    message: str
    auto_fixable: bool = False


@dataclass
class HierarchyReport:
    """Outcome of validating a whole category collection."""

    total_categories: int = 0
    issues: List[HierarchyIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[HierarchyIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> List[HierarchyIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class OperationError:
    """Error attached to a failed operation result.

    Attributes:
        code: Kind of failure.
        message: Human-readable summary (the first problem for validation).
        field_errors: Every field-level problem for validation failures.
        details: Extra structured context, e.g. per-item batch failures.
    """

    code: ErrorCode
    message: str
    field_errors: List[ValidationError] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a coordinator operation. Operations never raise."""

    success: bool
    data: Optional[T] = None
    error: Optional[OperationError] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None, message: Optional[str] = None):
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        code: ErrorCode,
        message: str,
        field_errors: Optional[List[ValidationError]] = None,
        details: Optional[Dict[str, Any]] = None,
        data: Optional[T] = None,
    ):
        return cls(
            success=False,
            data=data,
            error=OperationError(
                code=code,
                message=message,
                field_errors=list(field_errors or []),
                details=dict(details or {}),
            ),
        )


@dataclass
class BatchFailure:
    """One item that a batched store request could not process."""

    category_id: str
    error: str


@dataclass
class BatchDeleteResult:
    """Per-item outcome of a batched delete at the store."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed
