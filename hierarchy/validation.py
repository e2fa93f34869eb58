"""Validation of category payloads, picker selections and whole trees.

All functions here are pure: they take the current flat collection and never
touch the store, so they are safe to call on every keystroke.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple, Union

from models.category import Category, CategoryLevel
from models.requests import CreateCategoryRequest, UpdateCategoryRequest
from models.results import (
    HierarchyIssue,
    HierarchyReport,
    IssueSeverity,
    ValidationCode,
    ValidationError,
    ValidationResult,
)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_SUBCATEGORIES_PER_PARENT = 50

CategoryRequest = Union[CreateCategoryRequest, UpdateCategoryRequest]


def name_key(name: str) -> str:
    """Normalize a name for sibling comparison (trimmed, case-insensitive)."""
    return name.strip().casefold()


def validate(
    candidate: CategoryRequest,
    existing: Iterable[Category],
    exclude_id: Optional[str] = None,
) -> ValidationResult:
    """Check a create or update payload against the current collection.

    Every rule runs and every problem is collected, in this order: name,
    parent, sibling uniqueness, description.

    Args:
        candidate: The payload to check.
        existing: The full current flat collection.
        exclude_id: ID of the category being updated. It is ignored for the
                    uniqueness check and supplies the effective name and
                    parent for fields an update leaves out.

    Returns:
        ValidationResult with all errors and non-blocking warnings.
    """
    existing = list(existing)
    by_id = {category.id: category for category in existing}
    current = by_id.get(exclude_id) if exclude_id else None
    is_partial = isinstance(candidate, UpdateCategoryRequest)

    result = ValidationResult()

    # Name
    effective_name = current.name if current else None
    if not (is_partial and candidate.name is None):
        trimmed = (candidate.name or "").strip()
        if not trimmed:
            result.errors.append(
                ValidationError(
                    ValidationCode.NAME_REQUIRED, "Category name is required", "name"
                )
            )
        elif len(trimmed) > MAX_NAME_LENGTH:
            result.errors.append(
                ValidationError(
                    ValidationCode.NAME_TOO_LONG,
                    f"Category name cannot exceed {MAX_NAME_LENGTH} characters",
                    "name",
                )
            )
        effective_name = trimmed

    # Parent
    requested_parent = candidate.parent_id or None
    if is_partial and requested_parent is None:
        effective_parent = current.parent_id if current else None
    else:
        effective_parent = requested_parent

    if requested_parent is not None:
        _check_parent(requested_parent, by_id, current, exclude_id, result)

    # Sibling uniqueness
    name_or_parent_supplied = (
        not is_partial
        or candidate.name is not None
        or requested_parent is not None
    )
    if effective_name and name_or_parent_supplied:
        key = name_key(effective_name)
        for category in existing:
            if category.id == exclude_id:
                continue
            if category.parent_id == effective_parent and name_key(category.name) == key:
                result.errors.append(
                    ValidationError(
                        ValidationCode.DUPLICATE_NAME,
                        f"A category named '{category.name}' already exists at this level",
                        "name",
                    )
                )
                break

    # Description
    if candidate.description and len(candidate.description) > MAX_DESCRIPTION_LENGTH:
        result.errors.append(
            ValidationError(
                ValidationCode.DESCRIPTION_TOO_LONG,
                f"Category description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
                "description",
            )
        )

    return result


def _check_parent(
    parent_id: str,
    by_id: Dict[str, Category],
    current: Optional[Category],
    exclude_id: Optional[str],
    result: ValidationResult,
) -> None:
    """Append parent-related errors and warnings to result."""
    parent = by_id.get(parent_id)

    if parent_id == exclude_id:
        result.errors.append(
            ValidationError(
                ValidationCode.INVALID_PARENT,
                "A category cannot be its own parent",
                "parent_id",
            )
        )
        return

    if parent is None:
        result.errors.append(
            ValidationError(
                ValidationCode.INVALID_PARENT,
                f"Parent category {parent_id} does not exist",
                "parent_id",
            )
        )
        return

    if parent.parent_id is not None:
        result.errors.append(
            ValidationError(
                ValidationCode.INVALID_PARENT,
                "Subcategories can only be created under a primary category",
                "parent_id",
            )
        )
        return

    if current is not None and current.parent_id is None:
        result.errors.append(
            ValidationError(
                ValidationCode.INVALID_LEVEL,
                "A primary category cannot be moved under another category",
                "parent_id",
            )
        )
        return

    sibling_count = sum(
        1
        for category in by_id.values()
        if category.parent_id == parent_id and category.id != exclude_id
    )
    if sibling_count >= MAX_SUBCATEGORIES_PER_PARENT:
        result.warnings.append(
            f"'{parent.name}' already has {sibling_count} subcategories "
            f"(recommended limit is {MAX_SUBCATEGORIES_PER_PARENT})"
        )


def validate_selection(
    categories: Iterable[Category],
    category_id: Optional[str] = None,
    subcategory_id: Optional[str] = None,
) -> ValidationResult:
    """Check that a primary/secondary picker selection is consistent."""
    by_id = {category.id: category for category in categories}
    result = ValidationResult()

    if subcategory_id and not category_id:
        result.errors.append(
            ValidationError(
                ValidationCode.SELECTION_MISMATCH,
                "A subcategory cannot be selected without its category",
                "category_id",
            )
        )

    if category_id:
        category = by_id.get(category_id)
        if category is None:
            result.errors.append(
                ValidationError(
                    ValidationCode.NOT_FOUND,
                    f"Category {category_id} does not exist",
                    "category_id",
                )
            )
        elif category.parent_id is not None:
            result.errors.append(
                ValidationError(
                    ValidationCode.INVALID_LEVEL,
                    "The selected category must be a primary category",
                    "category_id",
                )
            )

    if subcategory_id:
        subcategory = by_id.get(subcategory_id)
        if subcategory is None:
            result.errors.append(
                ValidationError(
                    ValidationCode.NOT_FOUND,
                    f"Subcategory {subcategory_id} does not exist",
                    "subcategory_id",
                )
            )
        elif subcategory.parent_id is None:
            result.errors.append(
                ValidationError(
                    ValidationCode.INVALID_LEVEL,
                    "The selected subcategory must be a secondary category",
                    "subcategory_id",
                )
            )
        elif category_id and subcategory.parent_id != category_id:
            result.errors.append(
                ValidationError(
                    ValidationCode.SELECTION_MISMATCH,
                    "The selected subcategory does not belong to the selected category",
                    "subcategory_id",
                )
            )

    return result


def validate_hierarchy(categories: Iterable[Category]) -> HierarchyReport:
    """Check the structural invariants of a whole collection.

    Reports level/parent contradictions, orphans, parents that are not
    primaries (depth greater than two), sibling name clashes, and primaries
    holding more subcategories than recommended.

    Args:
        categories: The full flat collection.

    Returns:
        HierarchyReport listing every issue found.
    """
    categories = list(categories)
    by_id = {category.id: category for category in categories}
    report = HierarchyReport(total_categories=len(categories))

    for category in categories:
        expected_level = CategoryLevel.for_parent(category.parent_id)
        if category.level != expected_level:
            report.issues.append(
                HierarchyIssue(
                    code=ValidationCode.LEVEL_MISMATCH,
                    severity=IssueSeverity.ERROR,
                    category_id=category.id,
                    category_name=category.name,
                    message=(
                        f"Level {int(category.level)} contradicts parent "
                        f"reference (expected {int(expected_level)})"
                    ),
                    auto_fixable=True,
                )
            )

        if category.parent_id is None:
            continue

        parent = by_id.get(category.parent_id)
        if parent is None:
            report.issues.append(
                HierarchyIssue(
                    code=ValidationCode.ORPHANED,
                    severity=IssueSeverity.ERROR,
                    category_id=category.id,
                    category_name=category.name,
                    message=f"Parent category {category.parent_id} does not exist",
                    auto_fixable=True,
                )
            )
        elif parent.id == category.id or parent.parent_id is not None:
            report.issues.append(
                HierarchyIssue(
                    code=ValidationCode.INVALID_PARENT,
                    severity=IssueSeverity.ERROR,
                    category_id=category.id,
                    category_name=category.name,
                    message=f"Parent '{parent.name}' is not a primary category",
                )
            )

    for (parent_id, _), group in _sibling_groups(categories).items():
        if len(group) < 2:
            continue
        for category in group:
            report.issues.append(
                HierarchyIssue(
                    code=ValidationCode.DUPLICATE_NAME,
                    severity=IssueSeverity.ERROR,
                    category_id=category.id,
                    category_name=category.name,
                    message=(
                        f"{len(group)} categories share the name '{category.name}' "
                        f"under {parent_id or 'the top level'}"
                    ),
                )
            )

    child_counts: Dict[str, int] = defaultdict(int)
    for category in categories:
        if category.parent_id in by_id:
            child_counts[category.parent_id] += 1
    for parent_id, count in child_counts.items():
        if count > MAX_SUBCATEGORIES_PER_PARENT:
            parent = by_id[parent_id]
            report.issues.append(
                HierarchyIssue(
                    code=ValidationCode.TOO_MANY_CHILDREN,
                    severity=IssueSeverity.WARNING,
                    category_id=parent.id,
                    category_name=parent.name,
                    message=(
                        f"Has {count} subcategories, more than the recommended "
                        f"{MAX_SUBCATEGORIES_PER_PARENT}"
                    ),
                )
            )

    return report


def _sibling_groups(
    categories: List[Category],
) -> Dict[Tuple[Optional[str], str], List[Category]]:
    groups: Dict[Tuple[Optional[str], str], List[Category]] = defaultdict(list)
    for category in categories:
        groups[(category.parent_id, name_key(category.name))].append(category)
    return groups
