"""Derived, read-only views over a category collection."""

from dataclasses import dataclass, field
from typing import List, Optional

from models.category import Category, CategoryLevel
from models.requests import DeleteOptions


@dataclass
class CategoryStats:
    """Aggregate counts over a category collection."""

    total_categories: int = 0
    level1_count: int = 0
    level2_count: int = 0
    active_count: int = 0
    inactive_count: int = 0
    categories_with_audio: int = 0
    empty_categories_count: int = 0


@dataclass
class CategoryOption:
    """An entry for a category picker."""

    label: str
    value: str
    level: CategoryLevel
    title: Optional[str] = None
    parent_id: Optional[str] = None
    disabled: bool = False
    children: List["CategoryOption"] = field(default_factory=list)


@dataclass
class CategoryPath:
    """Resolved primary/secondary pair and its breadcrumb labels."""

    category: Optional[Category] = None
    subcategory: Optional[Category] = None
    breadcrumb: List[str] = field(default_factory=list)

    def as_string(self, separator: str = " > ") -> str:
        return separator.join(self.breadcrumb)


@dataclass
class CategoryFilter:
    """Criteria for narrowing a category collection. None means any."""

    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    level: Optional[CategoryLevel] = None
    is_active: Optional[bool] = None
    has_audio: Optional[bool] = None


@dataclass
class DeleteImpact:
    """What deleting a set of categories would affect.

    Attributes:
        has_children: At least one target has children outside the target set.
        children_count: Number of distinct affected children.
        has_audios: At least one target has audio records filed under it.
        audio_count: Sum of the targets' own audio counts.
        affected_categories: The distinct affected children.
        can_safe_delete: True when nothing besides the targets is affected.
    """

    has_children: bool = False
    children_count: int = 0
    has_audios: bool = False
    audio_count: int = 0
    affected_categories: List[Category] = field(default_factory=list)
    can_safe_delete: bool = True

    def describe(self, options: Optional[DeleteOptions] = None) -> List[str]:
        """Describe the consequences of deleting with the given options.

        Args:
            options: Delete flags the caller intends to use. Defaults apply
                     when omitted.

        Returns:
            One line per consequence, empty when the delete is safe.
        """
        options = options or DeleteOptions()
        lines = []
        if self.has_children:
            outcome = "deleted as well" if options.cascade else "left orphaned"
            lines.append(f"{self.children_count} subcategories will be {outcome}")
        if self.has_audios:
            outcome = (
                "cleared"
                if options.update_audios
                else "left pointing at a deleted category"
            )
            lines.append(f"{self.audio_count} audio links will be {outcome}")
        return lines
