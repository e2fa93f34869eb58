"""Request payloads accepted by the category store and coordinator."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class CreateCategoryRequest:
    """Payload for creating a category.

    The store assigns id, level and timestamps. When sort_order is None the
    store places the new category after its existing siblings.
    """

    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: Optional[int] = None


@dataclass
class UpdateCategoryRequest:
    """Partial update for a category. Fields left as None are unchanged."""

    name: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None

    def changed_fields(self) -> dict:
        """Return only the fields that were supplied."""
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("description", self.description),
                ("parent_id", self.parent_id),
                ("color", self.color),
                ("icon", self.icon),
                ("sort_order", self.sort_order),
                ("is_active", self.is_active),
            )
            if value is not None
        }


@dataclass
class ReorderRequest:
    """New sort position for one category."""

    category_id: str
    sort_order: int


@dataclass
class DeleteOptions:
    """Flags governing a delete that is not safe.

    Attributes:
        force: Bypass the safety gate (children or audio present).
        cascade: Also delete the children of each target.
        update_audios: Clear category references on associated audio records.
    """

    force: bool = False
    cascade: bool = False
    update_audios: bool = True
