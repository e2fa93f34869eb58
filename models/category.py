"""Category model for the two-level audio classification tree."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import List, Optional


class CategoryLevel(IntEnum):
    """Depth of a category in the tree. Only two levels exist."""

    PRIMARY = 1
    SECONDARY = 2

    @classmethod
    def for_parent(cls, parent_id: Optional[str]) -> "CategoryLevel":
        """Derive the level implied by a parent reference."""
        return cls.PRIMARY if parent_id is None else cls.SECONDARY


@dataclass
class Category:
    """Represents a category that audio assets are filed under.

    Attributes:
        id: Opaque unique identifier assigned by the store.
        name: Display name, unique among siblings (case-insensitive).
        description: Optional description of what belongs in this category.
        color: Optional display color.
        icon: Optional display icon.
        parent_id: Parent category ID. None for primary categories.
        level: PRIMARY or SECONDARY, always consistent with parent_id.
        sort_order: Display order among siblings (ties broken by id).
        is_active: Inactive categories are hidden from public browsing.
        audio_count: Number of audio records filed here, supplied by the
                     audio subsystem. Advisory only.
        created_at: Creation timestamp, set by the store.
        updated_at: Last update timestamp, set by the store.
    """

    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    level: CategoryLevel = CategoryLevel.PRIMARY
    sort_order: int = 0
    is_active: bool = True
    audio_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        """True when this category sits at the top level."""
        return self.parent_id is None

    def to_dict(self) -> dict:
        """Convert category to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "parent_id": self.parent_id,
            "level": int(self.level),
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "audio_count": self.audio_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class TreeNode:
    """A primary category together with its ordered secondary children."""

    category: Category
    children: List[Category] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.category.id

    @property
    def name(self) -> str:
        return self.category.name
