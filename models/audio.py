from dataclasses import dataclass
from typing import Optional


@dataclass
class Audio:
    id: int
    title: str
    category_id: Optional[str] = None  # primary category
    subcategory_id: Optional[str] = None  # secondary category, if any

    @property
    def filed_under(self) -> Optional[str]:
        """Category this audio counts toward: the subcategory when set."""
        return self.subcategory_id or self.category_id

    def to_dict(self) -> dict:
        """Convert audio to dictionary for database storage."""
        return {
            "id": self.id,
            "title": self.title,
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
        }
