"""Abstract interface to the persisted category collection."""

from abc import ABC, abstractmethod
from typing import List, Sequence

from models.category import Category
from models.requests import CreateCategoryRequest, ReorderRequest, UpdateCategoryRequest
from models.results import BatchDeleteResult


class CategoryStore(ABC):
    """Abstract base class for category persistence backends.

    The coordinator treats a store as a remote source of truth. Every method
    is a single request-response round trip. Failures are raised as
    exceptions.CategoryStoreError subclasses.
    """

    @abstractmethod
    def list_categories(self) -> List[Category]:
        """Return the full flat collection, active and inactive."""
        pass

    @abstractmethod
    def create_category(self, request: CreateCategoryRequest) -> Category:
        """Persist a new category.

        Args:
            request: Client-supplied fields.

        Returns:
            The authoritative record, with id, level and timestamps assigned.
        """
        pass

    @abstractmethod
    def update_category(
        self, category_id: str, request: UpdateCategoryRequest
    ) -> Category:
        """Apply a partial update and return the authoritative record."""
        pass

    @abstractmethod
    def delete_category(
        self,
        category_id: str,
        force: bool = False,
        cascade: bool = False,
        update_audios: bool = True,
    ) -> None:
        """Delete one category, honoring the delete flags."""
        pass

    @abstractmethod
    def batch_delete_categories(
        self,
        category_ids: Sequence[str],
        force: bool = False,
        cascade: bool = False,
        update_audios: bool = True,
    ) -> BatchDeleteResult:
        """Delete several categories, reporting per-item outcomes."""
        pass

    @abstractmethod
    def batch_update_status(self, category_ids: Sequence[str], is_active: bool) -> None:
        """Activate or deactivate several categories."""
        pass

    @abstractmethod
    def reorder_categories(self, requests: Sequence[ReorderRequest]) -> None:
        """Apply new sort positions."""
        pass
