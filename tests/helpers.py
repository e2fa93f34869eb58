"""Helper utilities for tests."""

import time
from typing import Dict, List

from hierarchy.store import CategoryStore


class StoreSpy(CategoryStore):
    """CategoryStore wrapper that records calls and can inject failures.

    Args:
        store: The real store to delegate to.
    """

    def __init__(self, store: CategoryStore):
        self.store = store
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}

    def fail(self, method: str, error: Exception) -> None:
        """Make every later call to method raise error."""
        self.failures[method] = error

    def recover(self) -> None:
        self.failures.clear()

    def _call(self, method: str, *args, **kwargs):
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]
        return getattr(self.store, method)(*args, **kwargs)

    def list_categories(self):
        return self._call("list_categories")

    def create_category(self, request):
        return self._call("create_category", request)

    def update_category(self, category_id, request):
        return self._call("update_category", category_id, request)

    def delete_category(self, category_id, force=False, cascade=False, update_audios=True):
        return self._call(
            "delete_category", category_id, force=force, cascade=cascade, update_audios=update_audios
        )

    def batch_delete_categories(self, category_ids, force=False, cascade=False, update_audios=True):
        return self._call(
            "batch_delete_categories",
            category_ids,
            force=force,
            cascade=cascade,
            update_audios=update_audios,
        )

    def batch_update_status(self, category_ids, is_active):
        return self._call("batch_update_status", category_ids, is_active)

    def reorder_categories(self, requests):
        return self._call("reorder_categories", requests)


class SlowStore(StoreSpy):
    """StoreSpy whose create_category lingers after writing.

    The pause widens the window between the store call and the coordinator
    reconciling its snapshot, so a timer-driven refresh can land inside it.

    Args:
        store: The real store to delegate to.
        delay: Seconds to sleep after each create.
    """

    def __init__(self, store: CategoryStore, delay: float):
        super().__init__(store)
        self.delay = delay

    def create_category(self, request):
        created = super().create_category(request)
        time.sleep(self.delay)
        return created
