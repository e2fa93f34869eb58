"""Stateful orchestrator for category management within one session.

The coordinator holds the session's snapshot of the category collection and
the tree derived from it. Writes are validated locally, persisted through a
CategoryStore, and reconciled into the snapshot from the store's response or
from a full refetch. Operations return OperationResult objects and never
raise for validation or store failures.
"""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import CategoryStoreError
from hierarchy.defaults import default_categories
from hierarchy.events import CategoriesChanged, CategoryEventBus, DebouncedCall
from hierarchy.impact import analyze_delete
from hierarchy.stats import compute_stats
from hierarchy.store import CategoryStore
from hierarchy.tree import build_tree, find_orphans, sort_key
from hierarchy.validation import (
    CategoryRequest,
    name_key,
    validate,
    validate_hierarchy,
    validate_selection,
)
from hierarchy.views import (
    filter_categories,
    get_category_options,
    get_category_path,
    get_subcategory_options,
    hierarchical_options,
    search_categories,
)
from logger import get_logger
from models.category import Category, CategoryLevel, TreeNode
from models.requests import DeleteOptions, ReorderRequest, UpdateCategoryRequest
from models.results import ErrorCode, HierarchyReport, OperationResult, ValidationResult
from models.views import (
    CategoryFilter,
    CategoryOption,
    CategoryPath,
    CategoryStats,
    DeleteImpact,
)

logger = get_logger("coordinator")


@dataclass(frozen=True)
class _Snapshot:
    """Immutable view of the collection with memoized derived values.

    A new snapshot replaces the old one on every change, so anything cached
    here is keyed on snapshot identity.
    """

    categories: Tuple[Category, ...] = ()
    _memo: Dict[Any, Any] = field(default_factory=dict, compare=False, repr=False)

    def memo(self, key: Any, factory: Callable[[], Any]) -> Any:
        if key not in self._memo:
            self._memo[key] = factory()
        return self._memo[key]

    @property
    def by_id(self) -> Dict[str, Category]:
        return self.memo("by_id", lambda: {c.id: c for c in self.categories})

    @property
    def tree(self) -> List[TreeNode]:
        return self.memo("tree", lambda: build_tree(self.categories))


class CategoryCoordinator:
    """Owns one session's category snapshot and its write operations.

    Args:
        store: Persistence backend, the source of truth.
        event_bus: Optional channel shared with other coordinators. Writes
                   are announced on it and changes announced by others
                   trigger a debounced refresh.
        refresh_delay: Seconds to wait after an external change before
                       refetching.
        fallback_to_defaults: Load the built-in category set when a fetch
                              fails, so the session is never left empty.

    Fetches and writes run one at a time. A refresh fired by the debounce
    timer waits for an operation in progress and then refetches.
    """

    def __init__(
        self,
        store: CategoryStore,
        event_bus: Optional[CategoryEventBus] = None,
        refresh_delay: float = 0.5,
        fallback_to_defaults: bool = True,
    ):
        self.store = store
        self.event_bus = event_bus
        self.fallback_to_defaults = fallback_to_defaults
        self.session_id = uuid.uuid4().hex

        self.loading = False
        self.error: Optional[str] = None
        self.degraded = False

        # Serializes fetches and writes, including refreshes fired by the timer
        self._lock = threading.RLock()
        self._snapshot = _Snapshot()
        self._refresh = DebouncedCall(self.fetch_categories, refresh_delay)
        self._subscription = (
            event_bus.subscribe(self._handle_event) if event_bus is not None else None
        )

    @classmethod
    def from_config(
        cls,
        config,
        store: CategoryStore,
        event_bus: Optional[CategoryEventBus] = None,
    ) -> "CategoryCoordinator":
        """Create a coordinator using the refresh settings from config."""
        return cls(
            store,
            event_bus=event_bus,
            refresh_delay=config.refresh_delay_ms / 1000,
            fallback_to_defaults=config.fallback_to_defaults,
        )

    # State

    @property
    def categories(self) -> List[Category]:
        """The flat snapshot, in the order the store returned it."""
        return list(self._snapshot.categories)

    @property
    def category_tree(self) -> List[TreeNode]:
        """The two-level tree derived from the snapshot."""
        return self._snapshot.tree

    def _replace(self, categories: Iterable[Category]) -> None:
        self._snapshot = _Snapshot(tuple(categories))

    def _upsert(self, category: Category) -> None:
        """Put the store's record in the snapshot, replacing any entry with its id."""
        existing = self._snapshot.categories
        if any(c.id == category.id for c in existing):
            self._replace(category if c.id == category.id else c for c in existing)
        else:
            self._replace(existing + (category,))

    # Reads

    def fetch_categories(self) -> OperationResult[List[Category]]:
        """Replace the snapshot with the store's full collection.

        On failure the error is recorded and, unless disabled, the built-in
        default categories are loaded and the coordinator marked degraded.
        """
        with self._lock:
            self.loading = True
            self.error = None
            try:
                categories = self.store.list_categories()
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.warning(f"Failed to fetch categories: {message}")
                self.error = message
                if self.fallback_to_defaults:
                    logger.warning("Falling back to built-in default categories")
                    self._replace(default_categories())
                    self.degraded = True
                return OperationResult.fail(self._error_code(e), message)
            finally:
                self.loading = False

            self._replace(categories)
            self.degraded = False
            logger.debug(f"Fetched {len(categories)} categories")
            return OperationResult.ok(self.categories)

    def get_category_by_id(self, category_id: str) -> Optional[Category]:
        return self._snapshot.by_id.get(category_id)

    def get_category_by_name(
        self, name: str, parent_id: Optional[str] = None
    ) -> Optional[Category]:
        """Find a category by case-insensitive name within one parent scope."""
        key = name_key(name)
        for category in sorted(self._snapshot.categories, key=sort_key):
            if category.parent_id == parent_id and name_key(category.name) == key:
                return category
        return None

    def get_category_stats(self) -> CategoryStats:
        return self._snapshot.memo(
            "stats", lambda: compute_stats(self._snapshot.categories)
        )

    def get_category_options(
        self, level: Optional[CategoryLevel] = None, include_inactive: bool = False
    ) -> List[CategoryOption]:
        snapshot = self._snapshot
        return list(
            snapshot.memo(
                ("options", level, include_inactive),
                lambda: get_category_options(snapshot.categories, level, include_inactive),
            )
        )

    def get_subcategory_options(
        self, parent_id: str, include_inactive: bool = False
    ) -> List[CategoryOption]:
        snapshot = self._snapshot
        return list(
            snapshot.memo(
                ("suboptions", parent_id, include_inactive),
                lambda: get_subcategory_options(
                    snapshot.categories, parent_id, include_inactive
                ),
            )
        )

    def get_hierarchical_options(self, include_inactive: bool = False) -> List[CategoryOption]:
        snapshot = self._snapshot
        return list(
            snapshot.memo(
                ("nested", include_inactive),
                lambda: hierarchical_options(snapshot.tree, include_inactive),
            )
        )

    def get_category_path(
        self, category_id: Optional[str] = None, subcategory_id: Optional[str] = None
    ) -> CategoryPath:
        return get_category_path(self._snapshot.categories, category_id, subcategory_id)

    def validate_category(
        self, request: CategoryRequest, exclude_id: Optional[str] = None
    ) -> ValidationResult:
        """Validate a payload against the snapshot, without side effects."""
        return validate(request, self._snapshot.categories, exclude_id)

    def validate_selection(
        self, category_id: Optional[str] = None, subcategory_id: Optional[str] = None
    ) -> ValidationResult:
        """Check a picker selection against the snapshot."""
        return validate_selection(self._snapshot.categories, category_id, subcategory_id)

    def filter_categories(self, criteria: CategoryFilter) -> List[Category]:
        return filter_categories(sorted(self._snapshot.categories, key=sort_key), criteria)

    def search_categories(self, term: str) -> List[Category]:
        """Search names and descriptions, in sort order."""
        return search_categories(sorted(self._snapshot.categories, key=sort_key), term)

    def find_orphans(self) -> List[Category]:
        snapshot = self._snapshot
        return list(snapshot.memo("orphans", lambda: find_orphans(snapshot.categories)))

    def validate_hierarchy(self) -> HierarchyReport:
        return self._snapshot.memo(
            "hierarchy", lambda: validate_hierarchy(self._snapshot.categories)
        )

    def analyze_delete(self, category_ids: Iterable[str]) -> DeleteImpact:
        """Delete impact for the given ids. Unknown ids are ignored."""
        by_id = self._snapshot.by_id
        targets = [by_id[i] for i in category_ids if i in by_id]
        return analyze_delete(targets, self._snapshot.categories)

    # Writes

    def create_category(self, request) -> OperationResult[Category]:
        """Validate and persist a new category, then append the store's record."""
        with self._lock:
            validation = self.validate_category(request)
            if not validation.is_valid:
                return self._validation_failure(validation)

            self.loading = True
            try:
                created = self.store.create_category(request)
            except Exception as e:
                return self._store_failure("create category", e)
            finally:
                self.loading = False

            self._upsert(created)
            logger.info(f"Created category '{created.name}' ({created.id})")
            self._publish("create", [created.id])
            return OperationResult.ok(created, "Category created")

    def update_category(
        self, category_id: str, request: UpdateCategoryRequest
    ) -> OperationResult[Category]:
        """Validate and persist a partial update, then swap in the store's record."""
        with self._lock:
            if category_id not in self._snapshot.by_id:
                return OperationResult.fail(
                    ErrorCode.NOT_FOUND, f"Category {category_id} not found"
                )

            validation = self.validate_category(request, exclude_id=category_id)
            if not validation.is_valid:
                return self._validation_failure(validation)

            self.loading = True
            try:
                updated = self.store.update_category(category_id, request)
            except Exception as e:
                return self._store_failure("update category", e)
            finally:
                self.loading = False

            self._upsert(updated)
            logger.info(f"Updated category '{updated.name}' ({updated.id})")
            self._publish("update", [category_id])
            return OperationResult.ok(updated, "Category updated")

    def delete_category(
        self, category_id: str, options: Optional[DeleteOptions] = None
    ) -> OperationResult[List[str]]:
        """Delete one category, subject to the delete policy.

        A delete that would affect children or audio is rejected with
        DELETE_RESTRICTED unless options.force is set.
        """
        return self._delete([category_id], options or DeleteOptions())

    def delete_categories(
        self, category_ids: Sequence[str], options: Optional[DeleteOptions] = None
    ) -> OperationResult[List[str]]:
        """Delete several categories in one batched store request.

        Any per-item failure at the store is reported as a single failed
        result, with per-item details; nothing is retried.
        """
        return self._delete(category_ids, options or DeleteOptions())

    def _delete(
        self, category_ids: Sequence[str], options: DeleteOptions
    ) -> OperationResult[List[str]]:
        with self._lock:
            ids = list(dict.fromkeys(category_ids))
            if not ids:
                return OperationResult.ok([], "Nothing to delete")

            by_id = self._snapshot.by_id
            missing = [i for i in ids if i not in by_id]
            if missing:
                return OperationResult.fail(
                    ErrorCode.NOT_FOUND,
                    f"Category {missing[0]} not found",
                    details={"missing": missing},
                )

            impact = analyze_delete([by_id[i] for i in ids], self._snapshot.categories)
            if not impact.can_safe_delete and not options.force:
                reasons = "; ".join(impact.describe(options))
                return OperationResult.fail(
                    ErrorCode.DELETE_RESTRICTED,
                    f"Delete is not safe ({reasons}); set force to proceed",
                    details={"impact": impact},
                )

            self.loading = True
            try:
                if len(ids) == 1:
                    self.store.delete_category(
                        ids[0],
                        force=options.force,
                        cascade=options.cascade,
                        update_audios=options.update_audios,
                    )
                else:
                    batch = self.store.batch_delete_categories(
                        ids,
                        force=options.force,
                        cascade=options.cascade,
                        update_audios=options.update_audios,
                    )
                    if not batch.all_succeeded:
                        message = (
                            f"{len(batch.failed)} of {len(ids)} categories could not be deleted"
                        )
                        logger.error(f"Batch delete failed: {message}")
                        self.error = message
                        self._publish("delete", batch.succeeded)
                        return OperationResult.fail(
                            ErrorCode.INTERNAL_ERROR,
                            message,
                            details={"succeeded": batch.succeeded, "failed": batch.failed},
                        )
            except Exception as e:
                return self._store_failure("delete categories", e)
            finally:
                self.loading = False

            if options.cascade and impact.has_children:
                self.fetch_categories()
            else:
                removed = set(ids)
                self._replace(c for c in self._snapshot.categories if c.id not in removed)

            logger.info(f"Deleted {len(ids)} category(ies): {', '.join(ids)}")
            self._publish("delete", ids)
            return OperationResult.ok(ids, "Categories deleted")

    def reorder_categories(
        self, requests: Sequence[ReorderRequest]
    ) -> OperationResult[None]:
        """Persist new sort positions, then refetch the whole collection."""
        with self._lock:
            requests = list(requests)
            if not requests:
                return OperationResult.ok(message="Nothing to reorder")

            missing = [r.category_id for r in requests if r.category_id not in self._snapshot.by_id]
            if missing:
                return OperationResult.fail(
                    ErrorCode.NOT_FOUND,
                    f"Category {missing[0]} not found",
                    details={"missing": missing},
                )

            self.loading = True
            try:
                self.store.reorder_categories(requests)
            except Exception as e:
                return self._store_failure("reorder categories", e)
            finally:
                self.loading = False

            self.fetch_categories()
            logger.info(f"Reordered {len(requests)} category(ies)")
            self._publish("reorder", [r.category_id for r in requests])
            return OperationResult.ok(message="Categories reordered")

    def set_categories_active(
        self, category_ids: Sequence[str], is_active: bool
    ) -> OperationResult[None]:
        """Activate or deactivate several categories, then refetch."""
        with self._lock:
            ids = list(dict.fromkeys(category_ids))
            if not ids:
                return OperationResult.ok(message="Nothing to update")

            missing = [i for i in ids if i not in self._snapshot.by_id]
            if missing:
                return OperationResult.fail(
                    ErrorCode.NOT_FOUND,
                    f"Category {missing[0]} not found",
                    details={"missing": missing},
                )

            self.loading = True
            try:
                self.store.batch_update_status(ids, is_active)
            except Exception as e:
                return self._store_failure("update category status", e)
            finally:
                self.loading = False

            self.fetch_categories()
            state = "Activated" if is_active else "Deactivated"
            logger.info(f"{state} {len(ids)} category(ies)")
            self._publish("status", ids)
            return OperationResult.ok(message=f"{state} {len(ids)} categories")

    # Change notifications

    def on_external_categories_changed(self) -> None:
        """Schedule a debounced refetch after a change made elsewhere."""
        self._refresh.trigger()

    def flush_pending_refresh(self) -> bool:
        """Run a scheduled refetch now. Returns False if none was pending."""
        return self._refresh.flush()

    @property
    def refresh_pending(self) -> bool:
        return self._refresh.pending

    def wait_for_refresh(self, timeout: Optional[float] = None) -> bool:
        """Block until no refetch is scheduled or running.

        Returns:
            False if the timeout expired first.
        """
        return self._refresh.wait(timeout)

    def close(self) -> None:
        """Stop listening for changes and drop any scheduled refetch."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._refresh.cancel()

    def _handle_event(self, event: CategoriesChanged) -> None:
        if event.source == self.session_id:
            return
        self.on_external_categories_changed()

    def _publish(self, reason: str, category_ids: Iterable[str]) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(
            CategoriesChanged(
                source=self.session_id,
                reason=reason,
                category_ids=tuple(category_ids),
            )
        )

    # Failures

    @staticmethod
    def _error_code(error: Exception) -> ErrorCode:
        if isinstance(error, CategoryStoreError):
            return error.code
        return ErrorCode.INTERNAL_ERROR

    def _store_failure(self, action: str, error: Exception) -> OperationResult:
        message = str(error) or error.__class__.__name__
        logger.error(f"Failed to {action}: {message}")
        self.error = message
        return OperationResult.fail(self._error_code(error), message)

    @staticmethod
    def _validation_failure(validation: ValidationResult) -> OperationResult:
        first = validation.errors[0]
        return OperationResult.fail(
            ErrorCode.VALIDATION_ERROR,
            first.message,
            field_errors=validation.errors,
            details={"warnings": list(validation.warnings)},
        )
