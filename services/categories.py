"""Category service for database operations.

CategoryService is the SQLite implementation of the CategoryStore interface.
It re-checks every hierarchy invariant itself, so a stale client cannot
corrupt the tree.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from exceptions import (
    CategoryStoreError,
    ConflictError,
    DeleteRestrictedError,
    InvalidCategoryError,
    InvalidParentError,
    NotFoundError,
    StoreUnavailableError,
)
from hierarchy.store import CategoryStore
from hierarchy.validation import name_key
from logger import get_logger
from models.category import Category, CategoryLevel
from models.requests import CreateCategoryRequest, ReorderRequest, UpdateCategoryRequest
from models.results import BatchDeleteResult, BatchFailure

logger = get_logger("store")

_COLUMNS = (
    "id, name, description, color, icon, parent_id, level, sort_order, "
    "is_active, created_at, updated_at"
)

# One row per (category, audio) reference; an audio filed under the same id
# in both columns is counted once.
_AUDIO_REFS = (
    "SELECT category_id AS category_ref, id FROM audios WHERE category_id IS NOT NULL "
    "UNION "
    "SELECT subcategory_id AS category_ref, id FROM audios WHERE subcategory_id IS NOT NULL"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


class CategoryService(CategoryStore):
    """Service for managing categories."""

    def __init__(self, db_manager):
        """Initialize the category service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    @contextmanager
    def _connection(self):
        """Open a connection, rolling back and translating SQLite failures."""
        try:
            with self.db_manager.connect() as conn:
                try:
                    yield conn
                except Exception:
                    conn.rollback()
                    raise
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Category conflicts with an existing record: {e}") from e
        except sqlite3.OperationalError as e:
            raise StoreUnavailableError(f"Category store unavailable: {e}") from e

    def list_categories(self) -> List[Category]:
        """Get all categories, active and inactive, with their audio counts.

        Returns:
            List of Category objects, primaries first, then by sort order.
        """
        with self._connection() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM categories ORDER BY level, sort_order, id"
            )
            rows = cursor.fetchall()
            counts = self._audio_counts(conn)

        return [self._row_to_category(row, counts.get(row[0], 0)) for row in rows]

    def find(self, category_id: str) -> Optional[Category]:
        """Get a single category by ID.

        Args:
            category_id: The category ID to find.

        Returns:
            Category object if found, None otherwise.
        """
        with self._connection() as conn:
            return self._fetch(conn, category_id)

    def find_by_name(self, name: str, parent_id: Optional[str] = None) -> Optional[Category]:
        """Get a single category by name within one parent.

        Args:
            name: The category name to find (case-insensitive).
            parent_id: Parent to search under. None searches the primaries.

        Returns:
            Category object if found, None otherwise.
        """
        with self._connection() as conn:
            category_id = self._sibling_with_name(conn, name, parent_id)
            return self._fetch(conn, category_id) if category_id else None

    def create_category(self, request: CreateCategoryRequest) -> Category:
        """Create a new category.

        The level is derived from parent_id. When request.sort_order is None
        the category is placed after its existing siblings.

        Raises:
            InvalidCategoryError: If the name is empty.
            InvalidParentError: If the parent is missing or not a primary.
            ConflictError: If a sibling already has the same name.
        """
        name = (request.name or "").strip()
        if not name:
            raise InvalidCategoryError("Category name is required")
        parent_id = request.parent_id or None

        with self._connection() as conn:
            level = self._check_parent(conn, parent_id)
            self._check_sibling_name(conn, name, parent_id)

            sort_order = request.sort_order
            if sort_order is None:
                sort_order = self._next_sort_order(conn, parent_id)

            prefix = "category" if level == CategoryLevel.PRIMARY else "subcategory"
            category_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
            now = _now()

            conn.execute(
                f"INSERT INTO categories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    category_id,
                    name,
                    request.description,
                    request.color,
                    request.icon,
                    parent_id,
                    int(level),
                    sort_order,
                    1,
                    now,
                    now,
                ),
            )
            conn.commit()
            logger.debug(f"Inserted category {category_id} ({name})")
            return self._fetch(conn, category_id)

    def update_category(
        self, category_id: str, request: UpdateCategoryRequest
    ) -> Category:
        """Apply a partial update to a category.

        A secondary may move to another primary. A primary can never gain a
        parent, and an empty parent_id leaves the parent unchanged.

        Raises:
            NotFoundError: If the category does not exist.
            InvalidCategoryError: If the new name is empty.
            InvalidParentError: If the new parent would break the hierarchy.
            ConflictError: If a sibling already has the resulting name.
        """
        fields = request.changed_fields()
        if not fields.get("parent_id"):
            fields.pop("parent_id", None)

        with self._connection() as conn:
            current = self._get(conn, category_id)

            parent_id = current.parent_id
            if "parent_id" in fields and fields["parent_id"] != current.parent_id:
                if current.parent_id is None:
                    raise InvalidParentError(
                        "A primary category cannot be moved under another category"
                    )
                self._check_parent(conn, fields["parent_id"], category_id)
                parent_id = fields["parent_id"]

            name = current.name
            if "name" in fields:
                name = fields["name"].strip()
                if not name:
                    raise InvalidCategoryError("Category name is required")
                fields["name"] = name

            if "name" in fields or parent_id != current.parent_id:
                self._check_sibling_name(conn, name, parent_id, exclude_id=category_id)

            if "is_active" in fields:
                fields["is_active"] = int(fields["is_active"])
            fields["updated_at"] = _now()

            assignments = ", ".join(f"{column} = ?" for column in fields)
            conn.execute(
                f"UPDATE categories SET {assignments} WHERE id = ?",
                (*fields.values(), category_id),
            )
            conn.commit()
            return self._fetch(conn, category_id)

    def delete_category(
        self,
        category_id: str,
        force: bool = False,
        cascade: bool = False,
        update_audios: bool = True,
    ) -> None:
        """Delete a category.

        Args:
            category_id: The category ID to delete.
            force: Delete even when children or audio records are attached.
            cascade: Also delete the category's subcategories.
            update_audios: Clear references to the deleted categories on
                           audio records.

        Raises:
            NotFoundError: If the category does not exist.
            DeleteRestrictedError: If the delete is unsafe and force is False.
        """
        with self._connection() as conn:
            self._delete_one(conn, category_id, force, cascade, update_audios)
            conn.commit()

    def batch_delete_categories(
        self,
        category_ids: Sequence[str],
        force: bool = False,
        cascade: bool = False,
        update_audios: bool = True,
    ) -> BatchDeleteResult:
        """Delete several categories, each in its own transaction.

        Subcategories are deleted before primaries, so a primary whose
        children are all in the batch is not blocked by them.

        Returns:
            BatchDeleteResult listing the deleted ids and the failures.
        """
        result = BatchDeleteResult()
        ids = list(dict.fromkeys(category_ids))
        if not ids:
            return result

        with self._connection() as conn:
            cursor = conn.execute(
                f"SELECT id, parent_id FROM categories WHERE id IN ({_placeholders(ids)})",
                ids,
            )
            parents = dict(cursor.fetchall())
            ordered = sorted(ids, key=lambda i: 0 if parents.get(i) else 1)

            for category_id in ordered:
                try:
                    self._delete_one(conn, category_id, force, cascade, update_audios)
                    conn.commit()
                    result.succeeded.append(category_id)
                except CategoryStoreError as e:
                    conn.rollback()
                    logger.warning(f"Could not delete category {category_id}: {e}")
                    result.failed.append(BatchFailure(category_id=category_id, error=str(e)))

        return result

    def batch_update_status(self, category_ids: Sequence[str], is_active: bool) -> None:
        """Activate or deactivate several categories in one transaction.

        Raises:
            NotFoundError: If any of the ids does not exist. Nothing is changed.
        """
        ids = list(dict.fromkeys(category_ids))
        if not ids:
            return

        with self._connection() as conn:
            self._require_all(conn, ids)
            conn.execute(
                f"UPDATE categories SET is_active = ?, updated_at = ? "
                f"WHERE id IN ({_placeholders(ids)})",
                (int(is_active), _now(), *ids),
            )
            conn.commit()

    def reorder_categories(self, requests: Sequence[ReorderRequest]) -> None:
        """Apply new sort positions in one transaction.

        Raises:
            NotFoundError: If any category does not exist. Nothing is changed.
        """
        requests = list(requests)
        if not requests:
            return

        with self._connection() as conn:
            self._require_all(conn, [r.category_id for r in requests])
            now = _now()
            conn.executemany(
                "UPDATE categories SET sort_order = ?, updated_at = ? WHERE id = ?",
                [(r.sort_order, now, r.category_id) for r in requests],
            )
            conn.commit()

    def _delete_one(
        self,
        conn: sqlite3.Connection,
        category_id: str,
        force: bool,
        cascade: bool,
        update_audios: bool,
    ) -> None:
        self._get(conn, category_id)

        cursor = conn.execute("SELECT id FROM categories WHERE parent_id = ?", (category_id,))
        children = [row[0] for row in cursor.fetchall()]
        cursor = conn.execute(
            "SELECT COUNT(*) FROM audios WHERE category_id = ? OR subcategory_id = ?",
            (category_id, category_id),
        )
        audio_count = cursor.fetchone()[0]

        if not force and (children or audio_count):
            raise DeleteRestrictedError(
                f"Category {category_id} has {len(children)} subcategories "
                f"and {audio_count} audio records"
            )

        ids = [category_id] + (children if cascade else [])
        marks = _placeholders(ids)

        if update_audios:
            conn.execute(
                f"UPDATE audios SET category_id = NULL, subcategory_id = NULL "
                f"WHERE category_id IN ({marks})",
                ids,
            )
            conn.execute(
                f"UPDATE audios SET subcategory_id = NULL WHERE subcategory_id IN ({marks})",
                ids,
            )

        conn.execute(f"DELETE FROM categories WHERE id IN ({marks})", ids)
        logger.debug(f"Deleted categories: {', '.join(ids)}")

    def _check_parent(
        self,
        conn: sqlite3.Connection,
        parent_id: Optional[str],
        category_id: Optional[str] = None,
    ) -> CategoryLevel:
        """Return the level implied by parent_id, or raise if it is invalid."""
        if parent_id is None:
            return CategoryLevel.PRIMARY
        if parent_id == category_id:
            raise InvalidParentError("A category cannot be its own parent")

        row = conn.execute(
            "SELECT parent_id FROM categories WHERE id = ?", (parent_id,)
        ).fetchone()
        if row is None:
            raise InvalidParentError(f"Parent category {parent_id} does not exist")
        if row[0] is not None:
            raise InvalidParentError(
                "Subcategories can only be created under a primary category"
            )
        return CategoryLevel.SECONDARY

    def _check_sibling_name(
        self,
        conn: sqlite3.Connection,
        name: str,
        parent_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> None:
        existing = self._sibling_with_name(conn, name, parent_id)
        if existing is not None and existing != exclude_id:
            raise ConflictError(f"A category named '{name}' already exists at this level")

    def _sibling_with_name(
        self, conn: sqlite3.Connection, name: str, parent_id: Optional[str]
    ) -> Optional[str]:
        cursor = conn.execute(
            "SELECT id, name FROM categories WHERE COALESCE(parent_id, '') = ?",
            (parent_id or "",),
        )
        key = name_key(name)
        for row_id, row_name in cursor.fetchall():
            if name_key(row_name) == key:
                return row_id
        return None

    def _next_sort_order(self, conn: sqlite3.Connection, parent_id: Optional[str]) -> int:
        row = conn.execute(
            "SELECT MAX(sort_order) FROM categories WHERE COALESCE(parent_id, '') = ?",
            (parent_id or "",),
        ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def _require_all(self, conn: sqlite3.Connection, category_ids: List[str]) -> None:
        cursor = conn.execute(
            f"SELECT id FROM categories WHERE id IN ({_placeholders(category_ids)})",
            category_ids,
        )
        found = {row[0] for row in cursor.fetchall()}
        missing = [i for i in category_ids if i not in found]
        if missing:
            raise NotFoundError(f"Category {missing[0]} not found")

    def _get(self, conn: sqlite3.Connection, category_id: str) -> Category:
        category = self._fetch(conn, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    def _fetch(self, conn: sqlite3.Connection, category_id: str) -> Optional[Category]:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
        if row is None:
            return None
        counts = self._audio_counts(conn, category_id)
        return self._row_to_category(row, counts.get(category_id, 0))

    def _audio_counts(
        self, conn: sqlite3.Connection, category_id: Optional[str] = None
    ) -> Dict[str, int]:
        """Count audio records per category.

        An audio record counts toward every category it references, so a
        primary includes the audio filed under its subcategories with it.
        This is the same attribution the delete gate uses.
        """
        query = f"SELECT category_ref, COUNT(*) FROM ({_AUDIO_REFS})"
        params: tuple = ()
        if category_id is not None:
            query += " WHERE category_ref = ?"
            params = (category_id,)
        query += " GROUP BY category_ref"
        return dict(conn.execute(query, params).fetchall())

    @staticmethod
    def _row_to_category(row, audio_count: int) -> Category:
        return Category(
            id=row[0],
            name=row[1],
            description=row[2],
            color=row[3],
            icon=row[4],
            parent_id=row[5],
            level=CategoryLevel(row[6]),
            sort_order=row[7],
            is_active=bool(row[8]),
            audio_count=audio_count,
            created_at=datetime.fromisoformat(row[9]) if row[9] else None,
            updated_at=datetime.fromisoformat(row[10]) if row[10] else None,
        )
