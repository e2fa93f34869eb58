"""Audio service for database operations.

Audio records are owned by the audio subsystem. This service covers the
part the category engine relies on: filing audio under categories and
counting it.
"""

from typing import List, Optional
from models.audio import Audio


class AudioService:
    """Service for managing audio records."""

    def __init__(self, db_manager):
        """Initialize the audio service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def create(
        self,
        title: str,
        category_id: Optional[str] = None,
        subcategory_id: Optional[str] = None,
    ) -> Audio:
        """Create a new audio record.

        Args:
            title: Audio title.
            category_id: Primary category the audio is filed under.
            subcategory_id: Optional secondary category.

        Returns:
            The created Audio object with id populated.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO audios (title, category_id, subcategory_id) VALUES (?, ?, ?)",
                (title, category_id, subcategory_id),
            )
            conn.commit()

            return Audio(
                id=cursor.lastrowid,
                title=title,
                category_id=category_id,
                subcategory_id=subcategory_id,
            )

    def find(self, audio_id: int) -> Optional[Audio]:
        """Get a single audio record by ID.

        Args:
            audio_id: The audio ID to find.

        Returns:
            Audio object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "SELECT id, title, category_id, subcategory_id FROM audios WHERE id = ?",
                (audio_id,),
            )
            row = cursor.fetchone()

            if row:
                return Audio(
                    id=row[0], title=row[1], category_id=row[2], subcategory_id=row[3]
                )
            return None

    def find_by_category(self, category_id: str) -> List[Audio]:
        """Get audio filed under a category, at either level.

        Args:
            category_id: A primary or secondary category ID.

        Returns:
            List of Audio objects, ordered by id.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                SELECT id, title, category_id, subcategory_id
                FROM audios
                WHERE category_id = ? OR subcategory_id = ?
                ORDER BY id
                """,
                (category_id, category_id),
            )
            rows = cursor.fetchall()

            return [
                Audio(id=row[0], title=row[1], category_id=row[2], subcategory_id=row[3])
                for row in rows
            ]

    def count_by_category(self) -> dict:
        """Count audio records per category.

        Returns:
            Dict mapping category ID to count. An audio record counts toward
            both its category and its subcategory.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                SELECT category_ref, COUNT(*) FROM (
                    SELECT category_id AS category_ref, id FROM audios
                    WHERE category_id IS NOT NULL
                    UNION
                    SELECT subcategory_id AS category_ref, id FROM audios
                    WHERE subcategory_id IS NOT NULL
                )
                GROUP BY category_ref
                """
            )
            return dict(cursor.fetchall())
