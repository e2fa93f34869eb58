"""Aggregate statistics over a category collection."""

from typing import Iterable, List

from models.category import Category
from models.views import CategoryStats


def compute_stats(categories: Iterable[Category]) -> CategoryStats:
    """Count categories by level, status and audio usage in a single pass.

    Args:
        categories: The full flat collection, including orphans.

    Returns:
        CategoryStats. Empty categories are counted over all categories,
        not just leaves.
    """
    stats = CategoryStats()
    for category in categories:
        stats.total_categories += 1
        if category.parent_id is None:
            stats.level1_count += 1
        else:
            stats.level2_count += 1
        if category.is_active:
            stats.active_count += 1
        if category.audio_count > 0:
            stats.categories_with_audio += 1

    stats.inactive_count = stats.total_categories - stats.active_count
    stats.empty_categories_count = (
        stats.total_categories - stats.categories_with_audio
    )
    return stats


def popular_categories(categories: Iterable[Category], limit: int = 10) -> List[Category]:
    """Return active categories with audio, most audio first."""
    ranked = sorted(
        (c for c in categories if c.is_active and c.audio_count > 0),
        key=lambda c: (-c.audio_count, c.id),
    )
    return ranked[:limit]


def empty_categories(categories: Iterable[Category]) -> List[Category]:
    """Return categories with no audio filed under them."""
    return [c for c in categories if c.audio_count == 0]
