"""Built-in category set used when the store cannot be read.

A coordinator falls back to these so browsing surfaces are never empty. The
coordinator flags the snapshot as degraded while they are in use.
"""

from typing import List

from models.category import Category, CategoryLevel

_DEFAULTS = [
    ("cardiology", "Cardiology", "Cardiovascular disease", "#ef4444", "❤️"),
    ("neurology", "Neurology", "Nervous system disorders", "#8b5cf6", "🧠"),
    ("internal-medicine", "Internal Medicine", "Internal medicine topics", "#10b981", "🏥"),
    ("surgery", "Surgery", "Surgical procedures", "#f59e0b", "🔬"),
    ("pediatrics", "Pediatrics", "Childhood diseases", "#3b82f6", "👶"),
    ("other", "Other", "Other medical content", "#6b7280", "📚"),
]


def default_categories() -> List[Category]:
    """Return a fresh copy of the built-in primary categories."""
    return [
        Category(
            id=category_id,
            name=name,
            description=description,
            color=color,
            icon=icon,
            parent_id=None,
            level=CategoryLevel.PRIMARY,
            sort_order=index,
            is_active=True,
        )
        for index, (category_id, name, description, color, icon) in enumerate(_DEFAULTS)
    ]
