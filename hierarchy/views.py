"""Read-only views derived from the flat collection: picker options,
breadcrumb paths, filtering and search."""

from typing import Iterable, List, Optional, Sequence

from hierarchy.tree import sort_key
from models.category import Category, CategoryLevel, TreeNode
from models.views import CategoryFilter, CategoryOption, CategoryPath


def _to_option(category: Category) -> CategoryOption:
    return CategoryOption(
        label=category.name,
        value=category.id,
        level=CategoryLevel.for_parent(category.parent_id),
        title=category.description,
        parent_id=category.parent_id,
        disabled=not category.is_active,
    )


def get_category_options(
    categories: Iterable[Category],
    level: Optional[CategoryLevel] = None,
    include_inactive: bool = False,
) -> List[CategoryOption]:
    """Return picker options, optionally restricted to one level.

    Args:
        categories: The flat collection.
        level: Restrict to PRIMARY or SECONDARY. None returns both.
        include_inactive: Include inactive categories (rendered disabled).

    Returns:
        Options ordered by (sort_order, id).
    """
    selected = [
        category
        for category in categories
        if (level is None or CategoryLevel.for_parent(category.parent_id) == level)
        and (include_inactive or category.is_active)
    ]
    return [_to_option(category) for category in sorted(selected, key=sort_key)]


def get_subcategory_options(
    categories: Iterable[Category], parent_id: str, include_inactive: bool = False
) -> List[CategoryOption]:
    """Return picker options for the children of parent_id."""
    selected = [
        category
        for category in categories
        if category.parent_id == parent_id and (include_inactive or category.is_active)
    ]
    return [_to_option(category) for category in sorted(selected, key=sort_key)]


def hierarchical_options(
    tree: Iterable[TreeNode], include_inactive: bool = False
) -> List[CategoryOption]:
    """Return nested picker options mirroring the tree."""
    options = []
    for node in tree:
        if not (include_inactive or node.category.is_active):
            continue
        option = _to_option(node.category)
        option.children = [
            _to_option(child)
            for child in node.children
            if include_inactive or child.is_active
        ]
        options.append(option)
    return options


def get_category_path(
    categories: Iterable[Category],
    category_id: Optional[str] = None,
    subcategory_id: Optional[str] = None,
) -> CategoryPath:
    """Resolve a category/subcategory pair into a breadcrumb.

    When the subcategory resolves, its own parent is used as the category,
    whatever category_id says. Unknown ids resolve to nothing.
    """
    by_id = {category.id: category for category in categories}
    category = None
    subcategory = by_id.get(subcategory_id) if subcategory_id else None

    if subcategory is not None and subcategory.parent_id:
        category = by_id.get(subcategory.parent_id)
    elif category_id:
        category = by_id.get(category_id)

    breadcrumb = []
    if category is not None:
        breadcrumb.append(category.name)
    if subcategory is not None:
        breadcrumb.append(subcategory.name)

    return CategoryPath(category=category, subcategory=subcategory, breadcrumb=breadcrumb)


def filter_categories(
    categories: Iterable[Category], criteria: CategoryFilter
) -> List[Category]:
    """Return the categories matching every criterion that is set.

    category_id matches the category itself and its children.
    """
    result = []
    for category in categories:
        if criteria.category_id and criteria.category_id not in (
            category.id,
            category.parent_id,
        ):
            continue
        if criteria.subcategory_id and category.id != criteria.subcategory_id:
            continue
        if (
            criteria.level is not None
            and CategoryLevel.for_parent(category.parent_id) != criteria.level
        ):
            continue
        if criteria.is_active is not None and category.is_active != criteria.is_active:
            continue
        if criteria.has_audio is not None and (category.audio_count > 0) != criteria.has_audio:
            continue
        result.append(category)
    return result


def search_categories(
    categories: Iterable[Category],
    term: str,
    fields: Sequence[str] = ("name", "description"),
) -> List[Category]:
    """Case-insensitive substring search over the given text fields."""
    categories = list(categories)
    needle = term.strip().casefold()
    if not needle:
        return categories

    matches = []
    for category in categories:
        for field_name in fields:
            value = getattr(category, field_name, None)
            if isinstance(value, str) and needle in value.casefold():
                matches.append(category)
                break
    return matches
