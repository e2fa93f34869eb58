"""Assemble a flat category collection into the two-level tree."""

from typing import Dict, Iterable, List, Tuple

from models.category import Category, TreeNode


def sort_key(category: Category) -> Tuple[int, str]:
    """Ordering key shared by every sorted view: sort_order, then id."""
    return (category.sort_order, category.id)


def build_tree(categories: Iterable[Category]) -> List[TreeNode]:
    """Build the ordered tree of primaries and their secondary children.

    Input order is irrelevant; output is ordered by (sort_order, id) at both
    levels. Inactive categories are kept. A secondary whose parent is absent
    from the input, or whose parent is itself a secondary, is dropped.

    Args:
        categories: The full flat collection.

    Returns:
        List of TreeNode objects, one per primary category.
    """
    primaries: Dict[str, TreeNode] = {}
    secondaries: List[Category] = []

    for category in categories:
        if category.parent_id is None:
            primaries[category.id] = TreeNode(category=category)
        else:
            secondaries.append(category)

    for child in secondaries:
        node = primaries.get(child.parent_id)
        if node is not None:
            node.children.append(child)

    tree = sorted(primaries.values(), key=lambda node: sort_key(node.category))
    for node in tree:
        node.children.sort(key=sort_key)
    return tree


def flatten_tree(tree: Iterable[TreeNode]) -> List[Category]:
    """Return primaries followed by their children, in tree order."""
    result: List[Category] = []
    for node in tree:
        result.append(node.category)
        result.extend(node.children)
    return result


def find_orphans(categories: Iterable[Category]) -> List[Category]:
    """Return secondaries whose parent is missing from the collection."""
    categories = list(categories)
    known_ids = {category.id for category in categories}
    return [
        category
        for category in categories
        if category.parent_id is not None and category.parent_id not in known_ids
    ]

