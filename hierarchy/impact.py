"""Delete-impact analysis for one or more categories."""

from typing import Dict, Iterable, List

from models.category import Category
from models.views import DeleteImpact


def analyze_delete(
    targets: Iterable[Category], all_categories: Iterable[Category]
) -> DeleteImpact:
    """Work out what deleting targets would affect.

    A child of any target is affected unless it is itself a target (it is
    then deleted explicitly rather than orphaned). Children are counted once
    even when several targets are selected. Audio is summed over the targets'
    own audio_count only; children's audio is not included.

    Args:
        targets: Categories the caller wants to delete.
        all_categories: The full current flat collection.

    Returns:
        DeleteImpact describing children and audio affected, and whether the
        delete is safe.
    """
    targets = list(targets)
    target_ids = {target.id for target in targets}

    affected: Dict[str, Category] = {}
    for category in all_categories:
        if category.parent_id in target_ids and category.id not in target_ids:
            affected.setdefault(category.id, category)

    audio_count = 0
    seen = set()
    for target in targets:
        if target.id in seen:
            continue
        seen.add(target.id)
        audio_count += max(target.audio_count, 0)

    affected_categories: List[Category] = list(affected.values())
    has_children = bool(affected_categories)
    has_audios = audio_count > 0

    return DeleteImpact(
        has_children=has_children,
        children_count=len(affected_categories),
        has_audios=has_audios,
        audio_count=audio_count,
        affected_categories=affected_categories,
        can_safe_delete=not has_children and not has_audios,
    )
