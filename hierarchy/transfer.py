"""Export, import and seeding of category trees.

Seed files are JSON arrays of primary categories with nested children.
Export documents are JSON objects carrying a flat category list plus
metadata, and can be fed back in as a seed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from hierarchy.stats import compute_stats
from hierarchy.tree import build_tree, flatten_tree
from hierarchy.validation import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH
from logger import get_logger
from models.category import Category, CategoryLevel
from models.requests import CreateCategoryRequest

logger = get_logger("transfer")

EXPORT_VERSION = "1.0"


class SeedChild(BaseModel):
    """A secondary category in a seed file."""

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    color: Optional[str] = None
    icon: Optional[str] = None


class SeedCategory(SeedChild):
    """A primary category in a seed file, with its children."""

    children: List[SeedChild] = Field(default_factory=list)


class ExportedCategory(BaseModel):
    """One category as written to an export document."""

    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    level: int
    sort_order: int = 0
    is_active: bool = True
    audio_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExportMetadata(BaseModel):
    total_categories: int
    level1_count: int
    level2_count: int
    active_count: int


class ExportDocument(BaseModel):
    """Full snapshot of the category collection."""

    version: str = EXPORT_VERSION
    exported_at: datetime
    metadata: ExportMetadata
    categories: List[ExportedCategory]

    def to_seeds(self) -> List[SeedCategory]:
        """Rebuild the nested seed form, in display order.

        Orphaned subcategories are left out since they have no parent to
        be created under.
        """
        categories = [
            Category(
                id=c.id,
                name=c.name,
                description=c.description,
                color=c.color,
                icon=c.icon,
                parent_id=c.parent_id,
                level=CategoryLevel(c.level),
                sort_order=c.sort_order,
                is_active=c.is_active,
            )
            for c in self.categories
        ]
        return [
            SeedCategory(
                name=node.category.name,
                description=node.category.description,
                color=node.category.color,
                icon=node.category.icon,
                children=[
                    SeedChild(
                        name=child.name,
                        description=child.description,
                        color=child.color,
                        icon=child.icon,
                    )
                    for child in node.children
                ],
            )
            for node in build_tree(categories)
        ]


_SEED_FILE = TypeAdapter(Union[List[SeedCategory], ExportDocument])


@dataclass
class ImportResult:
    """Outcome of importing a seed into the store."""

    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.skipped


def export_categories(categories: Iterable[Category]) -> ExportDocument:
    """Build an export document from the flat collection.

    Args:
        categories: The categories to export, active and inactive.
            Written in display order, with categories the tree leaves
            out (orphans) at the end.

    Returns:
        ExportDocument ready for model_dump_json().
    """
    categories = list(categories)
    stats = compute_stats(categories)
    ordered = flatten_tree(build_tree(categories))
    placed = {c.id for c in ordered}
    ordered += [c for c in categories if c.id not in placed]
    return ExportDocument(
        exported_at=datetime.now(timezone.utc),
        metadata=ExportMetadata(
            total_categories=stats.total_categories,
            level1_count=stats.level1_count,
            level2_count=stats.level2_count,
            active_count=stats.active_count,
        ),
        categories=[ExportedCategory(**c.to_dict()) for c in ordered],
    )


def load_seed_file(path: Path) -> List[SeedCategory]:
    """Parse a seed file or an export document.

    Args:
        path: JSON file holding either a list of seed categories or an
              export document.

    Returns:
        List of SeedCategory objects in file order.

    Raises:
        pydantic.ValidationError: If the file is not valid JSON of either shape.
    """
    parsed = _SEED_FILE.validate_json(Path(path).read_text())
    if isinstance(parsed, ExportDocument):
        logger.debug(f"Loaded export document version {parsed.version} from {path}")
        return parsed.to_seeds()
    return parsed


def import_seed(coordinator, seeds: Iterable[SeedCategory]) -> ImportResult:
    """Create seed categories that do not exist yet.

    Primaries are matched by name among the primaries and children by name
    under their parent. Existing categories are skipped, not updated.
    Every create goes through the coordinator, so it is validated.

    Args:
        coordinator: A CategoryCoordinator with a fetched snapshot.
        seeds: Primaries with nested children.

    Returns:
        ImportResult with counts and one message per failed create.
    """
    result = ImportResult()
    if coordinator.degraded:
        result.errors.append("Category store is unavailable; nothing was imported")
        return result

    for seed in seeds:
        parent = _import_one(coordinator, seed, None, result)
        if parent is None:
            continue
        for child in seed.children:
            _import_one(coordinator, child, parent.id, result)

    logger.info(
        f"Seed import finished: {result.imported} imported, "
        f"{result.skipped} skipped, {len(result.errors)} failed"
    )
    return result


def _import_one(
    coordinator, seed: SeedChild, parent_id: Optional[str], result: ImportResult
) -> Optional[Category]:
    existing = coordinator.get_category_by_name(seed.name, parent_id)
    if existing is not None:
        logger.debug(f"Skipped '{seed.name}' (already exists)")
        result.skipped += 1
        return existing

    outcome = coordinator.create_category(
        CreateCategoryRequest(
            name=seed.name,
            description=seed.description,
            parent_id=parent_id,
            color=seed.color,
            icon=seed.icon,
        )
    )
    if not outcome.success:
        logger.error(f"Error creating category '{seed.name}': {outcome.error.message}")
        result.errors.append(f"{seed.name}: {outcome.error.message}")
        return None

    result.imported += 1
    return outcome.data
