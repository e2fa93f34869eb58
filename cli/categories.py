#!/usr/bin/env python3

import sys
import argparse
from pathlib import Path

from pydantic import ValidationError as SeedFileError

from config import get_seed_file
from hierarchy.stats import popular_categories
from hierarchy.transfer import export_categories, import_seed, load_seed_file
from hierarchy.tree import sort_key
from logger import get_logger
from models.requests import (
    CreateCategoryRequest,
    DeleteOptions,
    ReorderRequest,
    UpdateCategoryRequest,
)
from models.results import ErrorCode, IssueSeverity
from models.views import CategoryFilter

logger = get_logger()


def _load(services, allow_degraded=False):
    """Create a coordinator and fetch the category snapshot.

    Exits unless the fetch succeeded, or allow_degraded is set and the
    built-in default categories were loaded instead.
    """
    coordinator = services.create_coordinator(fetch=False)
    result = coordinator.fetch_categories()
    if result.success:
        return coordinator

    if allow_degraded and coordinator.degraded:
        logger.warning(f"Could not read categories: {result.error.message}")
        logger.warning("Showing built-in default categories instead.")
        return coordinator

    logger.error(f"Could not read categories: {result.error.message}")
    sys.exit(1)


def _fail(result):
    """Log a failed operation result and exit."""
    logger.error(f"Error: {result.error.message}")
    for field_error in result.error.field_errors[1:]:
        logger.error(f"  {field_error.field or 'category'}: {field_error.message}")
    sys.exit(1)


def _describe(category):
    line = f"{category.name} ({category.id}, order {category.sort_order}, audio {category.audio_count})"
    return line if category.is_active else f"{line} [inactive]"


def cmd_list(args, services):
    """List categories, flat or as a tree."""
    coordinator = _load(services, allow_degraded=True)

    if args.tree:
        tree = coordinator.category_tree
        if not tree:
            logger.info("No categories found.")
            return

        logger.info("\nCategory tree:")
        logger.info("=" * 80)
        for node in tree:
            if not (args.include_inactive or node.category.is_active):
                continue
            logger.info(_describe(node.category))
            for child in node.children:
                if args.include_inactive or child.is_active:
                    logger.info(f"  └─ {_describe(child)}")
        return

    if args.orphans:
        categories = coordinator.find_orphans()
    elif args.search:
        categories = coordinator.search_categories(args.search)
    else:
        categories = coordinator.filter_categories(
            CategoryFilter(has_audio=False if args.empty else None)
        )
    categories = [c for c in categories if args.include_inactive or c.is_active]
    if not categories:
        logger.info("No categories found.")
        return

    logger.info("\nCategories:")
    logger.info("=" * 80)
    for category in sorted(categories, key=lambda c: (c.level, sort_key(c))):
        logger.info(f"ID: {category.id}")
        logger.info(f"Name: {category.name}")
        if category.description:
            logger.info(f"Description: {category.description}")
        if category.parent_id:
            parent = coordinator.get_category_by_id(category.parent_id)
            parent_name = parent.name if parent else "Unknown (orphaned)"
            logger.info(f"Parent: {parent_name} (ID: {category.parent_id})")
        logger.info(f"Active: {'yes' if category.is_active else 'no'}")
        logger.info("-" * 80)

    logger.info(f"\nTotal categories: {len(categories)}")


def cmd_path(args, services):
    """Resolve a category/subcategory selection into a breadcrumb."""
    coordinator = _load(services, allow_degraded=True)
    validation = coordinator.validate_selection(args.category_id, args.subcategory_id)
    if not validation.is_valid:
        for error in validation.errors:
            logger.error(f"{error.field or 'selection'}: {error.message}")
        sys.exit(1)

    path = coordinator.get_category_path(args.category_id, args.subcategory_id)
    logger.info(path.as_string())


def cmd_create(args, services):
    """Create a new category."""
    coordinator = _load(services)
    request = CreateCategoryRequest(
        name=args.name,
        description=args.description,
        parent_id=args.parent_id,
        color=args.color,
        icon=args.icon,
        sort_order=args.sort_order,
    )

    validation = coordinator.validate_category(request)
    for warning in validation.warnings:
        logger.warning(warning)

    result = coordinator.create_category(request)
    if not result.success:
        _fail(result)

    category = result.data
    logger.info(f"\n✓ Category created successfully with ID: {category.id}")
    logger.info(f"  Name: {category.name}")
    if category.parent_id:
        logger.info(f"  Parent ID: {category.parent_id}")


def cmd_update(args, services):
    """Update fields of an existing category."""
    coordinator = _load(services)
    request = UpdateCategoryRequest(
        name=args.name,
        description=args.description,
        parent_id=args.parent_id,
        color=args.color,
        icon=args.icon,
        sort_order=args.sort_order,
    )
    if not request.changed_fields():
        logger.error("Nothing to update. Pass at least one field option.")
        sys.exit(1)

    result = coordinator.update_category(args.category_id, request)
    if not result.success:
        _fail(result)

    logger.info(f"✓ Category '{result.data.name}' updated successfully.")


def cmd_delete(args, services):
    """Delete one or more categories by ID."""
    coordinator = _load(services)
    options = DeleteOptions(
        force=args.force,
        cascade=args.cascade,
        update_audios=not args.keep_audio_links,
    )

    impact = coordinator.analyze_delete(args.category_ids)
    if not impact.can_safe_delete and args.force and not args.yes:
        logger.info("\nThis delete is not safe:")
        for line in impact.describe(options):
            logger.info(f"  - {line}")
        confirm = input("\nAre you sure you want to continue? (yes/no): ").strip().lower()
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    result = coordinator.delete_categories(args.category_ids, options)
    if not result.success:
        if result.error.code == ErrorCode.DELETE_RESTRICTED:
            refused = result.error.details.get("impact", impact)
            logger.error("Refusing to delete:")
            for line in refused.describe(options) or [result.error.message]:
                logger.error(f"  - {line}")
            logger.error("Pass --force to delete anyway, and --cascade to remove subcategories too.")
            sys.exit(1)
        for failure in result.error.details.get("failed", []):
            logger.error(f"  {failure.category_id}: {failure.error}")
        _fail(result)

    logger.info(f"✓ Deleted {len(result.data)} category(ies).")


def _parse_reorder(value):
    category_id, sep, order = value.partition("=")
    if not sep or not category_id:
        raise argparse.ArgumentTypeError(f"expected ID=ORDER, got '{value}'")
    try:
        return ReorderRequest(category_id=category_id, sort_order=int(order))
    except ValueError:
        raise argparse.ArgumentTypeError(f"sort order must be a number, got '{order}'") from None


def cmd_reorder(args, services):
    """Set the sort order of one or more categories."""
    coordinator = _load(services)
    result = coordinator.reorder_categories(args.orders)
    if not result.success:
        _fail(result)
    logger.info(f"✓ Reordered {len(args.orders)} category(ies).")


def cmd_activate(args, services):
    """Activate categories."""
    _set_active(args, services, True)


def cmd_deactivate(args, services):
    """Deactivate categories."""
    _set_active(args, services, False)


def _set_active(args, services, is_active):
    coordinator = _load(services)
    result = coordinator.set_categories_active(args.category_ids, is_active)
    if not result.success:
        _fail(result)
    logger.info(f"✓ {result.message}")


def cmd_stats(args, services):
    """Show category statistics."""
    coordinator = _load(services, allow_degraded=True)
    stats = coordinator.get_category_stats()

    logger.info("\nCategory Statistics:")
    logger.info("=" * 80)
    logger.info(f"Total categories: {stats.total_categories}")
    logger.info(f"Primary: {stats.level1_count}")
    logger.info(f"Secondary: {stats.level2_count}")
    logger.info(f"Active: {stats.active_count}")
    logger.info(f"Inactive: {stats.inactive_count}")
    logger.info(f"With audio: {stats.categories_with_audio}")
    logger.info(f"Empty: {stats.empty_categories_count}")

    popular = popular_categories(coordinator.categories, limit=args.top)
    if popular:
        logger.info("\nMost used:")
        for category in popular:
            logger.info(f"  {category.name:<40} {category.audio_count:>6} audio")


def cmd_validate(args, services):
    """Check the whole hierarchy for structural problems."""
    coordinator = _load(services)
    report = coordinator.validate_hierarchy()

    if not report.issues:
        logger.info(f"✓ Hierarchy is valid ({report.total_categories} categories checked).")
        return

    for issue in report.issues:
        suffix = " (auto-fixable)" if issue.auto_fixable else ""
        line = f"[{issue.code.value}] {issue.category_name} ({issue.category_id}): {issue.message}{suffix}"
        if issue.severity == IssueSeverity.ERROR:
            logger.error(line)
        else:
            logger.warning(line)

    logger.info(f"\nErrors: {len(report.errors)}")
    logger.info(f"Warnings: {len(report.warnings)}")
    if not report.is_valid:
        sys.exit(1)


def cmd_seed(args, services):
    """Seed categories from a JSON file."""
    seed_file = Path(args.file) if args.file else get_seed_file()

    if not seed_file.exists():
        logger.error(f"Seed file not found: {seed_file}")
        sys.exit(1)

    try:
        seeds = load_seed_file(seed_file)
    except SeedFileError as e:
        logger.error(f"Error parsing seed file: {e}")
        sys.exit(1)

    coordinator = _load(services)

    logger.info(f"\nSeeding categories from {seed_file}")
    logger.info("=" * 80)
    result = import_seed(coordinator, seeds)
    for error in result.errors:
        logger.error(f"  {error}")

    logger.info("=" * 80)
    logger.info("\nSeeding complete!")
    logger.info(f"Created: {result.imported}")
    logger.info(f"Skipped: {result.skipped}")
    logger.info(f"Total: {result.total}")
    if result.errors:
        sys.exit(1)


def cmd_export(args, services):
    """Export all categories as JSON."""
    coordinator = _load(services)
    document = export_categories(coordinator.categories)
    payload = document.model_dump_json(indent=2)

    if args.output:
        Path(args.output).write_text(payload)
        logger.info(f"✓ Exported {document.metadata.total_categories} categories to {args.output}")
    else:
        print(payload)


def _add_field_options(parser, name_flag=False):
    if name_flag:
        parser.add_argument("--name", help="New category name")
    parser.add_argument("--description", help="Category description")
    parser.add_argument(
        "--parent", dest="parent_id", help="Parent category ID (makes it a subcategory)"
    )
    parser.add_argument("--color", help="Display color, e.g. #ef4444")
    parser.add_argument("--icon", help="Display icon")
    parser.add_argument("--sort-order", type=int, help="Position among siblings")


def setup_parser(subparsers):
    """Setup categories subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "categories",
        help="Manage categories",
        description="Create, list, reorder and delete audio categories",
    )

    # Add subcommands for categories
    categories_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available category commands",
        dest="subcommand",
        required=True,
    )

    # categories list
    list_parser = categories_subparsers.add_parser("list", help="List categories")
    list_parser.add_argument("--tree", action="store_true", help="Show as a tree")
    list_parser.add_argument(
        "--include-inactive", action="store_true", help="Include inactive categories"
    )
    list_parser.add_argument("--search", metavar="TEXT", help="Match name or description")
    list_parser.add_argument(
        "--empty", action="store_true", help="Only categories without audio"
    )
    list_parser.add_argument(
        "--orphans", action="store_true", help="Only subcategories whose parent is missing"
    )
    list_parser.set_defaults(func=cmd_list)

    # categories path
    path_parser = categories_subparsers.add_parser(
        "path", help="Show the breadcrumb for a category selection"
    )
    path_parser.add_argument("category_id", help="Primary category ID")
    path_parser.add_argument("subcategory_id", nargs="?", help="Subcategory ID")
    path_parser.set_defaults(func=cmd_path)

    # categories create
    create_parser = categories_subparsers.add_parser("create", help="Create a category")
    create_parser.add_argument("name", help="Category name")
    _add_field_options(create_parser)
    create_parser.set_defaults(func=cmd_create)

    # categories update
    update_parser = categories_subparsers.add_parser("update", help="Update a category")
    update_parser.add_argument("category_id", help="ID of the category to update")
    _add_field_options(update_parser, name_flag=True)
    update_parser.set_defaults(func=cmd_update)

    # categories delete
    delete_parser = categories_subparsers.add_parser(
        "delete", help="Delete categories by ID"
    )
    delete_parser.add_argument(
        "category_ids", nargs="+", help="IDs of the categories to delete"
    )
    delete_parser.add_argument(
        "--force", action="store_true", help="Delete even if subcategories or audio are attached"
    )
    delete_parser.add_argument(
        "--cascade", action="store_true", help="Also delete subcategories"
    )
    delete_parser.add_argument(
        "--keep-audio-links",
        action="store_true",
        help="Leave category references on audio records untouched",
    )
    delete_parser.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )
    delete_parser.set_defaults(func=cmd_delete)

    # categories reorder
    reorder_parser = categories_subparsers.add_parser(
        "reorder", help="Set sort order of categories"
    )
    reorder_parser.add_argument(
        "orders", nargs="+", type=_parse_reorder, metavar="ID=ORDER"
    )
    reorder_parser.set_defaults(func=cmd_reorder)

    # categories activate / deactivate
    activate_parser = categories_subparsers.add_parser(
        "activate", help="Activate categories"
    )
    activate_parser.add_argument("category_ids", nargs="+")
    activate_parser.set_defaults(func=cmd_activate)

    deactivate_parser = categories_subparsers.add_parser(
        "deactivate", help="Deactivate categories"
    )
    deactivate_parser.add_argument("category_ids", nargs="+")
    deactivate_parser.set_defaults(func=cmd_deactivate)

    # categories stats
    stats_parser = categories_subparsers.add_parser("stats", help="Show statistics")
    stats_parser.add_argument(
        "--top", type=int, default=5, help="Number of most used categories to list"
    )
    stats_parser.set_defaults(func=cmd_stats)

    # categories validate
    validate_parser = categories_subparsers.add_parser(
        "validate", help="Check the hierarchy for problems"
    )
    validate_parser.set_defaults(func=cmd_validate)

    # categories seed
    seed_parser = categories_subparsers.add_parser(
        "seed", help="Seed categories from JSON file"
    )
    seed_parser.add_argument(
        "--file", help="Seed or export file (defaults to the bundled medical tree)"
    )
    seed_parser.set_defaults(func=cmd_seed)

    # categories export
    export_parser = categories_subparsers.add_parser(
        "export", help="Export categories as JSON"
    )
    export_parser.add_argument("--output", help="File to write (defaults to stdout)")
    export_parser.set_defaults(func=cmd_export)
