#!/usr/bin/env python3

from db.schema import apply_migrations, list_migrations, pending_migrations, schema_version
from logger import get_logger

logger = get_logger()


def cmd_status(args, db_manager):
    """Show the category schema version and each migration's state."""
    if not db_manager.get_db_path().exists():
        logger.info(
            "Category database does not exist. Run 'python -m cli migrate apply' to create it."
        )
        return

    migrations = list_migrations(db_manager.get_migrations_dir())
    if not migrations:
        logger.info("No migrations found.")
        return

    with db_manager.connect() as conn:
        current = schema_version(conn)

    latest = migrations[-1].version
    logger.info(f"Category schema version: {current} (latest: {latest})")
    logger.info("=" * 40)
    for migration in migrations:
        state = "applied" if migration.version <= current else "pending"
        logger.info(f"{migration.version:03d} {migration.name:<28} {state}")

    if current > latest:
        logger.warning(
            f"Database schema {current} is newer than this release knows about ({latest})."
        )
    elif current == latest:
        logger.info("\nSchema is up to date.")
    else:
        pending = sum(1 for m in migrations if m.version > current)
        logger.info(f"\n{pending} migration(s) pending.")


def cmd_apply(args, db_manager):
    """Bring the category schema up to date (or up to --to VERSION)."""
    target = getattr(args, "to", None)
    migrations_dir = db_manager.get_migrations_dir()

    with db_manager.connect() as conn:
        pending = [
            m
            for m in pending_migrations(conn, migrations_dir)
            if target is None or m.version <= target
        ]
        if not pending:
            logger.info(f"Schema is already at version {schema_version(conn)}.")
            return

        if getattr(args, "dry_run", False):
            logger.info(f"Would apply {len(pending)} migration(s):")
            for migration in pending:
                logger.info(f"  {migration.filename}")
            return

        applied = apply_migrations(conn, migrations_dir, target=target)
        logger.info(
            f"Applied {len(applied)} migration(s); schema is now at version "
            f"{schema_version(conn)}."
        )


def setup_parser(subparsers):
    """Setup migrate subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "migrate",
        help="Category database schema",
        description="Create or upgrade the category database schema",
    )

    migrate_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available migration commands",
        dest="subcommand",
        required=True,
    )

    # migrate status
    status_parser = migrate_subparsers.add_parser(
        "status", help="Show the schema version and pending migrations"
    )
    status_parser.set_defaults(func=cmd_status)

    # migrate apply
    apply_parser = migrate_subparsers.add_parser(
        "apply", help="Apply pending migrations"
    )
    apply_parser.add_argument(
        "--to", type=int, metavar="VERSION", help="Stop after this schema version"
    )
    apply_parser.add_argument(
        "--dry-run", action="store_true", help="List pending migrations without applying them"
    )
    apply_parser.set_defaults(func=cmd_apply)
