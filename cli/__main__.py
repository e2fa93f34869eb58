#!/usr/bin/env python3
"""
Auscult CLI - Command-line interface for managing the audio category hierarchy.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    categories   Manage the two-level category tree
    migrate      Database migrations

Examples:
    python -m cli migrate apply
    python -m cli categories seed
    python -m cli categories list --tree
    python -m cli categories list --search murmur
    python -m cli categories path category-1a2b3c4d5e6f subcategory-0f9e8d7c6b5a
    python -m cli categories create "Heart Murmurs" --parent category-1a2b3c4d5e6f
    python -m cli categories delete category-1a2b3c4d5e6f --force --cascade
    python -m cli categories validate
"""

import sys
import argparse
from cli import migrate, categories
from config import load_config
from services.base import Services
from db.manager import DatabaseManager
from logger import setup_logging


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Auscult - Category management for medical audio content",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Create subparsers for each command
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # Register each command's subparser
    categories.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    # Parse arguments and execute
    args = parser.parse_args()

    # Call the appropriate handler function
    if hasattr(args, "func"):
        try:
            # Load configuration
            config = load_config()

            # Set up logging
            setup_logging(config)

            if args.command == "categories":
                # Create services container for dependency injection
                services = Services(config)
                args.func(args, services)
            elif args.command == "migrate":
                # Migrate commands need db_manager for raw database operations
                db_manager = DatabaseManager(config)
                args.func(args, db_manager)
            else:
                args.func(args)
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
