#!/usr/bin/env python3
"""Reset script for Auscult.

This script will:
1. Delete the data directory (including database and logs)
2. Run migrations to create a fresh database
3. Optionally seed the bundled category tree
"""

import argparse
import shutil
import sys

from config import load_config, get_seed_file
from db.manager import DatabaseManager
from hierarchy.coordinator import CategoryCoordinator
from hierarchy.transfer import import_seed, load_seed_file
from services.categories import CategoryService


def reset(seed: bool = False):
    """Reset the application state.

    Args:
        seed: Load the bundled category tree into the fresh database.
    """
    print("Auscult Reset Script")
    print("=" * 50)

    # Load configuration
    config = load_config()

    # Check if reset is enabled
    if not config.enable_reset:
        print("\nReset is disabled in configuration (enable_reset=false).")
        print("To enable reset, set enable_reset=true in ~/.config/auscult.toml")
        sys.exit(1)

    # Show what will be deleted
    print(f"\nData directory: {config.base_dir}")
    print(f"Database: {config.db_path}")
    print(f"Logs: {config.log_dir}")

    # Confirm with user
    response = input("\nThis will delete ALL categories and audio records. Continue? (yes/no): ")
    if response.lower() != "yes":
        print("Reset cancelled.")
        sys.exit(0)

    # Delete the data directory
    if config.base_dir.exists():
        print(f"\nDeleting {config.base_dir}...")
        shutil.rmtree(config.base_dir)
        print("✓ Data directory deleted")
    else:
        print(f"\n✓ Data directory does not exist: {config.base_dir}")

    # Run migrations to create database
    print("\nRunning migrations...")
    db_manager = DatabaseManager(config)
    applied = db_manager.initialize()
    print(f"✓ Applied {len(applied)} migration(s)")

    if seed:
        print("\nSeeding categories...")
        coordinator = CategoryCoordinator(CategoryService(db_manager), fallback_to_defaults=False)
        coordinator.fetch_categories()
        result = import_seed(coordinator, load_seed_file(get_seed_file()))
        print(f"✓ Imported {result.imported} categories ({result.skipped} skipped)")

    print("\n" + "=" * 50)
    print("Reset complete! Database has been recreated.")
    print(f"Database location: {config.db_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete all Auscult data and recreate the database")
    parser.add_argument("--seed", action="store_true", help="Load the bundled category tree")
    reset(seed=parser.parse_args().seed)
