#!/usr/bin/env python3
"""
Cleanup script for orphaned instance workdirs.

This script removes directories under ``<DATA_DIR>/storage/workdirs`` that
no longer belong to an instance record in the database, e.g. after a crash
between removing a record and deleting its workspace.

Usage:
    python scripts/cleanup_orphaned_workdirs.py

Requirements:
    - Database connection available
    - Run from project root directory
"""

import os
import sys
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import db
from models.instance import ChallengeInstance

logger = logging.getLogger(__name__)


def cleanup_orphaned_workdirs(storage):
    """Remove workdirs without a matching instance row.

    Must be called inside a Flask application context.

    Returns:
        tuple (cleaned_count, error_count)
    """
    cleaned_count = 0
    error_count = 0

    known_ids = {instance_id for (instance_id,) in db.session.query(ChallengeInstance.id).all()}
    orphaned = [name for name in storage.list_workdirs() if name not in known_ids]

    if not orphaned:
        logger.info("No orphaned workdirs found to clean up")
        return 0, 0

    logger.info(f"Found {len(orphaned)} orphaned workdirs")

    for name in orphaned:
        path = storage.resolve_workdir(name)
        try:
            logger.info(f"Removing orphaned workdir: {path}")
            storage.remove_tree(path)
            cleaned_count += 1
        except OSError as e:
            logger.error(f"Error removing workdir {path}: {e}")
            error_count += 1

    logger.info(f"Cleanup completed: {cleaned_count} workdirs removed, {error_count} errors")
    return cleaned_count, error_count


def main():
    """Main entry point for the cleanup script."""
    from app import create_app
    from services.storage import storage

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    logger.info("Starting orphaned workdir cleanup...")

    app = create_app()
    with app.app_context():
        cleaned, errors = cleanup_orphaned_workdirs(storage)

    if errors > 0:
        logger.warning(f"Completed with {errors} errors. Check logs above for details.")
        sys.exit(1)
    else:
        logger.info(f"Cleanup completed successfully ({cleaned} removed)")
        sys.exit(0)


if __name__ == '__main__':
    main()
