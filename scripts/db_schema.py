"""
Database schema helpers for upgrading the settings table of older stores.

This module exposes `ensure_settings_schema` which must be called with an
active Flask application context (so `models.db` is configured). The function
is idempotent and safe to call at app startup, after `db.create_all()`.
"""
import logging

from sqlalchemy import inspect, text
from models import db
from models.settings import Settings

logger = logging.getLogger(__name__)

# Columns added after the first release, with the DDL used to add them
SETTINGS_COLUMNS = {
    'host': "VARCHAR(255) DEFAULT ''",
    'host_scheme': "VARCHAR(10) DEFAULT 'http'",
    'mysql_root_password': 'VARCHAR(255)',
    'mysql_database': 'VARCHAR(255)',
    'mysql_user': 'VARCHAR(255)',
    'mysql_password': 'VARCHAR(255)',
    'created_at': 'DATETIME',
    'updated_at': 'DATETIME',
}


def ensure_settings_schema():
    """Add missing settings columns and backfill the singleton row.

    Must be called inside a Flask application context.

    Returns:
        list of column names that were added
    """
    inspector = inspect(db.engine)
    if not inspector.has_table(Settings.__tablename__):
        db.create_all()
        inspector = inspect(db.engine)

    existing = {column['name'] for column in inspector.get_columns(Settings.__tablename__)}
    added = []

    with db.engine.begin() as conn:
        for name, ddl in SETTINGS_COLUMNS.items():
            if name in existing:
                continue
            conn.execute(text(f"ALTER TABLE {Settings.__tablename__} ADD COLUMN {name} {ddl}"))
            added.append(name)

    if added:
        logger.info(f"Added settings columns: {', '.join(added)}")

    # Creates the row when missing and fills in defaults for new columns
    Settings.get_config()
    return added
