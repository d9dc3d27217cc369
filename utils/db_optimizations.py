# Database Engine Configuration

"""
This module configures the SQLite engine the launcher stores its state in.
Call init_db_optimizations() in the app factory before db.init_app().
"""

import logging
import sqlite3
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SLOW_QUERY_SECONDS = 0.1


def set_sqlite_pragmas(dbapi_conn, connection_record):
    """WAL journal and enforced foreign keys on every new SQLite connection"""
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault('query_start_time', []).append(time.time())


def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    started = conn.info.get('query_start_time')
    if not started:
        return
    total = time.time() - started.pop(-1)
    if total > SLOW_QUERY_SECONDS:
        logger.warning(f'Slow query ({total:.3f}s): {statement[:200]}...')


def _listen_once(identifier, fn):
    if not event.contains(Engine, identifier, fn):
        event.listen(Engine, identifier, fn)


def init_db_optimizations(app, db):
    """
    Initialize database engine settings

    Usage in app.py:
        from utils.db_optimizations import init_db_optimizations
        init_db_optimizations(app, db)
        db.init_app(app)
    """
    # Copies, the config class dicts are shared between apps
    engine_options = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS') or {})
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = engine_options

    if app.config.get('SQLALCHEMY_DATABASE_URI', '').startswith('sqlite'):
        # Green threads share pooled connections
        connect_args = dict(engine_options.get('connect_args') or {})
        engine_options['connect_args'] = connect_args
        connect_args.setdefault('check_same_thread', False)
        connect_args.setdefault('timeout', 30)
        _listen_once('connect', set_sqlite_pragmas)

    # Slow query logging in development
    if app.config.get('DEBUG', False):
        _listen_once('before_cursor_execute', before_cursor_execute)
        _listen_once('after_cursor_execute', after_cursor_execute)

    logger.info("Database optimizations initialized")
