"""PostgreSQL access for ExpenseFlow.

One lazily created ThreadedConnectionPool per process. Repositories go
through core.base_repository; code that needs several statements to commit
together wraps them in transaction().
"""
import os
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal

import psycopg2
import psycopg2.errors
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

logger = logging.getLogger('expenseflow.database')

_pool_settings = {
    'dsn': os.environ.get('DATABASE_URL'),
    'minconn': int(os.environ.get('DB_POOL_MIN_CONN', '2')),
    'maxconn': int(os.environ.get('DB_POOL_MAX_CONN', '8')),
}
_connection_pool = None
_pool_lock = threading.Lock()

# Connection of the transaction() block running on this thread
_tx_state = threading.local()

_STALE_RETRIES = 3


class TransactionConflict(Exception):
    """Raised when the database aborts a transaction because of a concurrent writer."""


def configure_pool(config):
    """Take DSN and pool size from an AppConfig. Must run before the first get_db()."""
    if _connection_pool is not None:
        logger.warning('Connection pool already created, new settings ignored')
        return
    _pool_settings.update(
        dsn=config.DATABASE_URL or _pool_settings['dsn'],
        minconn=config.DB_POOL_MIN_CONN,
        maxconn=config.DB_POOL_MAX_CONN,
    )


def _get_pool():
    global _connection_pool
    if _connection_pool is None:
        with _pool_lock:
            if _connection_pool is None:
                if not _pool_settings['dsn']:
                    raise ValueError('DATABASE_URL is not configured')
                _connection_pool = pool.ThreadedConnectionPool(
                    minconn=_pool_settings['minconn'],
                    maxconn=_pool_settings['maxconn'],
                    dsn=_pool_settings['dsn'],
                    keepalives=1,
                    keepalives_idle=30,
                    keepalives_interval=10,
                    keepalives_count=5,
                    connect_timeout=5,
                )
                logger.info(
                    f"Connection pool created: min={_pool_settings['minconn']}, "
                    f"max={_pool_settings['maxconn']}")
    return _connection_pool


def get_db():
    """Borrow a live autocommit connection from the pool.

    Connections the server has closed are dropped and another one is tried.
    """
    last_error = None
    for attempt in range(1, _STALE_RETRIES + 1):
        conn = _get_pool().getconn()
        try:
            with conn.cursor() as cur:
                cur.execute('SELECT 1')
            conn.rollback()
            conn.autocommit = True
            return conn
        except (psycopg2.OperationalError, psycopg2.InterfaceError, psycopg2.DatabaseError) as e:
            last_error = e
            logger.warning(f'Dropping stale connection ({attempt}/{_STALE_RETRIES}): {e}')
            try:
                _get_pool().putconn(conn, close=True)
            except psycopg2.Error:
                pass
    raise psycopg2.OperationalError(f'No usable connection after {_STALE_RETRIES} attempts: {last_error}')


def release_db(conn):
    """Hand a connection back; closed or broken ones are discarded."""
    if conn is None or _connection_pool is None:
        return
    try:
        if conn.closed:
            _connection_pool.putconn(conn, close=True)
            return
        conn.autocommit = False
        _connection_pool.putconn(conn)
    except psycopg2.Error:
        _connection_pool.putconn(conn, close=True)


def get_transaction_connection():
    """Connection of the transaction() block active on this thread, or None."""
    return getattr(_tx_state, 'conn', None)


@contextmanager
def transaction():
    """Run the block as one database transaction.

    Usage:
        with transaction():
            expense = expense_repo.lock_for_update(expense_id)
            request_repo.mark_decided(...)
        # committed here, rolled back if the block raised

    Repositories called inside the block use its connection. A nested
    transaction() joins the outer one. Serialization failures, deadlocks and
    lock timeouts surface as TransactionConflict.
    """
    outer = get_transaction_connection()
    if outer is not None:
        yield outer
        return

    conn = get_db()
    conn.autocommit = False
    _tx_state.conn = conn
    try:
        yield conn
        conn.commit()
    except (psycopg2.extensions.TransactionRollbackError,
            psycopg2.errors.LockNotAvailable) as e:
        conn.rollback()
        logger.warning(f'Transaction aborted by a concurrent writer: {e}')
        raise TransactionConflict(str(e)) from e
    except Exception as e:
        conn.rollback()
        logger.warning(f'Transaction rolled back: {e}')
        raise
    finally:
        _tx_state.conn = None
        release_db(conn)


def ping_db():
    """True when a trivial query succeeds."""
    try:
        conn = get_db()
    except (psycopg2.Error, ValueError):
        return False
    release_db(conn)
    return True


def get_cursor(conn):
    """Cursor returning rows as dicts."""
    return conn.cursor(cursor_factory=RealDictCursor)


def init_db():
    """Create tables and indexes unless the schema already exists."""
    conn = get_db()
    try:
        cursor = get_cursor(conn)
        cursor.execute("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'approval_requests'
            )
        """)
        if cursor.fetchone()['exists']:
            logger.info('Database schema already initialized, skipping init_db()')
            return

        from migrations.init_schema import create_schema
        create_schema(conn, cursor)
        conn.commit()
        logger.info('Database schema initialized')
    finally:
        release_db(conn)


def dict_from_row(row):
    """Row as a plain dict; dates become ISO strings and Decimals floats."""
    if row is None:
        return None
    result = dict(row)
    for key, value in result.items():
        if hasattr(value, 'isoformat'):
            result[key] = value.isoformat()
        elif isinstance(value, Decimal):
            result[key] = float(value)
    return result
