"""Base Repository: shared connection handling for every repository.

query_one(), query_all(), execute() and execute_many() borrow a pooled
connection, commit or roll back, and give it back. Inside a
database.transaction() block they run on the transaction's connection and
leave commit/rollback to the block.

Usage:
    class CategoryRepository(BaseRepository):
        def get_by_name(self, company_id, name):
            return self.query_one(
                'SELECT * FROM categories WHERE company_id = %s AND name = %s',
                (company_id, name))
"""
from contextlib import contextmanager

from database import get_db, get_cursor, release_db, dict_from_row, get_transaction_connection


class BaseRepository:

    @contextmanager
    def _connection(self):
        """Yield (conn, owned). Owned connections are committed and released here."""
        conn = get_transaction_connection()
        if conn is not None:
            yield conn, False
            return
        conn = get_db()
        try:
            yield conn, True
        finally:
            release_db(conn)

    def query_one(self, sql, params=None):
        """Execute a SELECT and return a single row as dict, or None."""
        with self._connection() as (conn, _):
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            row = cursor.fetchone()
            return dict_from_row(row) if row else None

    def query_all(self, sql, params=None):
        """Execute a SELECT and return all rows as list of dicts."""
        with self._connection() as (conn, _):
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            return [dict_from_row(r) for r in cursor.fetchall()]

    def execute(self, sql, params=None, returning=False):
        """Execute an INSERT/UPDATE/DELETE.

        Returns:
            dict if returning=True, else int (rowcount)
        """
        with self._connection() as (conn, owned):
            try:
                cursor = get_cursor(conn)
                cursor.execute(sql, params or ())
                result = cursor.fetchone() if returning else cursor.rowcount
                if owned:
                    conn.commit()
            except Exception:
                if owned:
                    conn.rollback()
                raise
            if returning:
                return dict_from_row(result) if result else None
            return result

    def execute_many(self, callback):
        """Execute multiple statements in a single transaction.

        Args:
            callback: Function that receives (cursor) and returns a result.

        Returns:
            Whatever callback returns
        """
        with self._connection() as (conn, owned):
            if owned:
                conn.autocommit = False
            try:
                cursor = get_cursor(conn)
                result = callback(cursor)
                if owned:
                    conn.commit()
                return result
            except Exception:
                if owned:
                    conn.rollback()
                raise
