"""
Base repository with connection management.

Provides context managers for database connections that handle:
- Automatic connection cleanup
- Transaction commit on success
- Transaction rollback on failure
- Translation of psycopg2 errors into the rating error taxonomy
"""

from contextlib import contextmanager
from typing import Generator, Any

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_SERIALIZABLE, TransactionRollbackError

from database_postgres import get_connection
from domain.errors import (
    FatalStoreError,
    RatingError,
    TransientStoreConflict,
    UnsupportedTransactionMode,
)


def translate_store_error(error: Exception) -> RatingError:
    """
    Map a psycopg2 error onto the rating error taxonomy.

    Serialization failures and deadlocks are transient conflicts; a
    feature_not_supported error means multi-record transactions are
    unavailable; everything else is fatal.
    """
    if isinstance(error, RatingError):
        return error
    if isinstance(error, TransactionRollbackError):
        return TransientStoreConflict(str(error))
    if isinstance(error, psycopg2.NotSupportedError):
        return UnsupportedTransactionMode(str(error))
    return FatalStoreError(str(error))


class BaseRepository:
    """
    Base class for all repositories.

    Provides connection management via context manager pattern.
    Subclasses should use self.connection() to get database connections.
    """

    @contextmanager
    def connection(self, auto_commit: bool = True) -> Generator[Any, None, None]:
        """
        Context manager for database connections.

        Automatically handles:
        - Getting a connection
        - Committing on successful exit (if auto_commit=True)
        - Rolling back on exception
        - Closing the connection in all cases

        Args:
            auto_commit: If True, commit transaction on successful exit.
                        Set to False if you want to manage transactions manually.

        Yields:
            A tuple of (connection, cursor) for database operations.

        Example:
            with self.connection() as (conn, cursor):
                cursor.execute("SELECT * FROM player_identities")
                results = cursor.fetchall()
        """
        with self._open(auto_commit=auto_commit) as handles:
            yield handles

    @contextmanager
    def read_connection(self) -> Generator[Any, None, None]:
        """
        Context manager for read-only operations.

        Same as connection() but with auto_commit=False since
        read operations don't need commits.
        """
        with self._open(auto_commit=False) as handles:
            yield handles

    @contextmanager
    def transaction(self) -> Generator[Any, None, None]:
        """
        Context manager for an all-or-nothing multi-record transaction.

        Runs at SERIALIZABLE isolation so two games sharing a participant
        cannot silently overwrite each other; the loser of such a race gets
        a TransientStoreConflict and should retry.

        Yields:
            A cursor bound to the open transaction.
        """
        with self._open(auto_commit=True, isolation_level=ISOLATION_LEVEL_SERIALIZABLE) as (conn, cursor):
            yield cursor

    @contextmanager
    def _open(self, auto_commit: bool, isolation_level=None) -> Generator[Any, None, None]:
        conn = None
        cursor = None
        try:
            try:
                conn = get_connection(isolation_level=isolation_level)
            except ValueError as e:
                # Missing DATABASE_URL / PG* configuration
                raise FatalStoreError(str(e)) from e
            cursor = conn.cursor()
            yield conn, cursor
            if auto_commit:
                conn.commit()
        except psycopg2.Error as e:
            if conn is not None:
                conn.rollback()
            raise translate_store_error(e) from e
        except Exception:
            if conn is not None:
                conn.rollback()
            raise
        finally:
            if cursor is not None:
                cursor.close()
            if conn is not None:
                conn.close()
