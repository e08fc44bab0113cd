"""
PostgreSQL connections for the rating store.

Configuration comes from the environment (a .env file is loaded if present):
DATABASE_URL, or the PGHOST/PGPORT/PGUSER/PGPASSWORD/PGDATABASE set.
PG_CONNECT_TIMEOUT (seconds, default 10) bounds connection attempts so a
rating update triggered by a game save never hangs on an unreachable store.
"""

import os
import logging
import psycopg2
from psycopg2.extras import RealDictCursor
from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

APPLICATION_NAME = "card-elo"
DEFAULT_CONNECT_TIMEOUT = 10


def get_connection_string() -> str:
    """
    Build the PostgreSQL DSN from the environment.

    DATABASE_URL wins when set; otherwise all of PGHOST, PGUSER, PGPASSWORD
    and PGDATABASE are required (PGPORT defaults to 5432).

    Raises:
        ValueError: If neither form is configured
    """
    database_url = os.getenv('DATABASE_URL')
    if database_url:
        return database_url

    parts = {name: os.getenv(name) for name in ('PGHOST', 'PGUSER', 'PGPASSWORD', 'PGDATABASE')}
    missing = [name for name, value in parts.items() if not value]
    if missing:
        raise ValueError(
            "Database connection not configured. Set DATABASE_URL or "
            f"PGHOST/PGUSER/PGPASSWORD/PGDATABASE (missing: {', '.join(missing)})."
        )

    port = os.getenv('PGPORT', '5432')
    return (
        f"postgresql://{parts['PGUSER']}:{parts['PGPASSWORD']}"
        f"@{parts['PGHOST']}:{port}/{parts['PGDATABASE']}"
    )


def get_connect_timeout() -> int:
    raw = os.getenv('PG_CONNECT_TIMEOUT')
    if not raw:
        return DEFAULT_CONNECT_TIMEOUT
    try:
        return max(1, int(raw))
    except ValueError:
        logger.warning(f"Ignoring invalid PG_CONNECT_TIMEOUT={raw!r}; using {DEFAULT_CONNECT_TIMEOUT}s")
        return DEFAULT_CONNECT_TIMEOUT


def get_connection(isolation_level=None):
    """
    Open a new connection to the rating store.

    Args:
        isolation_level: Optional psycopg2 isolation level for the session
            (ISOLATION_LEVEL_SERIALIZABLE for rating transactions)

    Returns:
        psycopg2 connection whose cursors return rows as dictionaries
    """
    try:
        conn = psycopg2.connect(
            get_connection_string(),
            cursor_factory=RealDictCursor,
            connect_timeout=get_connect_timeout(),
            application_name=APPLICATION_NAME,
        )
        if isolation_level is not None:
            conn.set_session(isolation_level=isolation_level)
        return conn
    except Exception as e:
        logger.error(f"Failed to connect to PostgreSQL: {e}")
        raise
