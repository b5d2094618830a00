# highlevel_auth/storage/sqlite_base.py
import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def open_sqlite_db_connection(db_path: str) -> sqlite3.Connection:
    """
    Open a SQLite connection and make sure the session schema exists.

    The parent directory is created when missing. Rows are returned as
    sqlite3.Row so columns can be read by name.

    Raises:
        sqlite3.Error: If the database cannot be opened
    """
    try:
        resolved = Path(db_path).resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Attempting to connect to SQLite DB at: {resolved}")

        # Shared across the event loop's callbacks
        conn = sqlite3.connect(str(resolved), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        logger.info(f"Successfully connected to SQLite DB: {resolved}")
    except sqlite3.Error as e:
        logger.error(f"Error connecting to SQLite database at {db_path}: {e}", exc_info=True)
        raise

    init_sqlite_db(conn)
    return conn


def init_sqlite_db(conn: sqlite3.Connection) -> None:
    """Create the session table if it does not exist yet."""
    cursor = conn.cursor()
    cursor.execute('''
    CREATE TABLE IF NOT EXISTS highlevel_sessions (
        application_id TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        principal_kind TEXT NOT NULL,
        session_data TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (application_id, resource_id)
    )
    ''')
    conn.commit()
    logger.info("Ensured 'highlevel_sessions' table exists.")


def close_sqlite_db_connection(conn: sqlite3.Connection) -> None:
    logger.info("Closing SQLite DB connection.")
    conn.close()
