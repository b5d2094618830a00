# highlevel_auth/storage/sqlite_store.py
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from ..auth.models import SessionRecord
from ..settings import settings
from ..utils.security import FernetEncryptor
from .sqlite_base import close_sqlite_db_connection, open_sqlite_db_connection
from .storage_interfaces import AbstractCredentialStore


class SQLiteCredentialStore(AbstractCredentialStore):
    """
    SQLite implementation of the credential store, optionally encrypting records at rest.

    Statements run synchronously on the event loop thread. Each one is a
    single-row lookup or upsert on a local file, so the pause is short, but
    services with many concurrent calls should use the Redis store.
    """

    kind = "external"

    def __init__(self, db_path: Optional[str] = None, encryptor: Optional[FernetEncryptor] = None):
        super().__init__(encryptor=encryptor)
        self.db_path = db_path or settings.sqlite_db_path
        self._conn: Optional[sqlite3.Connection] = None

    async def initialize(self) -> None:
        """Open the database and ensure the session table exists."""
        if self._conn is not None:
            return
        self._conn = open_sqlite_db_connection(self.db_path)
        self.logger.info(f"SQLiteCredentialStore initialized at '{self.db_path}'.")

    async def teardown(self) -> None:
        if self._conn is not None:
            close_sqlite_db_connection(self._conn)
            self._conn = None
            self.logger.info("SQLiteCredentialStore closed.")

    async def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            await self.initialize()
        return self._conn

    async def _execute_query(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute a SQL statement with transaction management.
        Commits on success, rolls back on error.
        """
        conn = await self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
            conn.commit()
        except sqlite3.Error as e:
            self.logger.error(f"SQLite error executing query '{query}': {e}", exc_info=True)
            conn.rollback()
            raise
        return cursor

    async def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = await self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"SQLite error during fetchall for query '{query}': {e}", exc_info=True)
            raise

    async def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = await self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchone()
        except sqlite3.Error as e:
            self.logger.error(f"SQLite error during fetchone for query '{query}': {e}", exc_info=True)
            raise

    async def get_session(self, resource_id: str) -> Optional[SessionRecord]:
        query = """
            SELECT session_data
            FROM highlevel_sessions
            WHERE application_id = ? AND resource_id = ?
        """
        row = await self._fetchone(query, (self.application_id, resource_id))
        if row is None:
            return None
        return self._deserialize(row["session_data"], resource_id)

    async def set_session(self, resource_id: str, record: SessionRecord) -> None:
        """Upsert the record; the whole row is replaced in a single statement."""
        query = '''
            INSERT INTO highlevel_sessions
                (application_id, resource_id, principal_kind, session_data, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(application_id, resource_id) DO UPDATE SET
                principal_kind=excluded.principal_kind,
                session_data=excluded.session_data,
                updated_at=excluded.updated_at
        '''
        params = (
            self.application_id,
            resource_id,
            record.principal_kind.value,
            self._serialize(record),
            datetime.now(timezone.utc).isoformat(),
        )
        await self._execute_query(query, params)
        self.logger.info(f"Saved {record.principal_kind.value} session for '{resource_id}'.")

    async def delete_session(self, resource_id: str) -> None:
        query = "DELETE FROM highlevel_sessions WHERE application_id = ? AND resource_id = ?"
        await self._execute_query(query, (self.application_id, resource_id))
        self.logger.info(f"Deleted session for '{resource_id}'.")

    async def list_sessions(self) -> List[SessionRecord]:
        query = """
            SELECT resource_id, session_data
            FROM highlevel_sessions
            WHERE application_id = ?
            ORDER BY resource_id
        """
        rows = await self._fetchall(query, (self.application_id,))
        records = []
        for row in rows:
            record = self._deserialize(row["session_data"], row["resource_id"])
            if record is not None:
                records.append(record)
        return records
