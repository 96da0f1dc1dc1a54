"""SQL session for ``sqlite`` databases.

Other driver types (mysql, postgresql, mssql) are reported as connection
failures; plug in a driver-specific ``SqlSession`` through the session
factory to reach them.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from ..errors import StepExecutionError, TargetConnectionError

logger = logging.getLogger(__name__)


class SqliteSession:
    """SqlSession backed by the standard ``sqlite3`` driver."""

    def __init__(self):
        self._conn: Optional[sqlite3.Connection] = None

    async def connect(
        self,
        driver_type: str,
        host: str,
        port: int,
        user: str,
        credential: Optional[str],
        database: str,
    ) -> None:
        if driver_type != "sqlite":
            raise TargetConnectionError(f"No driver available for database type '{driver_type}'")
        if not database:
            raise TargetConnectionError("sqlite target requires a 'database' path")

        # mode=rw refuses to create a missing file
        uri = Path(database).expanduser().resolve().as_uri() + "?mode=rw"
        try:
            self._conn = await asyncio.to_thread(
                sqlite3.connect, uri, uri=True, check_same_thread=False
            )
        except sqlite3.Error as e:
            raise TargetConnectionError(f"Failed to open sqlite database '{database}': {e}") from e
        self._conn.row_factory = sqlite3.Row
        logger.debug("Connected to sqlite database %s", database)

    async def query(self, sql: str) -> list[dict]:
        """Run ``sql`` and return rows as dictionaries.

        Raises:
            StepExecutionError: On driver errors or when not connected.
        """
        if self._conn is None:
            raise StepExecutionError("SQL session is not connected")
        return await asyncio.to_thread(self._query_sync, sql)

    def _query_sync(self, sql: str) -> list[dict]:
        try:
            cursor = self._conn.execute(sql)
            rows = [dict(row) for row in cursor.fetchall()]
            self._conn.commit()
        except sqlite3.Error as e:
            raise StepExecutionError(f"SQL error: {e}") from e
        return rows

    async def disconnect(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)
