import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from aiosqlite import Connection, connect as sqlite_connect
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor

from remindme.helpers.config import CONFIG
from remindme.helpers.config_models.storage import SqliteModel
from remindme.helpers.logging import logger
from remindme.models.readiness import ReadinessEnum
from remindme.persistence.ikv import IKeyValue

# Instrument sqlite
if CONFIG.monitoring.tracing.instrument_transports:
    SQLite3Instrumentor().instrument()


class SqliteKeyValue(IKeyValue):
    """
    A key-value store persisted in a single SQLite file.

    Values are whole blobs, a write replaces the previous value of the key.
    """

    _config: SqliteModel
    _db_path: str
    _init_done: bool

    def __init__(self, config: SqliteModel):
        logger.info(
            "Using SQLite key-value store at %s with table %s",
            config.full_path(),
            config.table,
        )
        self._config = config
        self._db_path = config.full_path()
        self._init_done = False

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except Exception:
            logger.exception("Unknown error while checking SQLite readiness")
        return ReadinessEnum.FAIL

    async def get(self, key: str) -> str | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT value FROM {self._config.table} WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> bool:
        logger.debug("Saving key %s (%i chars)", key, len(value))
        async with self._use_db() as db:
            await db.execute(
                f"INSERT OR REPLACE INTO {self._config.table} VALUES (?, ?)",
                (
                    key,  # key
                    value,  # value
                ),
            )
            await db.commit()
        return True

    async def delete(self, key: str) -> bool:
        async with self._use_db() as db:
            await db.execute(
                f"DELETE FROM {self._config.table} WHERE key = ?",
                (key,),
            )
            await db.commit()
        return True

    async def _init_db(self, db: Connection) -> None:
        """
        Initialize the database.

        See: https://sqlite.org/wal.html
        """
        logger.info("First run, init database")
        # Readers do not block the writer
        await db.execute("PRAGMA journal_mode=WAL")
        # Create table
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {self._config.table} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        # Write changes to disk
        await db.commit()

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection, None]:
        """
        Generate the SQLite client and close it after use.

        The folder and the table are created on first use.
        """
        if not self._init_done:
            db_folder = os.path.dirname(self._db_path)
            if db_folder:
                os.makedirs(name=db_folder, exist_ok=True)

        async with sqlite_connect(
            database=self._db_path,
        ) as client:
            if not self._init_done:
                await self._init_db(client)
                self._init_done = True
            yield client
