# src/etch/core/landscape/database.py
"""Record database for the etch server.

SQLite is fine for a single server; point ``database.url`` at PostgreSQL
when several servers share one record store.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Self

from sqlalchemy import Connection, create_engine, event
from sqlalchemy.engine import Engine

from etch.core.config import DatabaseSettings
from etch.core.landscape.schema import metadata

_MEMORY_URL = "sqlite:///:memory:"


class EtchDB:
    """Owns the engine for node records and creates missing tables.

    Example:
        with EtchDB("sqlite:///./etch.db") as db:
            NodeRecorder(db).upsert_client("node1.example.com")
    """

    def __init__(self, connection_string: str, *, echo: bool = False) -> None:
        """Connect and create any missing tables.

        Args:
            connection_string: SQLAlchemy URL, e.g. "sqlite:///./etch.db"
                or "postgresql://etch:secret@db/etch"
            echo: Log emitted SQL
        """
        self.connection_string = connection_string
        self._engine: Engine | None = create_engine(connection_string, echo=echo)
        if connection_string.startswith("sqlite"):
            EtchDB._configure_sqlite(
                self._engine, wal=connection_string != _MEMORY_URL
            )
        metadata.create_all(self._engine)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> Self:
        return cls(settings.url, echo=settings.echo)

    @classmethod
    def in_memory(cls) -> Self:
        """A throwaway SQLite database, for tests."""
        return cls(_MEMORY_URL)

    @staticmethod
    def _configure_sqlite(engine: Engine, *, wal: bool) -> None:
        """Enforce foreign keys (and WAL for file databases) per connection."""

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(
            dbapi_connection: object, connection_record: object
        ) -> None:
            cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
            if wal:
                # Readers don't block the writer while a request records
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Record database is closed")
        return self._engine

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """One transaction: committed on success, rolled back on error.

        Usage:
            with db.connection() as conn:
                conn.execute(clients_table.insert().values(...))
        """
        with self.engine.begin() as conn:
            yield conn
