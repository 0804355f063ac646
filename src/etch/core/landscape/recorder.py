# src/etch/core/landscape/recorder.py
"""NodeRecorder: create-or-update access to node records.

Each operation runs in its own transaction; concurrent writers for the
same key resolve last-write-wins.
"""

from collections.abc import Mapping
from datetime import UTC, datetime

from sqlalchemy import Connection, Table, select

from etch.core.landscape.database import EtchDB
from etch.core.landscape.schema import (
    clients_table,
    etch_configs_table,
    facts_table,
    originals_table,
)


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class NodeRecorder:
    """High-level API for recording what nodes report and receive.

    Example:
        db = EtchDB.in_memory()
        recorder = NodeRecorder(db)

        client_id = recorder.upsert_client("web1.example.com")
        recorder.sync_facts(client_id, {"operatingsystem": "Debian"})
    """

    def __init__(self, db: EtchDB) -> None:
        self._db = db

    # === Clients ===

    def upsert_client(self, name: str) -> int:
        """Find or create the client row for a node.

        Returns:
            The client's id
        """
        now = _now()
        with self._db.connection() as conn:
            row = conn.execute(
                select(clients_table.c.id).where(clients_table.c.name == name)
            ).first()
            if row is not None:
                conn.execute(
                    clients_table.update()
                    .where(clients_table.c.id == row.id)
                    .values(updated_at=now)
                )
                return int(row.id)
            result = conn.execute(
                clients_table.insert().values(name=name, created_at=now, updated_at=now)
            )
            return int(result.inserted_primary_key[0])

    def get_client_id(self, name: str) -> int | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(clients_table.c.id).where(clients_table.c.name == name)
            ).first()
        return None if row is None else int(row.id)

    # === Facts ===

    def sync_facts(self, client_id: int, facts: Mapping[str, str]) -> None:
        """Make the stored facts for a client equal to ``facts``.

        New facts are inserted, changed ones updated, vanished ones deleted.
        """
        now = _now()
        with self._db.connection() as conn:
            stored = {
                row.key: row.value
                for row in conn.execute(
                    select(facts_table.c.key, facts_table.c.value).where(
                        facts_table.c.client_id == client_id
                    )
                )
            }
            for key, value in facts.items():
                if key not in stored:
                    conn.execute(
                        facts_table.insert().values(
                            client_id=client_id,
                            key=key,
                            value=value,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                elif stored[key] != value:
                    conn.execute(
                        facts_table.update()
                        .where(facts_table.c.client_id == client_id)
                        .where(facts_table.c.key == key)
                        .values(value=value, updated_at=now)
                    )
            vanished = [key for key in stored if key not in facts]
            if vanished:
                conn.execute(
                    facts_table.delete()
                    .where(facts_table.c.client_id == client_id)
                    .where(facts_table.c.key.in_(vanished))
                )

    def get_facts(self, client_id: int) -> dict[str, str]:
        with self._db.connection() as conn:
            rows = conn.execute(
                select(facts_table.c.key, facts_table.c.value)
                .where(facts_table.c.client_id == client_id)
                .order_by(facts_table.c.key)
            )
            return {row.key: row.value for row in rows}

    # === Originals and configs ===

    @staticmethod
    def _upsert_file_row(
        conn: Connection, table: Table, client_id: int, file: str, values: dict[str, str]
    ) -> None:
        now = _now()
        row = conn.execute(
            select(table.c.id)
            .where(table.c.client_id == client_id)
            .where(table.c.file == file)
        ).first()
        if row is None:
            conn.execute(
                table.insert().values(
                    client_id=client_id,
                    file=file,
                    created_at=now,
                    updated_at=now,
                    **values,
                )
            )
        else:
            conn.execute(
                table.update().where(table.c.id == row.id).values(updated_at=now, **values)
            )

    def record_original(self, client_id: int, path: str, sha1sum: str) -> None:
        """Record the node's last reported original checksum for ``path``."""
        with self._db.connection() as conn:
            self._upsert_file_row(conn, originals_table, client_id, path, {"sum": sha1sum})

    def get_original_sum(self, client_id: int, path: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(originals_table.c.sum)
                .where(originals_table.c.client_id == client_id)
                .where(originals_table.c.file == path)
            ).first()
        return None if row is None else str(row.sum)

    def record_config(self, client_id: int, name: str, config: str) -> None:
        """Record the serialized document last sent for a path or bundle."""
        with self._db.connection() as conn:
            self._upsert_file_row(
                conn, etch_configs_table, client_id, name, {"config": config}
            )

    def get_config(self, client_id: int, name: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(etch_configs_table.c.config)
                .where(etch_configs_table.c.client_id == client_id)
                .where(etch_configs_table.c.file == name)
            ).first()
        return None if row is None else str(row.config)
