"""SQLite event log implementation."""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Sequence

import aiosqlite

from ..config import resolve_db_path
from ..errors import ConcurrencyConflict, StorageUnavailable
from ..logging_config import get_logger, log_context
from ..models import DomainEvent, RecordedEvent
from .codec import event_from_dict, event_to_dict
from .event_log import record_events

logger = get_logger(__name__)


class SqliteEventLog:
    """Event log persisted in SQLite through aiosqlite."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        # Serializes read-check-insert on the shared connection.
        self._append_lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the database and create tables."""
        if str(self._db_path) != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self._db_path)
            schema_path = Path(__file__).parent / "schema.sql"
            with open(schema_path, "r", encoding="utf-8") as f:
                schema_sql = f.read()
            await self._conn.executescript(schema_sql)
            await self._conn.commit()
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"Cannot open event log: {e}") from e

        logger.info("Event log opened at %s", self._db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Event log not initialized")
        return self._conn

    async def append(
        self,
        conversation_id: str,
        expected_last_sequence: int,
        events: Sequence[DomainEvent],
    ) -> list[RecordedEvent]:
        """Atomically append events after ``expected_last_sequence``."""
        conn = self._connection()
        if not events:
            return []

        async with self._append_lock:
            try:
                actual = await self._last_sequence(conn, conversation_id)
                if actual != expected_last_sequence:
                    raise ConcurrencyConflict(
                        conversation_id, expected_last_sequence, actual
                    )

                records = record_events(conversation_id, actual, events)
                await conn.executemany(
                    """
                    INSERT INTO conversation_events
                    (conversation_id, sequence, event_type, payload, recorded_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            record.conversation_id,
                            record.sequence,
                            record.event_type,
                            json.dumps(event_to_dict(record.event)),
                            record.recorded_at.isoformat(),
                        )
                        for record in records
                    ],
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                # Another writer took the same sequence numbers.
                await self._rollback(conn, conversation_id)
                try:
                    actual = await self._last_sequence(conn, conversation_id)
                except aiosqlite.Error as read_error:
                    raise StorageUnavailable(
                        f"Read failed: {read_error}", conversation_id
                    ) from read_error
                raise ConcurrencyConflict(
                    conversation_id, expected_last_sequence, actual
                ) from e
            except aiosqlite.Error as e:
                await self._rollback(conn, conversation_id)
                raise StorageUnavailable(
                    f"Append failed: {e}", conversation_id
                ) from e

        logger.debug(
            "Appended %d event(s) to %s", len(records), conversation_id,
            extra=log_context(
                conversation_id=conversation_id,
                last_sequence=records[-1].sequence,
            ),
        )
        return records

    async def read(
        self, conversation_id: str, after_sequence: int = 0
    ) -> list[RecordedEvent]:
        """Get events with sequence greater than ``after_sequence``, in order."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                """
                SELECT conversation_id, sequence, event_type, payload, recorded_at
                FROM conversation_events
                WHERE conversation_id = ? AND sequence > ?
                ORDER BY sequence ASC
                """,
                (conversation_id, after_sequence),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"Read failed: {e}", conversation_id) from e

        return [
            RecordedEvent(
                conversation_id=row[0],
                sequence=row[1],
                event=event_from_dict(row[2], json.loads(row[3])),
                recorded_at=datetime.fromisoformat(row[4]),
            )
            for row in rows
        ]

    async def last_sequence(self, conversation_id: str) -> int:
        """Get the last sequence number (0 for an unknown conversation)."""
        conn = self._connection()
        try:
            return await self._last_sequence(conn, conversation_id)
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"Read failed: {e}", conversation_id) from e

    async def conversation_ids(self) -> list[str]:
        """Get ids of all conversations with at least one event."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                """
                SELECT conversation_id
                FROM conversation_events
                GROUP BY conversation_id
                ORDER BY MIN(rowid)
                """
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"Read failed: {e}") from e
        return [row[0] for row in rows]

    async def clear(self) -> None:
        """Remove all events."""
        conn = self._connection()
        try:
            await conn.execute("DELETE FROM conversation_events")
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            raise StorageUnavailable(f"Clear failed: {e}") from e
        logger.info("Event log cleared")

    @staticmethod
    async def _rollback(
        conn: aiosqlite.Connection, conversation_id: str | None = None
    ) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"Rollback failed: {e}", conversation_id) from e

    @staticmethod
    async def _last_sequence(conn: aiosqlite.Connection, conversation_id: str) -> int:
        cursor = await conn.execute(
            """
            SELECT COALESCE(MAX(sequence), 0)
            FROM conversation_events
            WHERE conversation_id = ?
            """,
            (conversation_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0
