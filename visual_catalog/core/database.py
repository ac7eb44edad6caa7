# core/database.py

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterator, NamedTuple, Optional

from visual_catalog.core.exceptions import (InitializationFailure,
                                            StoreReadFailure,
                                            StoreWriteFailure)
from visual_catalog.core.similarity import VectorLike, encode_vector

logger = logging.getLogger(__name__)


class EmbeddingRow(NamedTuple):
    """One scanned row: entity id and the raw float32 BLOB"""
    entity_id: str
    raw: bytes


class VectorDatabase:
    """
    SQLite store for item embeddings, one row per entity id
    """

    def __init__(self, db_path: str = "data/vectors.db", scan_batch_size: int = 256):
        self.db_path = db_path
        self.scan_batch_size = scan_batch_size
        self.conn = None
        self._lock = threading.Lock()

    def initialize(self) -> 'VectorDatabase':
        """Open the database file and create the schema if absent"""
        with self._lock:
            if self.conn is not None:
                return self

            try:
                if not self._in_memory:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                if not self._in_memory:
                    # WAL lets a scan read a snapshot while puts keep committing
                    conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS embeddings (
                        entity_id TEXT PRIMARY KEY,
                        vector BLOB NOT NULL
                    )
                """)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise InitializationFailure(
                    f"Cannot open vector store at {self.db_path}: {e}",
                    resource="vector store"
                ) from e

            self.conn = conn

        logger.info(f"Vector store ready at {self.db_path} ({self.count()} embeddings)")
        return self

    @property
    def _in_memory(self) -> bool:
        return self.db_path == ":memory:"

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StoreReadFailure("Vector store is not initialized")
        return self.conn

    def put(self, entity_id: str, vector: VectorLike):
        """Insert or replace the embedding for an entity"""
        blob = encode_vector(vector)
        if not blob:
            raise StoreWriteFailure(f"Refusing to store an empty vector for {entity_id}",
                                    entity_id=entity_id)

        with self._lock:
            try:
                conn = self._connection()
                conn.execute(
                    "INSERT OR REPLACE INTO embeddings (entity_id, vector) VALUES (?, ?)",
                    (entity_id, blob)
                )
                conn.commit()
            except (sqlite3.Error, StoreReadFailure) as e:
                raise StoreWriteFailure(f"Failed to store embedding for {entity_id}: {e}",
                                        entity_id=entity_id) from e

        logger.debug(f"Stored embedding for {entity_id} ({len(blob)} bytes)")

    def delete(self, entity_id: str):
        """Remove the embedding for an entity; absent ids are ignored"""
        with self._lock:
            try:
                conn = self._connection()
                conn.execute("DELETE FROM embeddings WHERE entity_id = ?", (entity_id,))
                conn.commit()
            except (sqlite3.Error, StoreReadFailure) as e:
                raise StoreWriteFailure(f"Failed to delete embedding for {entity_id}: {e}",
                                        entity_id=entity_id) from e

    def get(self, entity_id: str) -> Optional[bytes]:
        """Raw BLOB for an entity, or None"""
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT vector FROM embeddings WHERE entity_id = ?", (entity_id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreReadFailure(f"Failed to read embedding for {entity_id}: {e}") from e

        return _as_bytes(row[0]) if row else None

    def scan_all(self) -> Iterator[EmbeddingRow]:
        """
        Lazily yield every stored row, fetched in batches

        Each scan reads one consistent snapshot: writes committed while it
        runs are not seen, so every entity id appears at most once. Rows
        are not filtered or decoded here.
        """
        if self._in_memory:
            # An in-memory database cannot be shared with a second
            # connection; read the whole table under the lock instead
            with self._lock:
                try:
                    rows = self._connection().execute(
                        "SELECT entity_id, vector FROM embeddings"
                    ).fetchall()
                except sqlite3.Error as e:
                    raise StoreReadFailure(f"Failed to scan embeddings: {e}") from e

            for entity_id, raw in rows:
                yield EmbeddingRow(entity_id, _as_bytes(raw))
            return

        if self.conn is None:
            raise StoreReadFailure("Vector store is not initialized")

        try:
            reader = sqlite3.connect(self.db_path, check_same_thread=False,
                                     isolation_level=None)
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to scan embeddings: {e}") from e

        try:
            try:
                reader.execute("BEGIN")
                cursor = reader.execute("SELECT entity_id, vector FROM embeddings")
            except sqlite3.Error as e:
                raise StoreReadFailure(f"Failed to scan embeddings: {e}") from e

            while True:
                try:
                    batch = cursor.fetchmany(self.scan_batch_size)
                except sqlite3.Error as e:
                    raise StoreReadFailure(f"Failed to scan embeddings: {e}") from e

                if not batch:
                    break

                for entity_id, raw in batch:
                    yield EmbeddingRow(entity_id, _as_bytes(raw))
        finally:
            reader.close()

    def count(self) -> int:
        """Number of stored embeddings"""
        return self.stats()['count']

    def stats(self) -> Dict[str, int]:
        """Row count and total BLOB size"""
        with self._lock:
            try:
                count, total_bytes = self._connection().execute(
                    "SELECT COUNT(*), COALESCE(SUM(length(vector)), 0) FROM embeddings"
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreReadFailure(f"Failed to read store statistics: {e}") from e

        return {'count': count, 'total_bytes': total_bytes}

    def close(self):
        """Close database connection"""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None


# Not a whole float32, so decode_vector rejects it
_INVALID_BLOB = b"\x00"


def _as_bytes(value) -> bytes:
    # SQLite is dynamically typed; a row written by another tool may hold
    # TEXT or a number, which is never a valid embedding
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return _INVALID_BLOB
