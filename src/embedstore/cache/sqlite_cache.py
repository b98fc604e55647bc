"""SQLite record cache with a native vector index.

Embeddings live in a ``vec0`` virtual table provided by the ``sqlite-vec``
extension; the remaining record fields live in a plain ``records`` table that
references its embedding row by rowid::

    embeddings (vec0)           records
    ----------------            ---------------------------------------------
    rowid                  <--  embedding_id
    embedding float[N]          key (PK), text, norm, source, tags (JSON array)

Similarity queries run as a KNN search inside SQLite instead of scanning
every record in Python, which is the point of this backend.

Every write is a single transaction: a record row never exists without its
embedding row and vice versa. Deleting a record deletes its embedding row in
the same transaction.

The DB lives in memory by default; pass ``filename`` for an on-disk store.
"""

from __future__ import annotations

import json
import math
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, Union

import sqlite_vec

from embedstore.cache.base import CacheBackend, TagsArg
from embedstore.cache.records import Record
from embedstore.core.constants import DEFAULT_EMBEDDING_LENGTH, MAX_KNN_RECORDS
from embedstore.core.exceptions import DimensionMismatchError, StorageError
from embedstore.core.logging import get_logger
from embedstore.utils.tags import Tags
from embedstore.utils.vectors import Vector, as_vector, pack_float32, unpack_float32

logger = get_logger(__name__)

IN_MEMORY = ":memory:"

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on old builds
_DELETE_CHUNK = 500

_RECORD_COLUMNS = (
    "records.key, records.text, records.norm, records.source, "
    "records.tags, embeddings.embedding"
)


def _like_prefix(prefix: str) -> str:
    """LIKE pattern matching keys that start with *prefix* literally."""
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"


class SQLiteCache(CacheBackend):
    """Record cache stored in SQLite with a ``sqlite-vec`` KNN index.

    Args:
        prefix: Key prefix of the active collection
        embedding_length: Fixed length of every embedding
        filename: Database file, or ``":memory:"``
        debug: Log the query plan of every statement at DEBUG level

    Raises:
        StorageError: If the sqlite-vec extension cannot be loaded

    Example::

        cache = SQLiteCache(prefix="Documents-default-", embedding_length=384)
        cache.set("abc", Record(text="hello", embedding=vec, norm=norm(vec)))
        cache.find_records(query_vec, tags=["greeting"], max_records=5)
    """

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def __init__(
        self,
        prefix: str,
        embedding_length: int = DEFAULT_EMBEDDING_LENGTH,
        filename: Union[str, Path] = IN_MEMORY,
        debug: bool = False,
    ) -> None:
        super().__init__(prefix)
        self._embedding_length = embedding_length
        self._filename = str(filename)
        self.debug = debug
        self._conn: Optional[sqlite3.Connection] = None
        self._setup_database()

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def embedding_length(self) -> int:
        return self._embedding_length

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            on_disk = self._filename != IN_MEMORY
            if on_disk:
                Path(self._filename).parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are managed explicitly
            conn = sqlite3.connect(self._filename, timeout=30, isolation_level=None)
            try:
                conn.enable_load_extension(True)
                sqlite_vec.load(conn)
                conn.enable_load_extension(False)
            except (AttributeError, sqlite3.Error) as e:
                conn.close()
                raise StorageError(
                    "Cannot load the sqlite-vec extension",
                    details={"filename": self._filename},
                    cause=e,
                ) from e
            if on_disk:
                conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn
        return self._conn

    def _setup_database(self) -> None:
        self._execute(
            f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS embeddings USING vec0(
                embedding float[{int(self._embedding_length)}] distance_metric=cosine
            )
            """
        )
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                key          TEXT    NOT NULL PRIMARY KEY ON CONFLICT REPLACE,
                text         TEXT    NOT NULL DEFAULT '',
                embedding_id INTEGER,
                norm         REAL    NOT NULL DEFAULT 0.0,
                source       TEXT,
                tags         JSON    NOT NULL DEFAULT '[]'
            )
            """
        )
        self._execute(
            "CREATE INDEX IF NOT EXISTS records_embedding_id ON records(embedding_id)"
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SQLiteCache":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_conn", None) is not None:
            self.close()

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        if self.debug and sql.lstrip().upper().startswith(("SELECT", "INSERT", "DELETE")):
            plan = self.conn.execute("EXPLAIN QUERY PLAN " + sql, params).fetchall()
            logger.debug(
                "Query plan for %s\n%s",
                " ".join(sql.split()),
                "\n".join(str(row) for row in plan),
            )
        return self.conn.execute(sql, params)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._execute("BEGIN")
        try:
            yield
        except BaseException:
            self._execute("ROLLBACK")
            raise
        else:
            self._execute("COMMIT")

    def _delete_where(self, where: str, params: Sequence[Any]) -> int:
        """Delete matching records and their embedding rows; call inside a transaction."""
        embedding_ids = [
            (row[0],)
            for row in self._execute(
                f"SELECT embedding_id FROM records WHERE {where}", params
            ).fetchall()
            if row[0] is not None
        ]
        if embedding_ids:
            self.conn.executemany("DELETE FROM embeddings WHERE rowid = ?", embedding_ids)
        return self._execute(f"DELETE FROM records WHERE {where}", params).rowcount

    def _make_record(
        self,
        text: str,
        norm: float,
        source: Optional[str],
        tags: Optional[str],
        embedding: bytes,
    ) -> Record:
        return Record(
            text=text,
            embedding=unpack_float32(embedding),
            norm=norm,
            source=source,
            tags=Tags(json.loads(tags or "[]"), source=source).to_list(),
        )

    def _iter_records(self, where: str = "", params: Sequence[Any] = ()) -> Iterator[tuple[str, Record]]:
        sql = (
            f"SELECT {_RECORD_COLUMNS} FROM records "
            "INNER JOIN embeddings ON records.embedding_id = embeddings.rowid"
        )
        if where:
            sql += f" WHERE {where}"
        # Materialize first so callers may write while iterating
        rows = self._execute(sql, params).fetchall()
        for key, text, norm, source, tags, embedding in rows:
            yield key, self._make_record(text, norm, source, tags, embedding)

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Record]:
        for _, record in self._iter_records("records.key = ?", (self.pre(key),)):
            return record
        return None

    def set(self, key: str, value: Union[Record, dict]) -> Union[Record, dict]:
        record = Record.coerce(value)
        if len(record.embedding) != self._embedding_length:
            raise DimensionMismatchError(
                "Record embedding length does not match the cache",
                details={"expected": self._embedding_length, "actual": len(record.embedding)},
            )
        full_key = self.pre(key)
        with self._transaction():
            # Replacing a key must not orphan its old embedding row
            self._delete_where("key = ?", (full_key,))
            cursor = self._execute(
                "INSERT INTO embeddings(embedding) VALUES (?)",
                (pack_float32(record.embedding),),
            )
            embedding_id = cursor.lastrowid
            self._execute(
                "INSERT INTO records(key, text, embedding_id, norm, source, tags) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    full_key,
                    record.text,
                    embedding_id,
                    float(record.norm),
                    record.source,
                    json.dumps([str(tag) for tag in record.tags]),
                ),
            )
        logger.debug("SQLite cache: stored %s (embedding row %s)", full_key, embedding_id)
        return value

    def exists(self, key: str) -> bool:
        row = self._execute(
            "SELECT 1 FROM records WHERE key = ? LIMIT 1", (self.pre(key),)
        ).fetchone()
        return row is not None

    def delete(self, key: str) -> bool:
        with self._transaction():
            removed = self._delete_where("key = ?", (self.pre(key),))
        return removed > 0

    # ------------------------------------------------------------------
    # Prefix scoped operations
    # ------------------------------------------------------------------

    def size(self) -> int:
        row = self._execute(
            "SELECT COUNT(*) FROM records WHERE key LIKE ? ESCAPE '\\'",
            (_like_prefix(self.prefix),),
        ).fetchone()
        return row[0]

    def clear_all_with_prefix(self) -> "SQLiteCache":
        with self._transaction():
            removed = self._delete_where(
                "key LIKE ? ESCAPE '\\'", (_like_prefix(self.prefix),)
            )
        logger.debug("SQLite cache: cleared %d records under %s", removed, self.prefix)
        return self

    def each(self) -> Iterator[tuple[str, Record]]:
        return self._iter_records(
            "records.key LIKE ? ESCAPE '\\'", (_like_prefix(self.prefix),)
        )

    def full_each(self) -> Iterator[tuple[str, Record]]:
        return self._iter_records()

    def tags(self) -> Tags:
        result = Tags()
        rows = self._execute(
            "SELECT DISTINCT tags, source FROM records WHERE key LIKE ? ESCAPE '\\'",
            (_like_prefix(self.prefix),),
        ).fetchall()
        for tags, source in rows:
            for tag in json.loads(tags or "[]"):
                result.add(tag, source=source)
        return result

    # ------------------------------------------------------------------
    # Tag filtering and similarity search
    # ------------------------------------------------------------------

    def find_records_for_tags(self, tags: TagsArg) -> list[tuple]:
        """Rows under the active prefix sharing at least one tag with *tags*.

        With no tags every row under the prefix is returned.

        Returns:
            ``(key, text, norm, source, tags_json, embedding_id)`` tuples
        """
        wanted = Tags(tags).to_list()
        sql = (
            "SELECT key, text, norm, source, tags, embedding_id FROM records "
            "WHERE key LIKE ? ESCAPE '\\'"
        )
        params: list[Any] = [_like_prefix(self.prefix)]
        if wanted:
            placeholders = ",".join("?" for _ in wanted)
            sql += (
                " AND EXISTS (SELECT 1 FROM json_each(records.tags) "
                f"WHERE json_each.value IN ({placeholders}))"
            )
            params.extend(wanted)
        rows = self._execute(sql, params).fetchall()
        if wanted:
            wanted_set = set(wanted)
            rows = [row for row in rows if wanted_set.intersection(json.loads(row[4] or "[]"))]
        return rows

    def find_records(
        self,
        needle: Vector,
        tags: TagsArg = None,
        max_records: Optional[int] = None,
    ) -> list[Record]:
        """KNN search for *needle* among records matching *tags*.

        Raises:
            DimensionMismatchError: If ``len(needle) != embedding_length``
        """
        needle = as_vector(needle)
        if needle.shape[0] != self._embedding_length:
            raise DimensionMismatchError(
                "Needle embedding length does not match the cache",
                details={"expected": self._embedding_length, "actual": needle.shape[0]},
            )
        limits = [self.size(), MAX_KNN_RECORDS]
        if max_records is not None:
            limits.append(max_records)
        k = min(limits)
        candidates = {
            row[5]: row for row in self.find_records_for_tags(tags) if row[5] is not None
        }
        if k <= 0 or not candidates:
            return []

        # Cosine distance is undefined for zero vectors; those score 0.0 without KNN
        if needle.any():
            indexed = [rowid for rowid, row in candidates.items() if row[2]]
        else:
            indexed = []
        skipped = set(candidates).difference(indexed)
        unscored = [rowid for rowid in candidates if rowid in skipped][:k]

        scored: list[tuple[int, float, bytes]] = []
        if indexed:
            # Row ids come from the database itself, so inlining them is safe
            rowids = ",".join(str(int(rowid)) for rowid in indexed)
            hits = self._execute(
                "SELECT rowid, distance, embedding FROM embeddings "
                f"WHERE embedding MATCH ? AND k = ? AND rowid IN ({rowids}) "
                "ORDER BY distance",
                (pack_float32(needle), min(k, len(indexed))),
            ).fetchall()
            for rowid, distance, embedding in hits:
                if distance is None or math.isnan(distance):
                    similarity = 0.0
                else:
                    similarity = 1.0 - float(distance)
                scored.append((rowid, similarity, embedding))
        if unscored:
            rowids = ",".join(str(int(rowid)) for rowid in unscored)
            embeddings = dict(
                self._execute(
                    f"SELECT rowid, embedding FROM embeddings WHERE rowid IN ({rowids})"
                ).fetchall()
            )
            scored.extend((rowid, 0.0, embeddings[rowid]) for rowid in unscored if rowid in embeddings)

        results = []
        for rowid, similarity, embedding in scored:
            key, text, norm, source, tags_json, _ = candidates[rowid]
            record = self._make_record(text, norm, source, tags_json, embedding)
            results.append(record.with_match(self.unpre(key), similarity))
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:k]

    def clear_for_tags(self, tags: TagsArg = None) -> "SQLiteCache":
        if not Tags(tags).to_list():
            return self.clear_all_with_prefix()
        keys = [row[0] for row in self.find_records_for_tags(tags)]
        with self._transaction():
            for start in range(0, len(keys), _DELETE_CHUNK):
                chunk = keys[start:start + _DELETE_CHUNK]
                placeholders = ",".join("?" for _ in chunk)
                self._delete_where(f"key IN ({placeholders})", chunk)
        logger.debug("SQLite cache: cleared %d records for tags %s", len(keys), tags)
        return self
