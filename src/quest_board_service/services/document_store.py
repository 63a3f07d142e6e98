"""
SQLite-backed document store with atomic multi-document transactions.

Each collection is a table of ``(id, data)`` rows where ``data`` is a JSON
document validated against the collection's schema. ``run_transaction``
runs a callback under ``BEGIN IMMEDIATE``; the callback performs all of its
reads first and queues its writes, which are applied together at commit.
"""

from __future__ import annotations

import contextlib
import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.logging import get_logger
from quest_board_service.services.records import COLLECTION_SCHEMAS

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from pydantic import BaseModel

T = TypeVar("T")

Filter = tuple[str, str, Any]

_OPERATORS: dict[str, str] = {
    "==": "=",
    "!=": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
}

_INDEXED_FIELDS: dict[str, tuple[str, ...]] = {
    "users": ("status",),
    "quests": ("status", "quest_giver_id", "created_at"),
    "applications": ("quest_id", "quester_id", "status"),
}


@dataclass(frozen=True)
class Increment:
    """Field-level atomic increment applied to the stored value at commit."""

    delta: int


class ReadAfterWriteError(RuntimeError):
    """Raised when a transaction reads after it has queued a write."""


class MissingDocumentError(LookupError):
    """Raised when an update targets a document that does not exist."""


@dataclass(frozen=True)
class _Write:
    kind: str
    collection: str
    doc_id: str
    data: dict[str, Any] | None


def _schema_for(collection: str) -> type[BaseModel]:
    try:
        return COLLECTION_SCHEMAS[collection]
    except KeyError:
        msg = f"Unknown collection: {collection}"
        raise ValueError(msg) from None


def _field_expr(collection: str, field: str) -> str:
    if field not in _schema_for(collection).model_fields:
        msg = f"Unknown field '{field}' for collection '{collection}'"
        raise ValueError(msg)
    return f"json_extract(data, '$.{field}')"


def _validate(collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Validate a document and return its normalized JSON form."""
    try:
        model = _schema_for(collection).model_validate(data)
    except ValidationError as exc:
        raise ServiceError(
            "SCHEMA_VIOLATION",
            f"Document does not conform to the {collection} schema",
            500,
            {
                "collection": collection,
                "document_id": doc_id,
                "errors": exc.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from exc
    return model.model_dump(mode="json")


def _build_select(
    collection: str,
    columns: str,
    where: Iterable[Filter],
) -> tuple[str, list[Any]]:
    _schema_for(collection)
    clauses: list[str] = []
    params: list[Any] = []
    for field, op, value in where:
        if op not in _OPERATORS:
            msg = f"Unsupported operator: {op}"
            raise ValueError(msg)
        expr = _field_expr(collection, field)
        if value is None and op in ("==", "!="):
            clauses.append(f"{expr} IS {'NOT ' if op == '!=' else ''}NULL")
            continue
        clauses.append(f"{expr} {_OPERATORS[op]} ?")
        params.append(value)
    sql = f"SELECT {columns} FROM {collection}"  # noqa: S608
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    return sql, params


def _query(
    db: sqlite3.Connection,
    collection: str,
    where: Sequence[Filter],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[dict[str, Any]]:
    sql, params = _build_select(collection, "id, data", where)
    direction = "DESC" if descending else "ASC"
    if order_by is not None:
        sql += f" ORDER BY {_field_expr(collection, order_by)} {direction}, id {direction}"
    else:
        sql += " ORDER BY id"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    rows = db.execute(sql, params).fetchall()
    return [_validate(collection, row["id"], json.loads(row["data"])) for row in rows]


def _get(db: sqlite3.Connection, collection: str, doc_id: str) -> dict[str, Any] | None:
    _schema_for(collection)
    row = db.execute(
        f"SELECT data FROM {collection} WHERE id = ?",  # noqa: S608
        (doc_id,),
    ).fetchone()
    if row is None:
        return None
    return _validate(collection, doc_id, json.loads(row["data"]))


class Transaction:
    """
    Handle passed to a ``run_transaction`` callback.

    Reads go straight to the database, which is locked for writing for the
    lifetime of the transaction. Writes are queued and applied in order
    when the callback returns.
    """

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db
        self._writes: list[_Write] = []

    def _check_readable(self) -> None:
        if self._writes:
            msg = "All reads must precede all writes within a transaction"
            raise ReadAfterWriteError(msg)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one document by id, or None when absent."""
        self._check_readable()
        return _get(self._db, collection, doc_id)

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read documents matching all equality/range filters."""
        self._check_readable()
        return _query(self._db, collection, where, order_by, descending, limit)

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""
        _schema_for(collection)
        self._writes.append(_Write("set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document; values may be ``Increment``."""
        _schema_for(collection)
        self._writes.append(_Write("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document if it exists."""
        _schema_for(collection)
        self._writes.append(_Write("delete", collection, doc_id, None))

    def _apply(self) -> None:
        for write in self._writes:
            if write.kind == "delete":
                self._db.execute(
                    f"DELETE FROM {write.collection} WHERE id = ?",  # noqa: S608
                    (write.doc_id,),
                )
                continue

            fields = write.data or {}
            if write.kind == "set":
                document = fields
            else:
                row = self._db.execute(
                    f"SELECT data FROM {write.collection} WHERE id = ?",  # noqa: S608
                    (write.doc_id,),
                ).fetchone()
                if row is None:
                    msg = f"Cannot update missing document {write.collection}/{write.doc_id}"
                    raise MissingDocumentError(msg)
                document = json.loads(row["data"])
                for field, value in fields.items():
                    if isinstance(value, Increment):
                        document[field] = document.get(field, 0) + value.delta
                    else:
                        document[field] = value

            normalized = _validate(write.collection, write.doc_id, document)
            self._db.execute(
                f"INSERT OR REPLACE INTO {write.collection} (id, data) VALUES (?, ?)",  # noqa: S608
                (write.doc_id, json.dumps(normalized, sort_keys=True)),
            )


class DocumentStore:
    """
    Persistence service for the ``users``, ``quests`` and ``applications`` collections.

    Writes only happen inside ``run_transaction``. Several store instances
    may share one database file; SQLite's write lock serializes them and
    contended transactions are retried from the start.
    """

    def __init__(
        self,
        db_path: str,
        *,
        busy_timeout_ms: int,
        max_transaction_attempts: int,
        retry_backoff_seconds: float,
    ) -> None:
        self._lock = RLock()
        self._max_attempts = max_transaction_attempts
        self._backoff = retry_backoff_seconds
        self._logger = get_logger(__name__)
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        self._init_schema()

    def _init_schema(self) -> None:
        statements: list[str] = []
        for collection in COLLECTION_SCHEMAS:
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {collection} ("
                "id TEXT PRIMARY KEY, "
                "data TEXT NOT NULL CHECK (json_valid(data)));"
            )
            for field in _INDEXED_FIELDS.get(collection, ()):
                statements.append(
                    f"CREATE INDEX IF NOT EXISTS ix_{collection}_{field} "
                    f"ON {collection} (json_extract(data, '$.{field}'));"
                )
        with self._lock:
            self._db.executescript("\n".join(statements))
            self._db.commit()

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """
        Run ``fn`` atomically and return its result.

        Any exception rolls back every queued write and propagates.
        Lock contention re-runs ``fn`` from scratch against fresh state.

        Raises:
            ServiceError: TRANSACTION_FAILED when contention persists
                after the configured number of attempts.
        """
        attempt = 0
        while True:
            attempt += 1
            with self._lock:
                txn = Transaction(self._db)
                try:
                    self._db.execute("BEGIN IMMEDIATE")
                    result = fn(txn)
                    txn._apply()
                    self._db.commit()
                    return result
                except sqlite3.OperationalError as exc:
                    with contextlib.suppress(sqlite3.Error):
                        self._db.execute("ROLLBACK")
                    if "locked" not in str(exc).lower() and "busy" not in str(exc).lower():
                        raise
                    if attempt >= self._max_attempts:
                        self._logger.warning(
                            "Transaction abandoned after contention",
                            extra={"attempts": attempt, "reason": str(exc)},
                        )
                        raise ServiceError(
                            "TRANSACTION_FAILED",
                            "The operation could not be completed, please retry",
                            503,
                            {"attempts": attempt},
                        ) from exc
                except Exception:
                    with contextlib.suppress(sqlite3.Error):
                        self._db.execute("ROLLBACK")
                    raise
            self._logger.debug("Retrying contended transaction", extra={"attempt": attempt})
            time.sleep(self._backoff * attempt)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one committed document by id."""
        with self._lock:
            return _get(self._db, collection, doc_id)

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read committed documents matching all filters."""
        with self._lock:
            return _query(self._db, collection, where, order_by, descending, limit)

    def count(self, collection: str, where: Sequence[Filter] = ()) -> int:
        """Count committed documents matching all filters."""
        sql, params = _build_select(collection, "COUNT(*)", where)
        with self._lock:
            row = self._db.execute(sql, params).fetchone()
        return int(row[0])

    def count_by(self, collection: str, field: str) -> dict[str, int]:
        """Count committed documents grouped by one field."""
        expr = _field_expr(collection, field)
        with self._lock:
            rows = self._db.execute(
                f"SELECT {expr} AS value, COUNT(*) AS total "  # noqa: S608
                f"FROM {collection} GROUP BY value"
            ).fetchall()
        return {str(row["value"]): int(row["total"]) for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
