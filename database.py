import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

from config import settings
from errors import StorageError

logger = logging.getLogger(__name__)

# Collections managed by the store and the body fields indexed for equality lookups.
COLLECTIONS: Dict[str, List[str]] = {
    "books": [],
    "comments": ["bookId"],
}


def generate_id() -> str:
    """Return a new opaque document id (24 lowercase hex characters)."""
    return uuid.uuid4().hex[:24]


def get_db_connection(db_file: str, timeout: float) -> sqlite3.Connection:
    """Opens a SQLite connection shared by the threads serving requests.

    Autocommit mode is used so transactions are begun explicitly by the store.
    """
    conn = sqlite3.connect(db_file, timeout=timeout, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    # WAL gives better concurrent read access
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def create_tables(conn: sqlite3.Connection, collections: Dict[str, List[str]] = COLLECTIONS) -> None:
    """Creates one document table per collection if it does not exist yet."""
    for name, indexed_fields in collections.items():
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {name} (
                id TEXT PRIMARY KEY,
                revision INTEGER NOT NULL DEFAULT 0,
                body TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        for field in indexed_fields:
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{name}_{field} "
                f"ON {name}(json_extract(body, '$.{field}'))"
            )


def _path(field: str) -> str:
    return f"$.{field}"


class DocumentStore:
    """A small document store on top of SQLite.

    Each collection is a table of ``(id, revision, body)`` rows where ``body``
    holds the document fields as JSON. Documents are returned as plain dicts
    carrying ``_id`` and ``__v`` (the revision) next to their fields.

    Every mutation bumps the revision. All access goes through one connection
    guarded by a re-entrant lock; ``transaction()`` holds that lock until it
    commits, so grouped writes are atomic with respect to other callers.
    """

    def __init__(self, db_file: Optional[str] = None, timeout: Optional[float] = None,
                 collections: Dict[str, List[str]] = COLLECTIONS) -> None:
        self.db_file = db_file or settings.database_file
        self.timeout = settings.database_timeout if timeout is None else timeout
        self.collections = collections
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    # ------------------------- Lifecycle ------------------------- #
    def open(self) -> "DocumentStore":
        with self._lock:
            if self._conn is not None:
                return self
            try:
                self._conn = get_db_connection(self.db_file, self.timeout)
                create_tables(self._conn, self.collections)
            except sqlite3.Error as e:
                logger.error(f"Could not open document store at {self.db_file}: {e}")
                raise StorageError("open", e) from e
            logger.info(f"Document store opened: {self.db_file}")
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.error(f"Error closing document store: {e}")
                raise StorageError("close", e) from e
            finally:
                self._conn = None
                self._depth = 0

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "DocumentStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------- Low level ------------------------- #
    def _table(self, collection: str) -> str:
        if collection not in self.collections:
            raise ValueError(f"Unknown collection: {collection}")
        return collection

    def _execute(self, operation: str, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            if self._conn is None:
                logger.error(f"Storage operation '{operation}' attempted on a closed store")
                raise StorageError(operation, "store is not open")
            try:
                return self._conn.execute(sql, tuple(params))
            except sqlite3.Error as e:
                logger.error(f"Storage operation '{operation}' failed: {e}")
                raise StorageError(operation, e) from e

    def _query(self, operation: str, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            cursor = self._execute(operation, sql, params)
            try:
                return cursor.fetchall()
            except sqlite3.Error as e:
                logger.error(f"Storage operation '{operation}' failed while reading: {e}")
                raise StorageError(operation, e) from e

    @staticmethod
    def _to_document(doc_id: str, revision: int, body: str) -> Dict[str, Any]:
        doc = json.loads(body)
        doc["_id"] = doc_id
        doc["__v"] = revision
        return doc

    @staticmethod
    def _to_body(fields: Dict[str, Any]) -> str:
        return json.dumps({k: v for k, v in fields.items() if k not in ("_id", "__v")})

    @contextmanager
    def transaction(self) -> Iterator["DocumentStore"]:
        """Groups store calls into one SQLite transaction.

        Nested calls join the outermost transaction. Any exception rolls the
        whole transaction back and is re-raised.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._execute("begin", "BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._rollback()
                raise
            self._depth -= 1
            if outermost:
                try:
                    self._execute("commit", "COMMIT")
                except StorageError:
                    self._rollback()
                    raise

    def _rollback(self) -> None:
        if self._conn is None or not self._conn.in_transaction:
            return
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # The original exception is already propagating
            logger.error(f"Rollback failed: {e}")

    def ping(self) -> bool:
        self._query("ping", "SELECT 1")
        return True

    # ------------------------- Collection operations ------------------------- #
    def insert(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        table = self._table(collection)
        doc_id = generate_id()
        self._execute(
            "insert",
            f"INSERT INTO {table} (id, revision, body) VALUES (?, 0, ?)",
            (doc_id, self._to_body(fields)),
        )
        return self.find_by_id(collection, doc_id)

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        table = self._table(collection)
        rows = self._query("find_by_id", f"SELECT id, revision, body FROM {table} WHERE id = ?", (doc_id,))
        if not rows:
            return None
        row = rows[0]
        return self._to_document(row["id"], row["revision"], row["body"])

    def find_by_ids(self, collection: str, doc_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Returns the documents found for ``doc_ids``, keyed by id. Missing ids are absent."""
        table = self._table(collection)
        if not doc_ids:
            return {}
        placeholders = ", ".join("?" for _ in doc_ids)
        rows = self._query(
            "find_by_ids",
            f"SELECT id, revision, body FROM {table} WHERE id IN ({placeholders})",
            doc_ids,
        )
        return {row["id"]: self._to_document(row["id"], row["revision"], row["body"]) for row in rows}

    def find_all(self, collection: str) -> List[Dict[str, Any]]:
        table = self._table(collection)
        rows = self._query("find_all", f"SELECT id, revision, body FROM {table} ORDER BY rowid")
        return [self._to_document(row["id"], row["revision"], row["body"]) for row in rows]

    def find_many(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        table = self._table(collection)
        rows = self._query(
            "find_many",
            f"SELECT id, revision, body FROM {table} WHERE json_extract(body, ?) = ? ORDER BY rowid",
            (_path(field), value),
        )
        return [self._to_document(row["id"], row["revision"], row["body"]) for row in rows]

    def count(self, collection: str) -> int:
        table = self._table(collection)
        rows = self._query("count", f"SELECT COUNT(*) AS n FROM {table}")
        return rows[0]["n"]

    def push(self, collection: str, doc_id: str, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """Appends ``value`` to the array ``field`` and bumps the revision in one UPDATE.

        Returns the updated document, or None when ``doc_id`` does not exist.
        """
        table = self._table(collection)
        with self.transaction():
            cursor = self._execute(
                "push",
                f"UPDATE {table} SET body = json_insert(body, ?, ?), revision = revision + 1 WHERE id = ?",
                (f"{_path(field)}[#]", value, doc_id),
            )
            if cursor.rowcount == 0:
                return None
            return self.find_by_id(collection, doc_id)

    def pull_all(self, collection: str, doc_id: str, field: str, values: List[Any]) -> Optional[Dict[str, Any]]:
        """Removes every occurrence of ``values`` from the array ``field``."""
        with self.transaction():
            doc = self.find_by_id(collection, doc_id)
            if doc is None:
                return None
            doc[field] = [v for v in doc.get(field, []) if v not in values]
            self._execute(
                "pull_all",
                f"UPDATE {self._table(collection)} SET body = ?, revision = revision + 1 WHERE id = ?",
                (self._to_body(doc), doc_id),
            )
            return self.find_by_id(collection, doc_id)

    def set_field(self, collection: str, doc_id: str, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """Replaces ``field`` with ``value`` and bumps the revision. None when ``doc_id`` does not exist."""
        table = self._table(collection)
        with self.transaction():
            cursor = self._execute(
                "set_field",
                f"UPDATE {table} SET body = json_set(body, ?, json(?)), revision = revision + 1 WHERE id = ?",
                (_path(field), json.dumps(value), doc_id),
            )
            if cursor.rowcount == 0:
                return None
            return self.find_by_id(collection, doc_id)

    def delete_one(self, collection: str, doc_id: str) -> bool:
        table = self._table(collection)
        cursor = self._execute("delete_one", f"DELETE FROM {table} WHERE id = ?", (doc_id,))
        return cursor.rowcount > 0

    def delete_many(self, collection: str, field: Optional[str] = None, value: Any = None) -> int:
        """Deletes the documents whose ``field`` equals ``value``, or every document when no field is given."""
        table = self._table(collection)
        if field is None:
            cursor = self._execute("delete_many", f"DELETE FROM {table}")
        else:
            cursor = self._execute(
                "delete_many",
                f"DELETE FROM {table} WHERE json_extract(body, ?) = ?",
                (_path(field), value),
            )
        return cursor.rowcount

    def delete_by_ids(self, collection: str, doc_ids: List[str]) -> int:
        table = self._table(collection)
        if not doc_ids:
            return 0
        placeholders = ", ".join("?" for _ in doc_ids)
        cursor = self._execute("delete_by_ids", f"DELETE FROM {table} WHERE id IN ({placeholders})", doc_ids)
        return cursor.rowcount

    def lookup(self, collection: str, from_collection: str, local_field: str,
               foreign_field: str, as_field: str) -> List[Dict[str, Any]]:
        """Left-joins every document of ``collection`` with ``from_collection``.

        ``local_field`` may hold a scalar or an array; array elements are
        matched in stored order. Matches are attached to each document as the
        list ``as_field``; values with no match contribute nothing.
        """
        local = self._table(collection)
        foreign = self._table(from_collection)
        params: List[Any] = []

        if local_field == "_id":
            source = ""
            local_value = "l.id"
            order = "l.rowid, f.rowid"
        else:
            source = "LEFT JOIN json_each(l.body, ?) AS r ON 1"
            params.append(_path(local_field))
            local_value = "r.value"
            order = "l.rowid, r.key, f.rowid"

        if foreign_field == "_id":
            foreign_value = "f.id"
        else:
            foreign_value = "json_extract(f.body, ?)"
            params.append(_path(foreign_field))

        rows = self._query(
            "lookup",
            f"""
            SELECT l.id AS l_id, l.revision AS l_revision, l.body AS l_body,
                   f.id AS f_id, f.revision AS f_revision, f.body AS f_body
            FROM {local} AS l
            {source}
            LEFT JOIN {foreign} AS f ON {foreign_value} = {local_value}
            ORDER BY {order}
            """,
            params,
        )

        results: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            doc = results.get(row["l_id"])
            if doc is None:
                doc = self._to_document(row["l_id"], row["l_revision"], row["l_body"])
                doc[as_field] = []
                results[row["l_id"]] = doc
            if row["f_id"] is not None:
                doc[as_field].append(self._to_document(row["f_id"], row["f_revision"], row["f_body"]))
        return list(results.values())
