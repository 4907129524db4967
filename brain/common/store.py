"""
Row Store

The storage boundary for the pipeline: durable per-row create/read/update/
delete with equality filtering, plus conditional update and delete used to
make capture resolution atomic.

Two backends:
- MemoryStore: process-local, used by tests and one-shot runs
- SqliteStore: a single SQLite database shared by every process that opens it

Rows are plain JSON-compatible dicts keyed by "id". Callers always receive
copies, so mutating a returned row never changes stored state.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional
from uuid import uuid4

from .errors import DuplicateRow, NotFound

logger = logging.getLogger("brain.common.store")


class RowStore(ABC):
    """Abstract table-of-rows storage"""

    @abstractmethod
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a row. Assigns a uuid4 "id" when the row has none.

        Raises:
            DuplicateRow: a row with the same id already exists
        """

    @abstractmethod
    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def select(
        self,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Rows whose fields equal every value in `where`, in insertion order unless `order_by` is given"""

    @abstractmethod
    def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Raises NotFound when the row does not exist"""

    @abstractmethod
    def compare_and_update(
        self,
        table: str,
        row_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any],
    ) -> bool:
        """
        Apply `fields` only if the row currently matches `expected`.

        Returns:
            True if the update was applied, False if the row had changed

        Raises:
            NotFound: the row does not exist
        """

    @abstractmethod
    def delete(self, table: str, row_id: str) -> bool:
        pass

    @abstractmethod
    def delete_if(self, table: str, row_id: str, expected: Dict[str, Any]) -> bool:
        """
        Delete the row only if it currently matches `expected`.

        Returns:
            True if the row was deleted, False if it had changed

        Raises:
            NotFound: the row does not exist
        """


class MemoryStore(RowStore):
    """In-process store. Every operation holds a single lock."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(name, {})

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = _with_id(row)
        with self._lock:
            rows = self._table(table)
            if row["id"] in rows:
                raise DuplicateRow(table, row["id"])
            rows[row["id"]] = row
        return copy.deepcopy(row)

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._table(table).get(row_id)
            return copy.deepcopy(row) if row is not None else None

    def select(
        self,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._table(table).values()]
        return _filter_and_sort(rows, where, order_by, descending)

    def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            if row_id not in rows:
                raise NotFound(table, row_id)
            updated = {**rows[row_id], **copy.deepcopy(fields)}
            rows[row_id] = updated
            return copy.deepcopy(updated)

    def compare_and_update(
        self,
        table: str,
        row_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any],
    ) -> bool:
        with self._lock:
            rows = self._table(table)
            if row_id not in rows:
                raise NotFound(table, row_id)
            if not _matches(rows[row_id], expected):
                return False
            rows[row_id] = {**rows[row_id], **copy.deepcopy(fields)}
            return True

    def delete(self, table: str, row_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(row_id, None) is not None

    def delete_if(self, table: str, row_id: str, expected: Dict[str, Any]) -> bool:
        with self._lock:
            rows = self._table(table)
            if row_id not in rows:
                raise NotFound(table, row_id)
            if not _matches(rows[row_id], expected):
                return False
            del rows[row_id]
            return True


class SqliteStore(RowStore):
    """
    SQLite-backed store.

    Every table lives in one `rows` table keyed by (tbl, id) with the row
    body stored as JSON text. Each operation opens its own connection and
    every write runs in a single IMMEDIATE transaction, so separate store
    instances (the server and the CLI, say) on the same file never lose
    each other's writes and a failed write leaves nothing behind.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS rows (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            tbl TEXT NOT NULL,
            id TEXT NOT NULL,
            data TEXT NOT NULL,
            UNIQUE (tbl, id)
        )
    """

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect(write=True) as conn:
            conn.execute(self.SCHEMA)
        logger.debug("Opened row store at %s", self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=5.0, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextmanager
    def _connect(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if write:
                conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _fetch(self, conn: sqlite3.Connection, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        found = conn.execute("SELECT data FROM rows WHERE tbl = ? AND id = ?", (table, row_id)).fetchone()
        return json.loads(found[0]) if found else None

    def _write(self, conn: sqlite3.Connection, table: str, row: Dict[str, Any]) -> None:
        conn.execute("UPDATE rows SET data = ? WHERE tbl = ? AND id = ?", (_encode(row), table, row["id"]))

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = _with_id(row)
        data = _encode(row)
        try:
            with self._connect(write=True) as conn:
                conn.execute("INSERT INTO rows (tbl, id, data) VALUES (?, ?, ?)", (table, row["id"], data))
        except sqlite3.IntegrityError:
            raise DuplicateRow(table, row["id"])
        return json.loads(data)

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            return self._fetch(conn, table, row_id)

    def select(
        self,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            found = conn.execute("SELECT data FROM rows WHERE tbl = ? ORDER BY seq", (table,)).fetchall()
        return _filter_and_sort((json.loads(data) for (data,) in found), where, order_by, descending)

    def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._connect(write=True) as conn:
            row = self._fetch(conn, table, row_id)
            if row is None:
                raise NotFound(table, row_id)
            row.update(fields)
            self._write(conn, table, row)
        return json.loads(_encode(row))

    def compare_and_update(
        self,
        table: str,
        row_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any],
    ) -> bool:
        with self._connect(write=True) as conn:
            row = self._fetch(conn, table, row_id)
            if row is None:
                raise NotFound(table, row_id)
            if not _matches(row, expected):
                return False
            row.update(fields)
            self._write(conn, table, row)
            return True

    def delete(self, table: str, row_id: str) -> bool:
        with self._connect(write=True) as conn:
            cursor = conn.execute("DELETE FROM rows WHERE tbl = ? AND id = ?", (table, row_id))
            return cursor.rowcount > 0

    def delete_if(self, table: str, row_id: str, expected: Dict[str, Any]) -> bool:
        with self._connect(write=True) as conn:
            row = self._fetch(conn, table, row_id)
            if row is None:
                raise NotFound(table, row_id)
            if not _matches(row, expected):
                return False
            conn.execute("DELETE FROM rows WHERE tbl = ? AND id = ?", (table, row_id))
            return True


def _with_id(row: Dict[str, Any]) -> Dict[str, Any]:
    row = copy.deepcopy(row)
    row["id"] = row.get("id") or str(uuid4())
    return row


def _encode(row: Dict[str, Any]) -> str:
    return json.dumps(row, default=str)


def _sort_key(value: Any) -> tuple:
    # None sorts last ascending, first descending
    if value is None:
        return (1, "")
    return (0, value)


def _matches(row: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(row.get(key) == value for key, value in where.items())


def _filter_and_sort(
    rows: Iterable[Dict[str, Any]],
    where: Optional[Dict[str, Any]],
    order_by: Optional[str],
    descending: bool,
) -> List[Dict[str, Any]]:
    selected = [row for row in rows if _matches(row, where)]
    if order_by:
        # Equal keys keep insertion order ascending, reverse insertion order descending
        if descending:
            selected.reverse()
        selected.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=descending)
    return selected
