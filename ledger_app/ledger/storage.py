"""Key-value persistence for the ledger record.

Two adapters share one contract. ``get``/``set``/``add`` never raise: a
failure is logged and reported as ``{}``/``False``/``None``. The strict
``read``/``write``/``increment`` raise :class:`StorageUnavailable` and are
what reconcilers use inside :meth:`KeyValueStore.transaction`, so a failed
read skips the tick instead of being mistaken for a first run.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional

from .models import coerce_count

LOGGER = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """The backing store could not be reached for this operation."""


class KeyValueStore:
    """Base adapter; subclasses implement the strict operations."""

    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        raise NotImplementedError

    def read(self, keys: Iterable[str]) -> Dict[str, Any]:
        raise NotImplementedError

    def write(self, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def increment(self, name: str, delta: int) -> int:
        """Atomically add ``delta`` to a counter field and return the new value."""
        with self.transaction():
            current = coerce_count(self.read([name]).get(name))
            value = current + int(delta)
            self.write({name: value})
            return value

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        try:
            return self.read(keys)
        except StorageUnavailable as exc:
            LOGGER.warning("Storage read failed: %s", exc)
            return {}

    def set(self, record: Dict[str, Any]) -> bool:
        try:
            self.write(record)
        except StorageUnavailable as exc:
            LOGGER.warning("Storage write failed: %s", exc)
            return False
        return True

    def add(self, name: str, delta: int) -> Optional[int]:
        try:
            return self.increment(name, delta)
        except StorageUnavailable as exc:
            LOGGER.warning("Storage increment of %s failed: %s", name, exc)
            return None


class MemoryStore(KeyValueStore):
    """Process-local store; one re-entrant lock serializes every writer."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.RLock()
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StorageUnavailable("memory store disabled")

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        self._check()
        with self._lock:
            yield self

    def read(self, keys: Iterable[str]) -> Dict[str, Any]:
        self._check()
        with self._lock:
            return {key: self._data[key] for key in keys if key in self._data}

    def write(self, record: Dict[str, Any]) -> None:
        self._check()
        with self._lock:
            self._data.update(record)

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)


class SqliteStore(KeyValueStore):
    """SQLite-backed store shared by every page instance on this device.

    Each thread opens its own connection. ``transaction`` takes SQLite's
    write lock up front (``BEGIN IMMEDIATE``), which serializes
    read-modify-write cycles across threads and processes alike. A database
    that cannot be opened at construction is retried on every later access.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()
        self._schema_ready = False
        try:
            self._init_db()
        except StorageUnavailable as exc:
            LOGGER.warning("Ledger database %s unavailable, will retry: %s", self.db_path, exc)

    def _connect(self) -> sqlite3.Connection:
        if not self._schema_ready:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageUnavailable(str(exc)) from exc
        return sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ledger_fields (
                name TEXT PRIMARY KEY,
                value TEXT
            )
            """
        )

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        active = getattr(self._local, "conn", None)
        if active is not None:
            try:
                yield active
            except sqlite3.Error as exc:
                raise StorageUnavailable(str(exc)) from exc
            return
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc
        try:
            if not self._schema_ready:
                self._create_schema(conn)
                self._schema_ready = True
            yield conn
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn():
            pass

    @contextmanager
    def transaction(self) -> Iterator["SqliteStore"]:
        if getattr(self._local, "conn", None) is not None:
            yield self
            return
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc
        creating = not self._schema_ready
        try:
            conn.execute("BEGIN IMMEDIATE")
            if creating:
                self._create_schema(conn)
        except sqlite3.Error as exc:
            conn.close()
            raise StorageUnavailable(str(exc)) from exc
        self._local.conn = conn
        try:
            yield self
            conn.commit()
            if creating:
                self._schema_ready = True
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageUnavailable(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def read(self, keys: Iterable[str]) -> Dict[str, Any]:
        names = list(keys)
        if not names:
            return {}
        placeholders = ", ".join("?" for _ in names)
        with self._get_conn() as conn:
            rows = conn.execute(
                f"SELECT name, value FROM ledger_fields WHERE name IN ({placeholders})", names
            ).fetchall()
        record: Dict[str, Any] = {}
        for name, raw in rows:
            try:
                record[name] = json.loads(raw) if raw is not None else None
            except (TypeError, ValueError):
                LOGGER.warning("Ignoring malformed stored value for %s", name)
        return record

    def write(self, record: Dict[str, Any]) -> None:
        if not record:
            return
        rows = [(name, json.dumps(value)) for name, value in record.items()]
        with self.transaction(), self._get_conn() as conn:
            conn.executemany(
                "INSERT INTO ledger_fields (name, value) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
                rows,
            )
        LOGGER.debug("Persisted fields %s", ", ".join(sorted(record)))
