"""Durable storage backends for the accumulated record set."""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List

from ..engine.records import AccumulatedRecord, coerce_datetime, utcnow
from ..errors import PersistenceError


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._ensure_schema(conn)
                self._connections[path] = conn
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS accumulated_records (
                position INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                source_name TEXT,
                payload TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS store_meta (
                key TEXT PRIMARY KEY,
                value TEXT
            );
            """
        )
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class RecordStorage(ABC):
    """Persist and restore the accumulated set as a whole."""

    @abstractmethod
    def save(self, records: Iterable[AccumulatedRecord]) -> None: ...

    @abstractmethod
    def load(self) -> List[AccumulatedRecord]: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def last_updated(self) -> datetime | None: ...


class SQLiteRecordStorage(RecordStorage):
    """Records kept as JSON payload rows in sorted position order."""

    def __init__(self, path: Path, manager: SQLiteManager | None = None) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()
        self._lock = Lock()
        try:
            self._conn = self.manager.connect(path)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Cannot open record store {path}: {exc}") from exc

    def save(self, records: Iterable[AccumulatedRecord]) -> None:
        rows = [
            (position, record.name, record.source_name, json.dumps(record.to_dict(), ensure_ascii=False))
            for position, record in enumerate(records)
        ]
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM accumulated_records")
                    self._conn.executemany(
                        "INSERT INTO accumulated_records(position, name, source_name, payload) VALUES (?, ?, ?, ?)",
                        rows,
                    )
                    self._conn.execute(
                        "INSERT OR REPLACE INTO store_meta(key, value) VALUES ('last_updated', ?)",
                        (utcnow().isoformat(),),
                    )
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to save records to {self.path}: {exc}") from exc

    def load(self) -> List[AccumulatedRecord]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT payload FROM accumulated_records ORDER BY position"
                ).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to load records from {self.path}: {exc}") from exc
        try:
            return [AccumulatedRecord.from_dict(json.loads(row["payload"])) for row in rows]
        except (AttributeError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Corrupt record payload in {self.path}: {exc}") from exc

    def clear(self) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM accumulated_records")
                    self._conn.execute("DELETE FROM store_meta")
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to clear {self.path}: {exc}") from exc

    def last_updated(self) -> datetime | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM store_meta WHERE key = 'last_updated'"
                ).fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to read metadata from {self.path}: {exc}") from exc
        return coerce_datetime(row["value"]) if row else None


class JsonFileRecordStorage(RecordStorage):
    """Single JSON document, replaced atomically on every save."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = Lock()

    def save(self, records: Iterable[AccumulatedRecord]) -> None:
        document = {
            "last_updated": utcnow().isoformat(),
            "records": [record.to_dict() for record in records],
        }
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
                )
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except OSError as exc:
                raise PersistenceError(f"Failed to save records to {self.path}: {exc}") from exc

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to read {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceError(f"Unexpected document shape in {self.path}")
        return document

    def load(self) -> List[AccumulatedRecord]:
        with self._lock:
            document = self._read()
        try:
            return [AccumulatedRecord.from_dict(item) for item in document.get("records", [])]
        except (AttributeError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Corrupt record payload in {self.path}: {exc}") from exc

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as exc:
                raise PersistenceError(f"Failed to clear {self.path}: {exc}") from exc

    def last_updated(self) -> datetime | None:
        with self._lock:
            document = self._read()
        return coerce_datetime(document.get("last_updated"))


def open_storage(backend: str, path: Path, manager: SQLiteManager | None = None) -> RecordStorage:
    if backend == "json":
        return JsonFileRecordStorage(path)
    return SQLiteRecordStorage(path, manager)


__all__ = [
    "JsonFileRecordStorage",
    "RecordStorage",
    "SQLiteManager",
    "SQLiteRecordStorage",
    "open_storage",
]
