"""JSON document store.

Each collection is one pretty-printed JSON array on disk. Collections are
always read and written whole; callers that read, modify and write a
collection back must do so inside ``store.locked(...)`` so concurrent
requests cannot lose each other's updates.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Dict, Iterator, List

from bson import ObjectId
from pydantic import BaseModel

from config import settings

logger = logging.getLogger(__name__)

USERS = "users"
ITEMS = "items"
ACTIVITIES = "activities"
COLLECTIONS = (USERS, ITEMS, ACTIVITIES)


def new_id() -> str:
    """Return a unique id whose leading bytes encode the creation time."""
    return str(ObjectId())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DocumentStore:
    def __init__(self, data_dir: str | os.PathLike):
        self.data_dir = Path(data_dir)
        self._locks: Dict[str, RLock] = {}
        self._locks_guard = Lock()

    # ------------------------------------------------------------------
    # Helpers
    def _path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def _lock_for(self, name: str) -> RLock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = RLock()
            return lock

    # ------------------------------------------------------------------
    # Public API
    def initialize(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for name in COLLECTIONS:
            path = self._path(name)
            if not path.exists():
                path.write_text("[]", encoding="utf-8")

    @contextmanager
    def locked(self, *names: str) -> Iterator["DocumentStore"]:
        """Hold the locks of ``names`` (in sorted order) for a read-modify-write cycle."""
        locks = [self._lock_for(name) for name in sorted(set(names))]
        for lock in locks:
            lock.acquire()
        try:
            yield self
        finally:
            for lock in reversed(locks):
                lock.release()

    def load(self, name: str) -> List[Dict[str, Any]]:
        path = self._path(name)
        with self._lock_for(name):
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return []
            except OSError as e:
                logger.error(f"Error reading {path.name}: {e}")
                return []
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Error reading {path.name}: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"Error reading {path.name}: expected a JSON array, got {type(data).__name__}")
            return []
        return [record for record in data if isinstance(record, dict)]

    def save(self, name: str, records: List[Dict[str, Any]]) -> None:
        path = self._path(name)
        with self._lock_for(name):
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=str(path.parent), suffix=".tmp") as tmp:
                tmp.write(json.dumps(list(records), indent=2, ensure_ascii=False))
                tmp_path = Path(tmp.name)
            tmp_path.replace(path)

    def save_all(self, changes: Dict[str, List[Dict[str, Any]]]) -> None:
        """Write several collections as one change.

        If any write fails, the collections already written are put back to
        what they held before and the error is re-raised.
        """
        with self.locked(*changes):
            written = []
            try:
                for name, records in changes.items():
                    previous = self.load(name)
                    self.save(name, records)
                    written.append((name, previous))
            except Exception:
                logger.error(f"Write failed, restoring {[name for name, _ in written]}")
                for name, previous in reversed(written):
                    self.save(name, previous)
                raise

    def create_document(self, name: str, record: BaseModel | Dict[str, Any]) -> str:
        """Append one record to a collection and return its id."""
        data = record.model_dump(by_alias=True) if isinstance(record, BaseModel) else dict(record)
        data.setdefault("id", new_id())
        with self.locked(name):
            records = self.load(name)
            records.append(data)
            self.save(name, records)
        return data["id"]

    def get_documents(self, name: str, **filters: Any) -> List[Dict[str, Any]]:
        """Return records of ``name`` whose fields equal every keyword filter."""
        return [
            record
            for record in self.load(name)
            if all(record.get(key) == value for key, value in filters.items())
        ]


db = DocumentStore(settings.DATA_DIR)


def get_store() -> DocumentStore:
    return db
