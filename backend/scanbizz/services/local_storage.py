# Overview: Device-local persistent key-value storage for string blobs.

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LocalStorageEntry
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when local storage cannot be read or written."""
    pass


class LocalStorage:
    """
    Synchronous get/set of string blobs scoped to this device.

    Backed by the local_storage_entries table. Every write commits
    immediately so that a value is durable once set() returns.
    """

    def get(self, key: str) -> str | None:
        try:
            entry = db.session.get(LocalStorageEntry, key)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"Failed to read {key!r} from local storage") from exc
        return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("local storage values must be strings")
        try:
            entry = db.session.get(LocalStorageEntry, key)
            if entry is None:
                entry = LocalStorageEntry(key=key, value=value, updated_at=utcnow())
                db.session.add(entry)
            else:
                entry.value = value
                entry.updated_at = utcnow()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Local storage write failed for %s", key)
            raise StorageError(f"Failed to write {key!r} to local storage") from exc

    def remove(self, key: str) -> None:
        try:
            db.session.query(LocalStorageEntry).filter_by(key=key).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"Failed to remove {key!r} from local storage") from exc

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"Local storage entry {key!r} is not valid JSON") from exc

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, separators=(",", ":")))
