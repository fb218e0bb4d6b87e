# Overview: Durable FIFO of mutations made while the remote store is unreachable.

"""
Local Durable Queue

Pending actions are kept as one JSON array in local storage, per identity:

    scanbizz_pending_actions:<uid>   [ {action}, {action}, ... ]
    scanbizz_last_sync:<uid>         ISO-8601 timestamp of the last full replay

ORDERING: actions are returned in enqueue order. Nothing is deduplicated or
coalesced; two offline edits of the same product are both kept and replayed
in order. Each action carries an action_id that the reconciler uses as an
idempotency key against the remote applied-action ledger.

The last delivered catalog, sales bucket and store profile are also saved
here (OfflineSnapshots) so the cache has something to show when the app
starts without a connection.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .local_storage import LocalStorage, StorageError
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow

logger = logging.getLogger(__name__)

PENDING_ACTIONS_KEY = "scanbizz_pending_actions"
LAST_SYNC_KEY = "scanbizz_last_sync"
STOCK_KEY = "scanbizz_stock"
SALES_KEY = "scanbizz_sales"
STORE_INFO_KEY = "scanbizz_store_info"

DEFAULT_SYNC_INTERVAL = timedelta(hours=1)


class ActionType(str, Enum):
    ADD_PRODUCT = "AddProduct"
    UPDATE_PRODUCT = "UpdateProduct"
    SELL_PRODUCT = "SellProduct"
    UPDATE_STORE = "UpdateStore"
    RESET_SALES = "ResetSales"


class QueueNotBoundError(StorageError):
    """Raised when the queue is used before an identity is bound."""
    pass


@dataclass(frozen=True)
class PendingAction:
    type: ActionType
    payload: dict
    enqueued_at: datetime = field(default_factory=utcnow)
    action_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "data": self.payload,
            # Microsecond precision; a reloaded action equals the original
            "timestamp": self.enqueued_at.isoformat(timespec="microseconds") + "Z",
            "actionId": self.action_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PendingAction":
        try:
            return cls(
                type=ActionType(data["type"]),
                payload=dict(data.get("data") or {}),
                enqueued_at=parse_iso_datetime(data["timestamp"]),
                action_id=str(data["actionId"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Corrupt pending action in local storage: {data!r}") from exc


class OfflineQueue:
    """FIFO of PendingAction persisted in local storage, scoped to one identity."""

    def __init__(self, storage: LocalStorage, uid: str | None = None) -> None:
        self._storage = storage
        self._uid = uid

    @property
    def uid(self) -> str | None:
        return self._uid

    def bind(self, uid: str | None) -> None:
        """Scope the queue to `uid` (None unbinds). Persisted entries are untouched."""
        self._uid = uid

    def _key(self, base: str) -> str:
        if not self._uid:
            raise QueueNotBoundError("Offline queue is not bound to an identity")
        return f"{base}:{self._uid}"

    def _load(self) -> list[dict]:
        raw = self._storage.get_json(self._key(PENDING_ACTIONS_KEY), default=[])
        if not isinstance(raw, list):
            raise StorageError("Pending actions entry is not a list")
        return raw

    def enqueue(self, action: PendingAction) -> None:
        """Append `action`; raises StorageError if the write does not persist."""
        entries = self._load()
        entries.append(action.to_dict())
        self._storage.set_json(self._key(PENDING_ACTIONS_KEY), entries)
        logger.info("Queued %s (%s), %d pending", action.type.value, action.action_id, len(entries))

    def drain(self) -> list[PendingAction]:
        """Current contents in enqueue order; nothing is removed."""
        return [PendingAction.from_dict(entry) for entry in self._load()]

    def clear(self) -> None:
        self._storage.set_json(self._key(PENDING_ACTIONS_KEY), [])

    def discard_head(self, count: int) -> None:
        """Drop the first `count` actions (the confirmed prefix of a partial replay)."""
        if count <= 0:
            return
        entries = self._load()
        self._storage.set_json(self._key(PENDING_ACTIONS_KEY), entries[count:])

    def is_empty(self) -> bool:
        return not self._load()

    def __len__(self) -> int:
        return len(self._load())

    def last_sync_timestamp(self) -> datetime | None:
        return parse_iso_datetime(self._storage.get(self._key(LAST_SYNC_KEY)))

    def mark_synced(self, at: datetime | None = None) -> None:
        self._storage.set(self._key(LAST_SYNC_KEY), to_utc_z(at or utcnow()))

    def is_due_for_sync(self, interval: timedelta = DEFAULT_SYNC_INTERVAL, now: datetime | None = None) -> bool:
        last = self.last_sync_timestamp()
        if last is None:
            return True
        return (now or utcnow()) - last > interval


class OfflineSnapshots:
    """Last known remote projections, saved for offline start-up."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    def save(self, uid: str, *, stock: Any = None, sales: Any = None, store_info: Any = None) -> None:
        if stock is not None:
            self._storage.set_json(f"{STOCK_KEY}:{uid}", stock)
        if sales is not None:
            self._storage.set_json(f"{SALES_KEY}:{uid}", sales)
        if store_info is not None:
            self._storage.set_json(f"{STORE_INFO_KEY}:{uid}", store_info)

    def load(self, uid: str) -> dict:
        return {
            "stock": self._storage.get_json(f"{STOCK_KEY}:{uid}"),
            "sales": self._storage.get_json(f"{SALES_KEY}:{uid}"),
            "store_info": self._storage.get_json(f"{STORE_INFO_KEY}:{uid}"),
        }
