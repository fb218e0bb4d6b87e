# Overview: Hierarchical remote keyed store with change subscriptions.

"""
Remote Keyed Store

The cloud backend is treated as a JSON tree addressed by slash-separated
paths. Supported operations mirror what the app needs from a realtime
database:

- get(path): point read (None when absent)
- set(path, value): full overwrite; None deletes
- update(path, values): multi-path partial update, applied atomically;
  keys of `values` are paths relative to `path`
- push(path, value): append under a generated, chronologically ordered key
- remove(path)
- subscribe(path, callback): delivers the full snapshot at `path` now and
  after every change at, above or below it; returns an unsubscribe callable

Data is partitioned into documents by the first two path segments
("users/<uid>"), so every path must have at least two segments. A multi-path
update never spans documents, which is what makes it atomic.

Empty objects are pruned, as in the realtime database: setting the last child
of a node to None removes the node itself.
"""

from __future__ import annotations

import copy
import itertools
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import RemoteDocument
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

Snapshot = Any
Unsubscribe = Callable[[], None]


class RemoteStoreError(Exception):
    """Raised when the remote store rejects an operation."""
    pass


class RemoteUnavailableError(RemoteStoreError):
    """Raised when the remote store cannot be reached."""
    pass


def split_path(path: str) -> list[str]:
    segments = [s for s in path.strip("/").split("/") if s]
    for segment in segments:
        if segment in (".", "..") or any(c in segment for c in ".#$[]"):
            raise RemoteStoreError(f"Invalid path segment {segment!r} in {path!r}")
    return segments


_push_lock = threading.Lock()
_push_state = {"ms": 0, "seq": 0}


def generate_push_key() -> str:
    """
    Chronologically sortable key: millisecond timestamp, a sequence number
    for keys generated within the same millisecond, and a random suffix.
    """
    with _push_lock:
        now = int(time.time() * 1000)
        if now <= _push_state["ms"]:
            now = _push_state["ms"]
            _push_state["seq"] += 1
        else:
            _push_state["ms"], _push_state["seq"] = now, 0
        seq = _push_state["seq"]
    return f"{now:012x}{seq:04x}{secrets.token_hex(2)}"


def _normalize(value: Any) -> Any:
    """Deep-copy a JSON value, dropping None leaves and empty objects."""
    if isinstance(value, dict):
        result = {}
        for k, v in value.items():
            v = _normalize(v)
            if v is not None:
                result[str(k)] = v
        return result or None
    if isinstance(value, (list, tuple)):
        return _normalize({str(i): v for i, v in enumerate(value)})
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise RemoteStoreError(f"Unsupported value type {type(value).__name__}")


def _read_at(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def _write_at(tree: Any, segments: list[str], value: Any) -> Any:
    """Return `tree` with `value` written at `segments` (pruning empties)."""
    if not segments:
        return value
    head, rest = segments[0], segments[1:]
    node = dict(tree) if isinstance(tree, dict) else {}
    child = _write_at(node.get(head), rest, value)
    if child is None:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


def _related(a: list[str], b: list[str]) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


@dataclass
class _Subscription:
    segments: list[str]
    callback: Callable[[Snapshot], None]
    last: Any = field(default=None)


class RemoteStore:
    """
    Base implementation of the tree operations. Subclasses provide
    document persistence through _load() and _store().
    """

    def __init__(self) -> None:
        self.online = True
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, _Subscription] = {}

    # ---- persistence hooks ----

    def _load(self, root: str) -> Any:
        raise NotImplementedError

    def _store(self, root: str, document: Any) -> None:
        raise NotImplementedError

    # ---- helpers ----

    def _check_available(self) -> None:
        if not self.online:
            raise RemoteUnavailableError("Remote store is offline")

    def _locate(self, path: str) -> tuple[str, list[str], list[str]]:
        segments = split_path(path)
        if len(segments) < 2:
            raise RemoteStoreError(f"Path {path!r} must address an account subtree")
        return "/".join(segments[:2]), segments[2:], segments

    def _apply(self, root: str, writes: list[tuple[list[str], Any]], touched: list[list[str]]) -> None:
        with self._lock:
            self._check_available()
            document = copy.deepcopy(self._load(root))
            for relative, value in writes:
                document = _write_at(document, relative, _normalize(value))
            self._store(root, document)
        self._notify(touched)

    def _notify(self, touched: list[list[str]]) -> None:
        for sub_id, sub in list(self._subscriptions.items()):
            if sub_id not in self._subscriptions:
                continue
            if not any(_related(sub.segments, t) for t in touched):
                continue
            snapshot = self._read(sub.segments)
            if snapshot == sub.last:
                continue
            sub.last = snapshot
            try:
                sub.callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception("Subscriber for %s raised", "/".join(sub.segments))

    def _read(self, segments: list[str]) -> Any:
        root = "/".join(segments[:2])
        return copy.deepcopy(_read_at(self._load(root), segments[2:]))

    # ---- public API ----

    def get(self, path: str) -> Any:
        self._check_available()
        _, _, segments = self._locate(path)
        with self._lock:
            return self._read(segments)

    def set(self, path: str, value: Any) -> None:
        root, relative, segments = self._locate(path)
        self._apply(root, [(relative, value)], [segments])

    def update(self, path: str, values: dict) -> None:
        if not values:
            return
        root, relative, segments = self._locate(path)
        writes = []
        touched = []
        for key, value in values.items():
            child = split_path(key)
            if not child:
                raise RemoteStoreError("update keys must be non-empty paths")
            writes.append((relative + child, value))
            touched.append(segments + child)
        self._apply(root, writes, touched)

    def push(self, path: str, value: Any) -> str:
        key = generate_push_key()
        self.set(f"{path.rstrip('/')}/{key}", value)
        return key

    def remove(self, path: str) -> None:
        self.set(path, None)

    def subscribe(self, path: str, callback: Callable[[Snapshot], None]) -> Unsubscribe:
        self._check_available()
        _, _, segments = self._locate(path)
        sub_id = next(self._ids)
        with self._lock:
            snapshot = self._read(segments)
            sub = _Subscription(segments=segments, callback=callback, last=snapshot)
            self._subscriptions[sub_id] = sub
        callback(copy.deepcopy(snapshot))

        def unsubscribe() -> None:
            self._subscriptions.pop(sub_id, None)

        return unsubscribe

    def subscription_count(self) -> int:
        return len(self._subscriptions)


class MemoryRemoteStore(RemoteStore):
    """In-process remote store; the `online` flag simulates connectivity."""

    def __init__(self, initial: dict | None = None) -> None:
        super().__init__()
        self._documents: dict[str, Any] = {}
        for path, value in (initial or {}).items():
            self.set(path, value)

    def _load(self, root: str) -> Any:
        return self._documents.get(root)

    def _store(self, root: str, document: Any) -> None:
        if document is None:
            self._documents.pop(root, None)
        else:
            self._documents[root] = document


class SqlRemoteStore(RemoteStore):
    """
    Remote store persisted through SQLAlchemy in the "remote" bind.

    Each account subtree is one RemoteDocument row; optimistic versioning on
    the row rejects concurrent writers instead of losing updates.
    """

    def _load(self, root: str) -> Any:
        try:
            row = db.session.get(RemoteDocument, root)
        except OperationalError as exc:
            db.session.rollback()
            raise RemoteUnavailableError("Remote database unreachable") from exc
        return copy.deepcopy(row.body) if row else None

    def _store(self, root: str, document: Any) -> None:
        try:
            row = db.session.get(RemoteDocument, root)
            if document is None:
                if row is not None:
                    db.session.delete(row)
            elif row is None:
                db.session.add(RemoteDocument(root=root, body=document, updated_at=utcnow()))
            else:
                row.body = document
                row.updated_at = utcnow()
            db.session.commit()
        except OperationalError as exc:
            db.session.rollback()
            raise RemoteUnavailableError("Remote database unreachable") from exc
        except (StaleDataError, SQLAlchemyError) as exc:
            db.session.rollback()
            raise RemoteStoreError(f"Remote write rejected for {root}") from exc


def create_remote_store(backend: str) -> RemoteStore:
    if backend == "memory":
        return MemoryRemoteStore()
    if backend == "sql":
        return SqlRemoteStore()
    raise ValueError(f"Unknown remote store backend: {backend}")
