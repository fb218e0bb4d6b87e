# Overview: Connectivity tracking and sequential replay of the offline queue.

"""
Sync Reconciler

replay() drains the offline queue of the current identity and applies each
action through RemoteMutations, one at a time and in enqueue order. An action
is only considered done once its write returned.

    all applied     -> queue cleared, last sync timestamp updated
    first failure   -> stop; the confirmed prefix is dropped, the failed action
                       and everything after it stay queued; error reported

Replay never runs twice at once: a manual retry and an offline->online
transition share one lock, and a second caller gets "already running" back
instead of waiting.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from .activity_service import ActivityLog
from .offline_queue import DEFAULT_SYNC_INTERVAL, OfflineQueue
from .remote_mutations import RemoteMutations, describe_action
from .remote_store import RemoteStore, RemoteStoreError
from .session_service import SessionService
from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ReplayInProgressError(Exception):
    """Raised when a replay is requested while another one is running."""
    pass


class ConnectivityMonitor:
    """
    Online/offline flag for the device.

    Listeners run on every change; the offline->online transition is what
    triggers replay. The flag is mirrored onto the remote store client so an
    in-process store behaves as unreachable while offline.
    """

    def __init__(self, remote: RemoteStore, online: bool = True) -> None:
        self._remote = remote
        self._online = online
        self._remote.online = online
        self._listeners: list[ConnectivityListener] = []

    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """Returns True when the flag actually changed."""
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        self._remote.online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in self._listeners:
            listener(online)
        return True


@dataclass(frozen=True)
class SyncResult:
    applied: int = 0
    skipped: int = 0
    remaining: int = 0
    error: str | None = None
    failed_action_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "applied": self.applied,
            "skipped": self.skipped,
            "remaining": self.remaining,
            "error": self.error,
            "failed_action_id": self.failed_action_id,
        }


class SyncReconciler:
    def __init__(
        self,
        queue: OfflineQueue,
        mutations: RemoteMutations,
        session: SessionService,
        activity: ActivityLog,
        *,
        sync_interval: timedelta = DEFAULT_SYNC_INTERVAL,
        clock: Callable = utcnow,
    ) -> None:
        self._queue = queue
        self._sync_interval = sync_interval
        self._mutations = mutations
        self._session = session
        self._activity = activity
        self._clock = clock
        self._lock = threading.Lock()
        self.last_result: SyncResult | None = None

    def replay(self, uid: str | None = None) -> SyncResult:
        """Replay the queue of `uid`, or of the signed-in identity when omitted."""
        if not self._lock.acquire(blocking=False):
            raise ReplayInProgressError("Sync already running")
        try:
            self.last_result = self._replay_locked(uid)
            return self.last_result
        finally:
            self._lock.release()

    def _replay_locked(self, uid: str | None) -> SyncResult:
        if uid is None:
            uid = self._session.require_identity().uid
        if self._queue.uid != uid:
            self._queue.bind(uid)

        actions = self._queue.drain()
        if not actions:
            self._queue.mark_synced(self._clock())
            return SyncResult()

        logger.info("Replaying %d queued actions for %s", len(actions), uid)
        applied = skipped = confirmed = 0
        for action in actions:
            try:
                if self._mutations.apply(uid, action):
                    applied += 1
                    self._activity.record(uid, describe_action(action))
                else:
                    skipped += 1
            except (RemoteStoreError, LookupError, ValueError) as exc:
                logger.warning(
                    "Replay stopped at %s (%s): %s", action.type.value, action.action_id, exc
                )
                self._queue.discard_head(confirmed)
                return SyncResult(
                    applied=applied,
                    skipped=skipped,
                    remaining=len(actions) - confirmed,
                    error=str(exc) or type(exc).__name__,
                    failed_action_id=action.action_id,
                )
            confirmed += 1

        self._queue.clear()
        self._queue.mark_synced(self._clock())
        logger.info("Replay complete: %d applied, %d already applied", applied, skipped)
        return SyncResult(applied=applied, skipped=skipped)

    def status(self) -> dict:
        identity = self._session.identity
        if identity is None or self._queue.uid != identity.uid:
            return {"pending": 0, "last_sync": None, "due": False, "actions": [], "last_result": None}
        actions = self._queue.drain()
        last_sync = self._queue.last_sync_timestamp()
        return {
            "pending": len(actions),
            "last_sync": to_utc_z(last_sync),
            "due": self._queue.is_due_for_sync(self._sync_interval, now=self._clock()),
            "actions": [a.to_dict() for a in actions],
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
