# Overview: Best-effort account activity trail kept in the remote store.

from __future__ import annotations

import logging
from typing import Callable

from .remote_store import RemoteStore, RemoteStoreError
from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


class ActivityLog:
    """
    Appends {action, timestamp} entries under users/<uid>/activityLog.

    Recording never fails the caller: the trail is informational and a
    missing entry must not undo a sale or a login that already happened.
    """

    def __init__(self, remote: RemoteStore, clock: Callable = utcnow) -> None:
        self._remote = remote
        self._clock = clock

    def record(self, uid: str, action: str) -> bool:
        try:
            self._remote.push(f"users/{uid}/activityLog", {
                "action": action,
                "timestamp": to_utc_z(self._clock()),
            })
        except RemoteStoreError as exc:
            logger.warning("Activity log entry %r for %s not recorded: %s", action, uid, exc)
            return False
        return True

    def recent(self, uid: str, limit: int = 50) -> list[dict]:
        """Newest first; push keys sort chronologically."""
        entries = self._remote.get(f"users/{uid}/activityLog") or {}
        ordered = sorted(entries.items(), reverse=True)[:limit]
        return [
            {"id": key, "action": value.get("action"), "timestamp": value.get("timestamp")}
            for key, value in ordered
            if isinstance(value, dict)
        ]
