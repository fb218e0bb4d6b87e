# Overview: Per-process service container and its wiring.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from .activity_service import ActivityLog
from .analytics_service import AnalyticsService
from .data_cache import StoreDataCache
from .identity_service import IdentityProvider
from .inventory_service import InventoryService
from .local_storage import LocalStorage, StorageError
from .offline_queue import OfflineQueue, OfflineSnapshots
from .remote_mutations import RemoteMutations
from .remote_store import RemoteStore, create_remote_store
from .session_service import SessionService
from .sync_service import ConnectivityMonitor, ReplayInProgressError, SyncReconciler

logger = logging.getLogger(__name__)

EXTENSION_KEY = "scanbizz"


@dataclass
class ShopServices:
    storage: LocalStorage
    remote: RemoteStore
    identity_provider: IdentityProvider
    activity: ActivityLog
    session: SessionService
    queue: OfflineQueue
    cache: StoreDataCache
    mutations: RemoteMutations
    connectivity: ConnectivityMonitor
    reconciler: SyncReconciler
    inventory: InventoryService
    analytics: AnalyticsService

    def on_identity_changed(self, uid: str | None) -> None:
        """Queue and cache always follow the session's identity."""
        self.queue.bind(uid)
        self.cache.attach(uid)

    def on_connectivity_changed(self, online: bool) -> None:
        if not online or self.session.identity is None:
            return
        self.cache.refresh()
        try:
            result = self.reconciler.replay()
        except ReplayInProgressError:
            logger.info("Replay already running; reconnect ignored")
            return
        except StorageError as exc:
            logger.error("Replay could not read the offline queue: %s", exc)
            return
        if not result.ok:
            logger.warning("Replay after reconnect left %d actions queued", result.remaining)


def build_services(config) -> ShopServices:
    storage = LocalStorage()
    remote = create_remote_store(config["REMOTE_STORE_BACKEND"])
    activity = ActivityLog(remote)
    identity_provider = IdentityProvider()
    session = SessionService(
        identity_provider,
        remote,
        storage,
        activity,
        pin_length=config["PIN_LENGTH"],
        default_store_name=config["DEFAULT_STORE_NAME"],
    )
    queue = OfflineQueue(storage)
    cache = StoreDataCache(
        remote,
        OfflineSnapshots(storage),
        pending=queue,
        default_store_name=config["DEFAULT_STORE_NAME"],
    )
    mutations = RemoteMutations(remote)
    connectivity = ConnectivityMonitor(remote)
    reconciler = SyncReconciler(
        queue,
        mutations,
        session,
        activity,
        sync_interval=timedelta(seconds=config["SYNC_INTERVAL_SECONDS"]),
    )
    inventory = InventoryService(session, cache, queue, mutations, connectivity, activity)
    analytics = AnalyticsService(
        cache,
        remote,
        low_stock_threshold=config["LOW_STOCK_THRESHOLD"],
        top_limit=config["TOP_PRODUCTS_LIMIT"],
    )

    services = ShopServices(
        storage=storage,
        remote=remote,
        identity_provider=identity_provider,
        activity=activity,
        session=session,
        queue=queue,
        cache=cache,
        mutations=mutations,
        connectivity=connectivity,
        reconciler=reconciler,
        inventory=inventory,
        analytics=analytics,
    )
    session.add_identity_listener(services.on_identity_changed)
    connectivity.add_listener(services.on_connectivity_changed)
    return services


def get_services() -> ShopServices:
    return current_app.extensions[EXTENSION_KEY]
