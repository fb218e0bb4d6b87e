"""
Reconciler tests: ordered replay, halting on the first failure, and the
applied-action ledger that keeps a replayed sale from decrementing twice.
"""

import threading

import pytest
from scanbizz.services.offline_queue import ActionType, PendingAction
from scanbizz.services.sync_service import ReplayInProgressError

from conftest import remote_product, seed_product


def _go_offline_and_sell(services, *quantities):
    services.connectivity.set_online(False)
    return [services.inventory.sell("111", q) for q in quantities]


def test_reconnect_replays_queue_in_order(services, authorized):
    seed_product(services, quantity=10)
    _go_offline_and_sell(services, 1, 2)
    services.inventory.update_store({"name": "Offline Shop"})

    services.connectivity.set_online(True)

    assert services.queue.is_empty()
    assert remote_product(services, "111")["quantity"] == 7
    assert services.cache.snapshot().store_profile.name == "Offline Shop"
    assert len(services.cache.snapshot().today_sales) == 2
    assert services.queue.last_sync_timestamp() is not None
    assert services.reconciler.last_result.applied == 3


def test_failure_keeps_failed_action_and_suffix(services, authorized):
    seed_product(services, quantity=10)
    seed_product(services, barcode="222", name="Cola", quantity=1)
    services.connectivity.set_online(False)
    first = services.inventory.sell("111", 1)
    second = services.inventory.sell("222", 1)
    third = services.inventory.sell("111", 1)
    # Someone else sold the last Cola while this device was offline
    services.remote.online = True
    services.remote.set(f"users/{authorized.uid}/stock/222/quantity", 0)
    services.remote.online = False

    services.connectivity.set_online(True)

    result = services.reconciler.last_result
    assert not result.ok
    assert result.applied == 1
    assert result.remaining == 2
    assert result.failed_action_id == second.action.action_id
    assert [a.action_id for a in services.queue.drain()] == [
        second.action.action_id,
        third.action.action_id,
    ]
    assert first.action.action_id not in [a.action_id for a in services.queue.drain()]
    assert remote_product(services, "111")["quantity"] == 9


def test_replaying_same_sale_twice_decrements_once(services, authorized):
    seed_product(services, quantity=10)
    action = PendingAction(
        type=ActionType.SELL_PRODUCT,
        payload={"barcode": "111", "quantity": 2, "saleId": "0001abcd", "saleTime": "2026-03-01T10:00:00.000Z"},
    )
    services.queue.enqueue(action)
    services.queue.enqueue(action)

    result = services.reconciler.replay()

    assert result.ok
    assert result.applied == 1
    assert result.skipped == 1
    assert remote_product(services, "111")["quantity"] == 8


def test_replay_after_crash_skips_applied_prefix(services, authorized):
    """The write landed but the queue was not trimmed before the process died."""
    seed_product(services, quantity=10)
    action = PendingAction(
        type=ActionType.SELL_PRODUCT,
        payload={"barcode": "111", "quantity": 3, "saleId": "0002abcd", "saleTime": "2026-03-01T10:00:00.000Z"},
    )
    services.mutations.apply(authorized.uid, action)
    services.queue.enqueue(action)

    result = services.reconciler.replay()

    assert result.skipped == 1
    assert remote_product(services, "111")["quantity"] == 7
    assert services.queue.is_empty()


def test_empty_replay_marks_synced(services, authorized):
    result = services.reconciler.replay()

    assert result.ok
    assert result.applied == 0
    assert services.queue.last_sync_timestamp() is not None


def test_concurrent_replay_is_refused(services, authorized):
    services.reconciler._lock.acquire()
    try:
        with pytest.raises(ReplayInProgressError):
            services.reconciler.replay()
    finally:
        services.reconciler._lock.release()


def test_replay_runs_one_at_a_time(app, services, authorized):
    seed_product(services, quantity=50)
    services.connectivity.set_online(False)
    for _ in range(5):
        services.inventory.sell("111", 1)
    services.remote.online = True

    outcomes = []
    barrier = threading.Barrier(2)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                outcomes.append(services.reconciler.replay())
            except ReplayInProgressError:
                outcomes.append(None)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert remote_product(services, "111")["quantity"] == 45
    assert services.queue.is_empty()


def test_status_reports_pending(services, authorized):
    seed_product(services, quantity=10)
    _go_offline_and_sell(services, 1)

    status = services.reconciler.status()

    assert status["pending"] == 1
    assert status["actions"][0]["type"] == "SellProduct"
    assert status["due"] is True


def test_connectivity_listener_only_on_change(services, authorized):
    seen = []
    services.connectivity.add_listener(seen.append)

    assert services.connectivity.set_online(True) is False
    assert services.connectivity.set_online(False) is True
    assert services.connectivity.set_online(False) is False
    assert services.connectivity.set_online(True) is True
    assert seen == [False, True]
