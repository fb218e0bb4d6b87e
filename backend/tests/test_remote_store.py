import unittest

import pytest
from scanbizz.services.remote_store import (
    MemoryRemoteStore,
    RemoteStoreError,
    RemoteUnavailableError,
    SqlRemoteStore,
    generate_push_key,
    split_path,
)


class MemoryRemoteStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryRemoteStore()

    def test_set_get_and_prune(self):
        self.store.set("users/u1/stock/1", {"name": "Tea", "quantity": 2})
        self.assertEqual(self.store.get("users/u1/stock/1/name"), "Tea")

        self.store.set("users/u1/stock/1", None)
        self.assertIsNone(self.store.get("users/u1/stock"))
        self.assertIsNone(self.store.get("users/u1"))

    def test_update_is_multi_path(self):
        self.store.set("users/u1/stock/1", {"name": "Tea", "quantity": 2})

        self.store.update("users/u1", {"stock/1/quantity": 1, "sales/2026-03-01/k1": {"saleQuantity": 1}})

        self.assertEqual(self.store.get("users/u1/stock/1"), {"name": "Tea", "quantity": 1})
        self.assertEqual(self.store.get("users/u1/sales/2026-03-01/k1/saleQuantity"), 1)

    def test_update_rejects_bad_value_atomically(self):
        self.store.set("users/u1/stock/1", {"quantity": 2})

        with self.assertRaises(RemoteStoreError):
            self.store.update("users/u1", {"stock/1/quantity": 1, "stock/2": object()})

        self.assertEqual(self.store.get("users/u1/stock/1/quantity"), 2)

    def test_push_keys_sort_chronologically(self):
        keys = [self.store.push("users/u1/activityLog", {"n": i}) for i in range(3)]
        self.assertEqual(sorted(keys), keys)
        self.assertEqual(len(self.store.get("users/u1/activityLog")), 3)

    def test_subscribe_delivers_now_and_on_related_changes(self):
        seen = []
        unsubscribe = self.store.subscribe("users/u1/stock", seen.append)

        self.store.set("users/u1/stock/1", {"quantity": 1})
        self.store.set("users/u1/storeInfo", {"name": "Shop"})
        self.store.set("users/u2/stock/1", {"quantity": 9})
        self.store.set("users/u1", {"stock": {"1": {"quantity": 3}}})

        self.assertEqual(seen, [None, {"1": {"quantity": 1}}, {"1": {"quantity": 3}}])

        unsubscribe()
        self.store.set("users/u1/stock/1", {"quantity": 4})
        self.assertEqual(len(seen), 3)

    def test_offline_raises_unavailable(self):
        self.store.online = False
        with self.assertRaises(RemoteUnavailableError):
            self.store.get("users/u1/stock")
        with self.assertRaises(RemoteUnavailableError):
            self.store.set("users/u1/stock/1", {"quantity": 1})
        with self.assertRaises(RemoteUnavailableError):
            self.store.subscribe("users/u1/stock", lambda _: None)

    def test_paths_need_an_account_root(self):
        with self.assertRaises(RemoteStoreError):
            self.store.get("users")

    def test_invalid_segments(self):
        for path in ("users/u1/stock/a.b", "users/u1/$x", "users/u1/a[0]", "users/u1/#"):
            with self.assertRaises(RemoteStoreError):
                split_path(path)

    def test_generate_push_key_shape(self):
        key = generate_push_key()
        self.assertEqual(len(key), 20)
        int(key, 16)


def test_sql_store_persists_documents(app):
    store = SqlRemoteStore()
    store.set("users/u1/stock/1", {"name": "Tea", "quantity": 2})
    store.update("users/u1", {"stock/1/quantity": 5, "pin": "1234"})

    fresh = SqlRemoteStore()
    assert fresh.get("users/u1/stock/1") == {"name": "Tea", "quantity": 5}
    assert fresh.get("users/u1/pin") == "1234"

    store.remove("users/u1/stock")
    store.remove("users/u1/pin")
    assert fresh.get("users/u1") is None


def test_sql_store_notifies_subscribers(app):
    store = SqlRemoteStore()
    seen = []
    store.subscribe("users/u1/storeInfo", seen.append)

    store.set("users/u1/storeInfo", {"name": "Shop"})

    assert seen == [None, {"name": "Shop"}]


def test_sql_store_offline_flag(app):
    store = SqlRemoteStore()
    store.online = False

    with pytest.raises(RemoteUnavailableError):
        store.get("users/u1")
