"""Tests for the OAuth key-value stores."""

from unittest.mock import MagicMock

import pytest

from config import Config
from oauth.stores import MemoryStore, SupabaseStore, build_stores


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryStore:
    def test_put_get_delete(self):
        store = MemoryStore()
        store.put("k", {"v": 1})

        assert store.get("k") == {"v": 1}
        assert store.delete("k") is True
        assert store.get("k") is None

    def test_delete_only_succeeds_once(self):
        store = MemoryStore()
        store.put("k", {"v": 1})

        assert store.delete("k") is True
        assert store.delete("k") is False

    def test_entry_without_ttl_never_expires(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("client", {"v": 1})

        clock.now += 10 ** 9
        assert store.get("client") == {"v": 1}

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("code", {"v": 1}, ttl=600)

        clock.now += 599
        assert store.get("code") == {"v": 1}
        clock.now += 1
        assert store.get("code") is None
        assert len(store) == 0

    def test_put_purges_expired_entries(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("old", {}, ttl=1)
        store.put("keep", {})

        clock.now += 5
        store.put("new", {}, ttl=60)

        assert len(store) == 2
        assert store.get("old") is None

    def test_purge_expired_returns_count(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("a", {}, ttl=1)
        store.put("b", {}, ttl=1)
        store.put("c", {}, ttl=100)

        clock.now += 2
        assert store.purge_expired() == 2
        assert len(store) == 1


class TestSupabaseStore:
    @pytest.fixture
    def supabase(self):
        return MagicMock()

    def _table(self, supabase):
        return supabase.table.return_value

    def test_put_upserts_namespaced_row(self, supabase):
        store = SupabaseStore(supabase, table="kv", namespace="code:", clock=lambda: 100.0)
        store.put("abc", {"x": 1}, ttl=600)

        supabase.table.assert_called_with("kv")
        self._table(supabase).upsert.assert_called_once_with(
            {"key": "code:abc", "value": {"x": 1}, "expires_at": 700.0}
        )
        self._table(supabase).upsert.return_value.execute.assert_called_once()

    def test_put_without_ttl_stores_null_expiry(self, supabase):
        store = SupabaseStore(supabase, namespace="client:")
        store.put("abc", {"x": 1})

        row = self._table(supabase).upsert.call_args.args[0]
        assert row["expires_at"] is None

    def test_get_returns_value(self, supabase):
        query = self._table(supabase).select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[{"value": {"x": 1}, "expires_at": None}])
        store = SupabaseStore(supabase, namespace="client:")

        assert store.get("abc") == {"x": 1}
        self._table(supabase).select.return_value.eq.assert_called_with("key", "client:abc")

    def test_get_missing_returns_none(self, supabase):
        query = self._table(supabase).select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[])
        store = SupabaseStore(supabase)

        assert store.get("nope") is None

    def test_get_expired_deletes_and_returns_none(self, supabase):
        query = self._table(supabase).select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[{"value": {"x": 1}, "expires_at": 50.0}])
        store = SupabaseStore(supabase, namespace="code:", clock=lambda: 100.0)

        assert store.get("abc") is None
        self._table(supabase).delete.return_value.eq.assert_called_with("key", "code:abc")

    def test_delete_reports_whether_row_existed(self, supabase):
        delete_query = self._table(supabase).delete.return_value.eq.return_value
        store = SupabaseStore(supabase)

        delete_query.execute.return_value = MagicMock(data=[{"key": "abc"}])
        assert store.delete("abc") is True

        delete_query.execute.return_value = MagicMock(data=[])
        assert store.delete("abc") is False


class TestBuildStores:
    def test_memory_backend_by_default(self):
        client_store, code_store = build_stores(Config({}))

        assert isinstance(client_store, MemoryStore)
        assert isinstance(code_store, MemoryStore)
        assert client_store is not code_store

    def test_supabase_backend(self):
        supabase = MagicMock()
        client_store, code_store = build_stores(Config({"store_backend": "supabase"}), supabase)

        assert isinstance(client_store, SupabaseStore)
        assert client_store.namespace == "client:"
        assert code_store.namespace == "code:"
        assert client_store.table == "oauth_store"

    def test_supabase_backend_requires_client(self):
        with pytest.raises(ValueError):
            build_stores(Config({"store_backend": "supabase"}), None)

    def test_unknown_backend_falls_back_to_memory(self):
        client_store, _ = build_stores(Config({"store_backend": "redis"}))

        assert isinstance(client_store, MemoryStore)
