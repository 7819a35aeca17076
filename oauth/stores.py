"""Key-value stores shared by the OAuth endpoints.

Two stores are used: registered dynamic clients (no expiry) and local
authorization codes (short TTL, consumed once). Both sit behind the
KeyValueStore contract so the process-memory default can be swapped for a
shared backend (SupabaseStore) in multi-instance deployments.
"""

import logging
import threading
import time
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Store contract used by the OAuth relay."""

    def put(self, key: str, value: dict, ttl: Optional[float] = None) -> None:
        """Insert or replace a value, expiring after ttl seconds if given."""
        ...

    def get(self, key: str) -> Optional[dict]:
        """Return the value, or None if missing or expired."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True only for the caller that removed it."""
        ...


class MemoryStore:
    """Process-local store (dict guarded by a lock)."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[dict, Optional[float]]] = {}

    def put(self, key: str, value: dict, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._purge_expired_locked()
            self._data[key] = (value, expires_at)

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            return self._purge_expired_locked()

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._data.items() if exp is not None and now >= exp]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class SupabaseStore:
    """Store backed by a Supabase (PostgREST) table.

    Expected table:
        key text primary key, value jsonb, expires_at double precision null

    Several stores can share one table; keys are namespaced by prefix.
    """

    def __init__(self, supabase_client, table: str = "oauth_store", namespace: str = "", clock=time.time):
        self.supabase = supabase_client
        self.table = table
        self.namespace = namespace
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def put(self, key: str, value: dict, ttl: Optional[float] = None) -> None:
        row: dict[str, Any] = {
            "key": self._key(key),
            "value": value,
            "expires_at": self._clock() + ttl if ttl is not None else None,
        }
        self.supabase.table(self.table).upsert(row).execute()

    def get(self, key: str) -> Optional[dict]:
        result = (
            self.supabase.table(self.table)
            .select("value, expires_at")
            .eq("key", self._key(key))
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        expires_at = row.get("expires_at")
        if expires_at is not None and self._clock() >= float(expires_at):
            self.delete(key)
            return None
        return row.get("value")

    def delete(self, key: str) -> bool:
        result = self.supabase.table(self.table).delete().eq("key", self._key(key)).execute()
        return bool(result.data)


def build_stores(config, supabase_client=None) -> tuple[KeyValueStore, KeyValueStore]:
    """Create (client_store, code_store) for the configured backend."""
    if config.store_backend == "supabase":
        if supabase_client is None:
            raise ValueError("STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_KEY")
        logger.info(f"[STARTUP] Using Supabase store (table: {config.supabase_store_table})")
        return (
            SupabaseStore(supabase_client, config.supabase_store_table, namespace="client:"),
            SupabaseStore(supabase_client, config.supabase_store_table, namespace="code:"),
        )

    if config.store_backend != "memory":
        logger.warning(f"[STARTUP] Unknown STORE_BACKEND '{config.store_backend}', using memory")
    logger.info("[STARTUP] Using in-memory store (not shared across processes)")
    return MemoryStore(), MemoryStore()
