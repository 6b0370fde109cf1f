"""Unit tests for keygate/auth/registry.py — in-memory CredentialRegistry.

Covers:
  - set_local / delete_local / authenticate / lookup semantics
  - empty key and empty value rejection
  - exact, case-sensitive matching with no trimming
  - create() hydration, including the empty/unavailable fallback
  - refresh() replacement and last-known-good behaviour on store failure
  - run_registry_refresher() background task
  - concurrent readers and writers
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from keygate.auth.keys import disable_key, upsert_key
from keygate.auth.registry import CredentialRegistry, run_registry_refresher
from keygate.store.protocol import NullRowStore, StoreUnavailableError
from keygate.store.sqlite_backend import SQLiteRowStore


# ─── Local mutation + hot path ────────────────────────────────────────────────


class TestLocalOperations:
    def test_set_then_authenticate(self) -> None:
        registry = CredentialRegistry()
        registry.set_local("key", "value")
        assert registry.authenticate("key", "value") == "value"

    def test_delete_then_authenticate_fails(self) -> None:
        registry = CredentialRegistry()
        registry.set_local("key", "value")
        registry.delete_local("key")
        assert registry.authenticate("key", "value") is None

    def test_delete_absent_key_is_noop(self) -> None:
        registry = CredentialRegistry({"a": "1"})
        registry.delete_local("missing")
        assert len(registry) == 1

    def test_set_with_empty_value_is_ignored(self) -> None:
        registry = CredentialRegistry()
        registry.set_local("key", "")
        assert "key" not in registry
        assert len(registry) == 0

    def test_set_with_empty_value_keeps_existing_entry(self) -> None:
        registry = CredentialRegistry({"key": "old"})
        registry.set_local("key", "")
        assert registry.lookup("key") == "old"

    def test_set_overwrites(self) -> None:
        registry = CredentialRegistry()
        registry.set_local("key", "first")
        registry.set_local("key", "second")
        assert registry.authenticate("key", "first") is None
        assert registry.authenticate("key", "second") == "second"

    def test_local_ops_need_no_store(self) -> None:
        """Local mutations work on a registry that never saw a store."""
        registry = CredentialRegistry()
        registry.set_local("k", "v")
        registry.delete_local("k")
        registry.set_local("k2", "v2")
        assert registry.lookup("k2") == "v2"


class TestAuthenticate:
    @pytest.mark.parametrize("value", ["", "value", "anything"])
    def test_empty_key_never_matches(self, value: str) -> None:
        registry = CredentialRegistry()
        registry.set_local("", "value")  # accepted locally, still never matches
        assert registry.authenticate("", value) is None

    def test_empty_value_never_matches(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.authenticate("key", "") is None

    def test_wrong_value(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.authenticate("key", "other") is None

    def test_unknown_key(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.authenticate("nope", "value") is None

    def test_case_sensitive(self) -> None:
        registry = CredentialRegistry({"key": "Value"})
        assert registry.authenticate("key", "value") is None
        assert registry.authenticate("KEY", "Value") is None

    def test_no_trimming(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.authenticate(" key", "value") is None
        assert registry.authenticate("key", "value ") is None


class TestLookup:
    def test_present(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.lookup("key") == "value"

    def test_absent(self) -> None:
        assert CredentialRegistry().lookup("key") is None

    def test_empty_key(self) -> None:
        registry = CredentialRegistry({"key": "value"})
        assert registry.lookup("") is None


def test_constructor_drops_empty_entries() -> None:
    registry = CredentialRegistry({"a": "1", "b": "", "": "x"})
    assert len(registry) == 1
    assert "a" in registry


def test_concurrent_readers_and_writers() -> None:
    """Readers never see a torn state while writers mutate the mapping."""
    registry = CredentialRegistry({"stable": "yes"})
    errors: list[str] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            if registry.authenticate("stable", "yes") != "yes":
                errors.append("stable key lost")

    def writer(n: int) -> None:
        for i in range(500):
            registry.set_local(f"w{n}-{i}", "v")
            registry.delete_local(f"w{n}-{i}")

    readers = [threading.Thread(target=reader) for _ in range(4)]
    writers = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    for t in readers:
        t.join()

    assert errors == []
    assert len(registry) == 1


# ─── Hydration + refresh ──────────────────────────────────────────────────────


class TestCreate:
    async def test_create_from_empty_store(self, store: SQLiteRowStore) -> None:
        registry = await CredentialRegistry.create(store)
        assert len(registry) == 0
        assert registry.authenticate("a", "b") is None

    async def test_create_hydrates_active_keys_only(self, store: SQLiteRowStore) -> None:
        await upsert_key(store, "active", "v1")
        await upsert_key(store, "gone", "v2")
        await disable_key(store, "gone")

        registry = await CredentialRegistry.create(store)

        assert registry.authenticate("active", "v1") == "v1"
        assert registry.authenticate("gone", "v2") is None
        assert len(registry) == 1

    async def test_create_with_unavailable_store_is_empty(self) -> None:
        registry = await CredentialRegistry.create(NullRowStore())
        assert len(registry) == 0


class TestRefresh:
    async def test_durable_writes_do_not_touch_live_registry(
        self, store: SQLiteRowStore
    ) -> None:
        registry = await CredentialRegistry.create(store)
        await upsert_key(store, "a", "b")
        assert registry.authenticate("a", "b") is None

        count = await registry.refresh(store)

        assert count == 1
        assert registry.authenticate("a", "b") == "b"

    async def test_refresh_applies_disable(self, store: SQLiteRowStore) -> None:
        await upsert_key(store, "a", "b")
        registry = await CredentialRegistry.create(store)
        await disable_key(store, "a")
        assert registry.authenticate("a", "b") == "b"

        await registry.refresh(store)

        assert registry.authenticate("a", "b") is None

    async def test_refresh_discards_local_only_entries(self, store: SQLiteRowStore) -> None:
        registry = await CredentialRegistry.create(store)
        registry.set_local("local", "only")
        await registry.refresh(store)
        assert registry.lookup("local") is None

    async def test_refresh_failure_keeps_current_mapping(self) -> None:
        registry = CredentialRegistry({"a": "b"})
        with pytest.raises(StoreUnavailableError):
            await registry.refresh(NullRowStore())
        assert registry.authenticate("a", "b") == "b"


class TestRegistryRefresher:
    async def test_refresher_picks_up_new_keys(self, store: SQLiteRowStore) -> None:
        registry = await CredentialRegistry.create(store)
        task = asyncio.create_task(run_registry_refresher(registry, store, 0.01))
        try:
            await upsert_key(store, "late", "arrival")
            for _ in range(100):
                if registry.lookup("late") == "arrival":
                    break
                await asyncio.sleep(0.01)
            assert registry.lookup("late") == "arrival"
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    async def test_refresher_survives_store_errors(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("keygate.auth.registry.REFRESH_RETRY_DELAY_S", 0.01)
        registry = CredentialRegistry({"a": "b"})
        task = asyncio.create_task(run_registry_refresher(registry, NullRowStore(), 0.01))
        await asyncio.sleep(0.1)
        assert not task.done()
        assert registry.authenticate("a", "b") == "b"
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
