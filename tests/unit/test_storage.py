"""Unit tests for the two-tier durable store."""

import logging

from src.core.storage import DurableStore, StorageTier


def test_roundtrip_in_both_tiers(store):
    store.set(StorageTier.SESSION, "offline_session", {"id": "u1"})
    store.set(StorageTier.PERSISTENT, "user_role", {"role": "admin", "branch_id": "b1"})

    assert store.get(StorageTier.SESSION, "offline_session") == {"id": "u1"}
    assert store.get(StorageTier.PERSISTENT, "user_role") == {"role": "admin", "branch_id": "b1"}


def test_tiers_are_isolated(store):
    store.set(StorageTier.SESSION, "key", "session-value")

    assert store.get(StorageTier.PERSISTENT, "key") is None


def test_set_overwrites_previous_value(store):
    store.set(StorageTier.PERSISTENT, "user_branch_id", "b1")
    store.set(StorageTier.PERSISTENT, "user_branch_id", "b2")

    assert store.get(StorageTier.PERSISTENT, "user_branch_id") == "b2"
    assert store.keys(StorageTier.PERSISTENT) == ["user_branch_id"]


def test_corrupted_value_is_absent_and_logged(store, caplog):
    store.set_raw(StorageTier.PERSISTENT, "offline_user_data", "{not json")

    with caplog.at_level(logging.WARNING):
        assert store.get(StorageTier.PERSISTENT, "offline_user_data") is None
        assert store.get(StorageTier.PERSISTENT, "offline_user_data", default={}) == {}

    assert "corrupted" in caplog.text


def test_remove_is_idempotent(store):
    store.set(StorageTier.PERSISTENT, "offline_auth_data", {"email": "a@b.c"})

    store.remove(StorageTier.PERSISTENT, "offline_auth_data")
    store.remove(StorageTier.PERSISTENT, "offline_auth_data")
    store.remove(StorageTier.SESSION, "never-set")

    assert not store.contains(StorageTier.PERSISTENT, "offline_auth_data")


def test_end_session_clears_only_session_tier(store):
    store.set(StorageTier.SESSION, "offline_session", {"id": "u1"})
    store.set(StorageTier.PERSISTENT, "offline_user_data", {"id": "u1", "email": "a@b.c"})

    store.end_session()

    assert store.get(StorageTier.SESSION, "offline_session") is None
    assert store.get(StorageTier.PERSISTENT, "offline_user_data") is not None


def test_persistent_tier_survives_restart(tmp_path):
    url = f"sqlite:///{tmp_path / 'data' / 'offline.db'}"

    first = DurableStore(url)
    first.set(StorageTier.PERSISTENT, "user_branch_id", "b7")
    first.set(StorageTier.SESSION, "offline_session", {"id": "u1"})
    first.close()

    second = DurableStore(url)
    try:
        assert second.get(StorageTier.PERSISTENT, "user_branch_id") == "b7"
        assert second.get(StorageTier.SESSION, "offline_session") is None
    finally:
        second.close()
