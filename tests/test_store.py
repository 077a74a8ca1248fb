from __future__ import annotations

from datetime import timedelta
from threading import Thread

from ticketing.store import Lookup, SnapshotStore

from conftest import T0, T1


def test_get_before_any_put_is_not_found():
    store = SnapshotStore("inventory")

    lookup = store.get("VIP")

    assert lookup.found is False
    assert lookup.snapshot is None
    assert lookup.value is None


def test_put_then_get_returns_value():
    store = SnapshotStore("inventory")

    assert store.put("VIP", 10, T0) is True

    lookup = store.get("VIP")
    assert lookup.found is True
    assert lookup.value == 10
    assert lookup.snapshot.key == "VIP"
    assert lookup.snapshot.last_updated == T0


def test_newer_put_replaces_value():
    store = SnapshotStore("inventory")
    store.put("VIP", 10, T0)

    assert store.put("VIP", 7, T1) is True
    assert store.get("VIP").value == 7


def test_older_put_is_dropped():
    store = SnapshotStore("inventory")
    store.put("VIP", 10, T1)

    assert store.put("VIP", 8, T0) is False

    snapshot = store.get("VIP").snapshot
    assert snapshot.value == 10
    assert snapshot.last_updated == T1


def test_equal_event_time_overwrites_in_arrival_order():
    store = SnapshotStore("inventory")
    store.put("VIP", 10, T0)

    assert store.put("VIP", 9, T0) is True
    assert store.get("VIP").value == 9


def test_duplicate_put_is_idempotent():
    store = SnapshotStore("status")
    store.put("p1", "SUCCEEDED", T0)
    once = store.get("p1")

    store.put("p1", "SUCCEEDED", T0)

    assert store.get("p1") == once
    assert len(store) == 1


def test_keys_are_independent():
    store = SnapshotStore("inventory")
    store.put("VIP", 10, T1)
    store.put("GA", 100, T0)

    assert store.get("VIP").value == 10
    assert store.get("GA").value == 100
    assert sorted(store.keys()) == ["GA", "VIP"]
    assert "GA" in store
    assert "BALCONY" not in store


def test_missing_lookup_helper():
    assert Lookup.missing().found is False


def test_concurrent_puts_and_gets_keep_latest_event_time():
    store = SnapshotStore("inventory")
    times = [T0 + timedelta(seconds=i) for i in range(500)]
    seen = []

    def writer(chunk):
        for t in chunk:
            store.put("VIP", t, t)

    def reader():
        for _ in range(500):
            lookup = store.get("VIP")
            if lookup.found:
                # value and event time always come from the same put
                seen.append(lookup.snapshot.value == lookup.snapshot.last_updated)

    threads = [Thread(target=writer, args=(times[i::4],)) for i in range(4)]
    threads += [Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("VIP").value == times[-1]
    assert all(seen)
