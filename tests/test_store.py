"""Tests for the monitored address and rule store."""

import threading
import time
from datetime import datetime, timedelta, timezone

from riskwatch.models import AlertRule, MonitoredAddress
from riskwatch.monitor.store import ReadWriteLock, WatchStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_addresses_keyed_by_address_and_chain() -> None:
    """Test that the same address on two chains is stored twice."""
    store = WatchStore()

    store.put_address(MonitoredAddress(address="0xAbC", chain_id=1, user_id="u1"))
    store.put_address(MonitoredAddress(address="0xabc", chain_id=137, user_id="u1"))
    # Same key as the first, replaces it
    store.put_address(MonitoredAddress(address="0xABC", chain_id=1, user_id="u2"))

    assert store.address_count() == 2
    assert store.get_address("0xabc", 1).user_id == "u2"


def test_remove_address() -> None:
    """Test removal reports whether anything was removed."""
    store = WatchStore()
    store.put_address(MonitoredAddress(address="0xabc", chain_id=1, user_id="u1"))

    assert store.remove_address("0xABC", 1) is True
    assert store.remove_address("0xabc", 1) is False
    assert store.get_address("0xabc", 1) is None


def test_snapshots_are_copies() -> None:
    """Test that callers cannot mutate stored records."""
    store = WatchStore()
    store.put_address(
        MonitoredAddress(address="0xabc", chain_id=1, user_id="u1", alert_rules=["r1"])
    )

    snapshot = store.snapshot_addresses()
    snapshot[0].alert_rules.append("r2")
    snapshot[0].risk_score = 99

    stored = store.get_address("0xabc", 1)
    assert stored.alert_rules == ["r1"]
    assert stored.risk_score == 0


def test_record_check() -> None:
    """Test check bookkeeping updates."""
    store = WatchStore()
    store.put_address(MonitoredAddress(address="0xabc", chain_id=1, user_id="u1"))

    assert store.record_check("0xabc", 1, NOW, risk_score=42) is True
    stored = store.get_address("0xabc", 1)
    assert stored.last_checked == NOW
    assert stored.risk_score == 42

    # Without a score only the timestamp moves
    later = NOW + timedelta(minutes=5)
    assert store.record_check("0xabc", 1, later) is True
    stored = store.get_address("0xabc", 1)
    assert stored.last_checked == later
    assert stored.risk_score == 42

    assert store.record_check("0xdef", 1, NOW) is False


def test_claim_rule_respects_cooldown() -> None:
    """Test that a rule can be claimed once per cooldown."""
    store = WatchStore()
    store.put_rule(AlertRule(id="r1", name="r1", cooldown=timedelta(minutes=15)))

    assert store.claim_rule("r1", NOW) is True
    assert store.claim_rule("r1", NOW + timedelta(minutes=5)) is False
    assert store.claim_rule("r1", NOW + timedelta(minutes=16)) is True
    assert store.get_rule("r1").last_triggered == NOW + timedelta(minutes=16)

    assert store.claim_rule("missing", NOW) is False


def test_claim_rule_disabled() -> None:
    """Test that disabled rules are never claimed."""
    store = WatchStore()
    store.put_rule(AlertRule(id="r1", name="r1", enabled=False))

    assert store.claim_rule("r1", NOW) is False


def test_concurrent_claims_fire_once() -> None:
    """Test that concurrent claims inside one cooldown succeed exactly once."""
    store = WatchStore()
    store.put_rule(AlertRule(id="r1", name="r1"))
    results = []
    barrier = threading.Barrier(8)

    def claim() -> None:
        barrier.wait()
        results.append(store.claim_rule("r1", NOW))

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1


def test_rw_lock_allows_concurrent_readers() -> None:
    """Test that readers do not block each other."""
    lock = ReadWriteLock()
    inside = threading.Barrier(2, timeout=5)

    def reader() -> None:
        with lock.read():
            # Both readers must be inside at the same time to pass
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not inside.broken


def test_rw_lock_writer_excludes_readers() -> None:
    """Test that a reader waits for an active writer."""
    lock = ReadWriteLock()
    events = []
    writer_in = threading.Event()

    def writer() -> None:
        with lock.write():
            writer_in.set()
            time.sleep(0.05)
            events.append("write-done")

    def reader() -> None:
        writer_in.wait()
        with lock.read():
            events.append("read")

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert events == ["write-done", "read"]
