"""
Alert Lifecycle Tests - upsert, dismissal cooldown, trigger history, pruning,
and behavior when the backing store fails.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ..intel.kv_store import MemoryKVStore
from ..intel.lifecycle import AlertLifecycleStore, RECOMMENDATION_COOLDOWN_DAYS
from .helpers import FailingKVStore, FlakyKVStore

T0 = datetime(2026, 3, 18, 12, 0, 0)


def alert(alert_id, priority=1, severity="medium", pillar="economy"):
    return {
        "id": alert_id,
        "pillar": pillar,
        "type": "daily_anomaly",
        "text": f"{alert_id} text",
        "priority": priority,
        "severity": severity,
        "cta": {"label": "Open", "action": "navigate", "href": "/"},
        "data": {},
    }


@pytest.fixture
def kv():
    return MemoryKVStore()


@pytest.fixture
def store(kv):
    return AlertLifecycleStore(kv)


# =============================================================================
# Upsert
# =============================================================================

class TestUpsert:

    def test_new_alert_stamped(self, store):
        entry = store.upsert(alert("a"), T0)

        assert entry["first_detected_at"] == T0.isoformat(timespec="seconds")
        assert entry["last_triggered_at"] == T0.isoformat(timespec="seconds")
        assert store.get("a")["text"] == "a text"

    def test_first_detected_preserved(self, store):
        later = T0 + timedelta(days=2)
        store.upsert(alert("a"), T0)

        entry = store.upsert(alert("a", severity="high"), later)

        assert entry["first_detected_at"] == T0.isoformat(timespec="seconds")
        assert entry["last_triggered_at"] == later.isoformat(timespec="seconds")
        assert store.get("a")["severity"] == "high"
        assert len(store.stored_alerts()) == 1

    def test_upsert_many_single_write(self, store, kv):
        store.upsert_many([alert("a"), alert("b")], T0)

        assert [a["id"] for a in kv.get("pulse:alerts_active")] == ["a", "b"]

    def test_accepts_objects_with_to_dict(self, store):
        class Wrapped:
            def to_dict(self):
                return alert("wrapped")

        store.upsert(Wrapped(), T0)

        assert store.get("wrapped") is not None

    def test_resolve_removes(self, store):
        store.upsert(alert("a"), T0)

        assert store.resolve("a") is True
        assert store.resolve("a") is False
        assert store.get("a") is None


# =============================================================================
# Dismissal
# =============================================================================

class TestDismissal:

    def test_dismiss_removes_from_active(self, store):
        store.upsert(alert("a"), T0)

        store.dismiss("a", T0)

        assert store.get("a") is None
        assert store.active(T0) == []

    @pytest.mark.parametrize("days", [0, 1, 3, 6])
    def test_suppressed_during_cooldown(self, store, days):
        store.dismiss("a", T0)

        assert store.is_dismissed("a", T0 + timedelta(days=days))

    def test_eligible_after_seven_days(self, store):
        store.dismiss("a", T0)

        assert not store.is_dismissed("a", T0 + timedelta(days=7))

    def test_custom_cooldown_pathway(self, store):
        store.dismiss("rec", T0)
        eight_days = T0 + timedelta(days=8)

        assert not store.is_dismissed("rec", eight_days)
        assert store.is_dismissed("rec", eight_days, cooldown_days=RECOMMENDATION_COOLDOWN_DAYS)

    def test_dismissed_ids(self, store):
        store.dismiss("a", T0)
        store.dismiss("b", T0 - timedelta(days=10))

        assert store.dismissed_ids(T0) == {"a"}

    def test_never_dismissed(self, store):
        assert not store.is_dismissed("unknown", T0)

    def test_naive_dismissal_checked_with_aware_time(self, store):
        store.dismiss("a", T0)
        plus_two = timezone(timedelta(hours=2))

        assert store.is_dismissed("a", datetime(2026, 3, 19, 14, 0, tzinfo=plus_two))
        assert store.is_dismissed("a", datetime(2026, 3, 25, 13, 0, tzinfo=plus_two))
        assert not store.is_dismissed("a", datetime(2026, 3, 25, 14, 0, tzinfo=plus_two))

    def test_aware_time_stored_as_utc(self, store):
        entry = store.upsert(alert("a"), datetime(2026, 3, 18, 14, 0, tzinfo=timezone(timedelta(hours=2))))
        store.dismiss("b", datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc))

        assert entry["first_detected_at"] == "2026-03-18T12:00:00"
        assert store.dismissals()["b"] == "2026-03-18T12:00:00"
        assert store.has_triggered_today("a", T0)


# =============================================================================
# Trigger history
# =============================================================================

class TestTriggerHistory:

    def test_triggered_today(self, store):
        store.upsert(alert("a"), T0.replace(hour=9))

        assert store.has_triggered_today("a", T0.replace(hour=23))
        assert not store.has_triggered_today("a", T0 + timedelta(days=1))
        assert not store.has_triggered_today("missing", T0)

    def test_triggered_today_ids(self, store):
        store.upsert(alert("old"), T0 - timedelta(days=1))
        store.upsert(alert("new"), T0)

        assert store.triggered_today_ids(T0) == {"new"}

    def test_triggered_within(self, store):
        store.upsert(alert("a"), T0)

        assert store.has_triggered_within("a", 3, T0 + timedelta(days=2))
        assert not store.has_triggered_within("a", 3, T0 + timedelta(days=3))
        assert not store.has_triggered_within("missing", 3, T0)


# =============================================================================
# Views and housekeeping
# =============================================================================

class TestViews:

    def test_active_ordering(self, store):
        store.upsert_many([
            alert("secondary", priority=4, severity="high"),
            alert("critical_low", priority=1, severity="low"),
            alert("critical_high", priority=1, severity="high"),
        ], T0)

        assert [a["id"] for a in store.active(T0)] == [
            "critical_high", "critical_low", "secondary",
        ]

    def test_counts(self, store):
        store.upsert_many([
            alert("a", severity="high", pillar="economy"),
            alert("b", severity="low", pillar="mental"),
            alert("c", severity="low", pillar="mental"),
        ], T0)

        counts = store.counts(T0)

        assert counts["total"] == 3
        assert counts["high"] == 1
        assert counts["low"] == 2
        assert counts["medium"] == 0
        assert counts["mental"] == 2
        assert counts["physical"] == 0

    def test_prune_old_alerts(self, store):
        store.upsert(alert("old"), T0 - timedelta(days=31))
        store.upsert(alert("recent"), T0 - timedelta(days=29))

        removed = store.prune(T0)

        assert removed == (1, 0)
        assert [a["id"] for a in store.stored_alerts()] == ["recent"]

    def test_prune_old_dismissals(self, store):
        store.dismiss("stale", T0 - timedelta(days=15))
        store.dismiss("fresh", T0 - timedelta(days=13))

        removed = store.prune(T0)

        assert removed == (0, 1)
        assert set(store.dismissals()) == {"fresh"}

    def test_namespaces_isolated(self, kv):
        one = AlertLifecycleStore(kv, namespace="user1")
        two = AlertLifecycleStore(kv, namespace="user2")

        one.upsert(alert("a"), T0)

        assert two.get("a") is None
        assert "user1:alerts_active" in kv.keys()

    def test_clear(self, store, kv):
        store.upsert(alert("a"), T0)
        store.dismiss("b", T0)

        store.clear()

        assert kv.keys() == []


# =============================================================================
# Store failures
# =============================================================================

class TestStoreFailures:

    def test_failed_reads_are_empty(self):
        store = AlertLifecycleStore(FailingKVStore())

        assert store.stored_alerts() == []
        assert store.dismissals() == {}
        assert not store.is_dismissed("a", T0)
        assert not store.has_triggered_today("a", T0)

    def test_failed_writes_swallowed(self):
        store = AlertLifecycleStore(FailingKVStore())

        written = store.upsert_many([alert("a")], T0)
        store.dismiss("a", T0)
        store.prune(T0)
        store.clear()

        assert [w["id"] for w in written] == ["a"]

    def test_malformed_document_ignored(self, kv, store):
        kv.set("pulse:alerts_active", {"not": "a list"})
        kv.set("pulse:alerts_dismissed", ["not", "a", "dict"])

        assert store.stored_alerts() == []
        assert store.dismissals() == {}

    def test_unparseable_timestamps(self, kv, store):
        kv.set("pulse:alerts_dismissed", {"a": "yesterday"})

        assert not store.is_dismissed("a", T0)

    def test_failed_read_keeps_earlier_dismissals(self):
        kv = FlakyKVStore()
        store = AlertLifecycleStore(kv)
        store.dismiss("a", T0)

        kv.failing_reads = 1
        store.dismiss("b", T0)

        assert store.is_dismissed("a", T0 + timedelta(days=1))
        assert not store.is_dismissed("b", T0 + timedelta(days=1))

    def test_failed_read_keeps_stored_alerts(self):
        kv = FlakyKVStore()
        store = AlertLifecycleStore(kv)
        store.upsert(alert("a"), T0)

        kv.failing_reads = 1
        written = store.upsert(alert("b"), T0)

        assert written["id"] == "b"
        assert [a["id"] for a in store.stored_alerts()] == ["a"]

    def test_prune_keeps_unparseable_stamps(self, kv, store):
        kv.set("pulse:alerts_dismissed", {"a": "yesterday"})

        assert store.prune(T0) == (0, 0)
        assert store.dismissals() == {"a": "yesterday"}

    def test_prune_with_aware_time_keeps_naive_entries(self, store):
        store.upsert(alert("a"), T0)
        store.dismiss("b", T0)

        removed = store.prune((T0 + timedelta(days=1)).replace(tzinfo=timezone.utc))

        assert removed == (0, 0)
        assert store.is_dismissed("b", (T0 + timedelta(days=1)).replace(tzinfo=timezone.utc))
