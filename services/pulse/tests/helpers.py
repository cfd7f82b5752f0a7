"""Record builders shared by the Pulse tests. Deterministic, no IO."""
from datetime import date, datetime, timedelta
from itertools import count
import threading

from ..intel.kv_store import KVStore, KVStoreError, MemoryKVStore
from ..intel.models import (
    MentalRecord,
    PhysicalRecord,
    PriceRecord,
    Subscription,
    Transaction,
    TransactionKind,
)

NOW = datetime(2026, 3, 18, 12, 0, 0)
TODAY = NOW.date()

_ids = count(1)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def expense(when, amount, category=None, description="", kind=TransactionKind.EXPENSE):
    """`when` is a date or an int number of days before TODAY."""
    d = days_ago(when) if isinstance(when, int) else when
    return Transaction(
        id=f"t{next(_ids)}",
        kind=kind,
        amount=amount,
        date=d,
        description=description,
        category=category,
    )


def subscription(amount, cadence_months=1, active=True, name="sub"):
    return Subscription(
        id=f"s{next(_ids)}",
        name=name,
        amount=amount,
        cadence_months=cadence_months,
        active=active,
    )


def price(product, value):
    return PriceRecord(product_name=product, price=value)


def mood(when, level):
    d = days_ago(when) if isinstance(when, int) else when
    return MentalRecord(date=d, mood_level=level)


def moods(levels_newest_first):
    """One record per day: index 0 is today, index 1 yesterday, ..."""
    return [mood(i, level) for i, level in enumerate(levels_newest_first)]


def activity(when, minutes=30):
    d = days_ago(when) if isinstance(when, int) else when
    return PhysicalRecord(date=d, duration_min=minutes)


class FailingKVStore(KVStore):
    """Every call fails the way an unreachable backend would."""

    def get(self, key):
        raise KVStoreError("backend down")

    def set(self, key, value):
        raise KVStoreError("backend down")

    def delete(self, key):
        raise KVStoreError("backend down")


class FlakyKVStore(MemoryKVStore):
    """In-memory store whose next `failing_reads` gets fail, then recovers."""

    def __init__(self, failing_reads=0):
        super().__init__()
        self.failing_reads = failing_reads

    def get(self, key):
        if self.failing_reads > 0:
            self.failing_reads -= 1
            raise KVStoreError("blip")
        return super().get(key)


class ThreadRecordingKVStore(MemoryKVStore):
    """Remembers which threads touched it."""

    def __init__(self):
        super().__init__()
        self.threads = set()

    def get(self, key):
        self.threads.add(threading.get_ident())
        return super().get(key)

    def set(self, key, value):
        self.threads.add(threading.get_ident())
        super().set(key, value)
