"""
Pulse - deterministic alerting and insight engine.

Economy, mental and physical pillars are evaluated independently, merged
into one capped alert feed, and tracked across runs by the lifecycle store.

Usage:
    from services.pulse.intel import PulseEngine, AlertLifecycleStore, MemoryKVStore

    engine = PulseEngine(AlertLifecycleStore(MemoryKVStore()))
    result = engine.run(RecordBundle.from_dict(document))
"""
from .config import PulseConfig
from .engine import EngineResult, FeedAlert, OverallState, OverallStatus, PulseEngine
from .kv_store import KVStore, KVStoreError, MemoryKVStore, RedisKVStore
from .lifecycle import AlertLifecycleStore
from .models import (
    Alert,
    AlertRule,
    Insight,
    MentalRecord,
    PhysicalRecord,
    Pillar,
    PriceRecord,
    RecordBundle,
    Severity,
    Subscription,
    Transaction,
)
from .priority import RankedAlert, resolve

__all__ = [
    "Alert",
    "AlertLifecycleStore",
    "AlertRule",
    "EngineResult",
    "FeedAlert",
    "Insight",
    "KVStore",
    "KVStoreError",
    "MemoryKVStore",
    "MentalRecord",
    "OverallState",
    "OverallStatus",
    "PhysicalRecord",
    "Pillar",
    "PriceRecord",
    "PulseConfig",
    "PulseEngine",
    "RankedAlert",
    "RecordBundle",
    "RedisKVStore",
    "Severity",
    "Subscription",
    "Transaction",
    "resolve",
]
