"""
Alert Lifecycle Store - alert state across engine runs.

Two documents live in the injected KVStore:

  <namespace>:alerts_active     list of alert dicts + first_detected_at / last_triggered_at
  <namespace>:alerts_dismissed  {alert_id: dismissed_at}

Timestamps are ISO-8601 strings in UTC without an offset; aware inputs are
converted, naive inputs are taken as UTC already. A failed read is treated
as empty state for queries (nothing dismissed, nothing triggered before),
and a read-modify-write whose read failed skips its write so the stored
documents survive. A failed write is logged and swallowed so the caller
still gets this run's alerts.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from shared.logutil import LogUtil

from .kv_store import KVStore, KVStoreError
from .models import SEVERITY_RANK, Severity

ACTIVE_KEY = "alerts_active"
DISMISSED_KEY = "alerts_dismissed"

DISMISS_COOLDOWN_DAYS = 7           # economy / mental / physical alerts
RECOMMENDATION_COOLDOWN_DAYS = 14   # shopping recommendations (separate store instance)
ALERT_MAX_AGE_DAYS = 30


def as_utc(value: datetime) -> datetime:
    """Naive UTC. Naive values are assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc).replace(tzinfo=None)


def timestamp(now: datetime) -> str:
    return as_utc(now).isoformat(timespec="seconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _elapsed(since: Optional[datetime], now: datetime) -> Optional[timedelta]:
    return None if since is None else now - since


def _priority(entry: Dict[str, Any]) -> int:
    value = entry.get("priority")
    return value if isinstance(value, int) else 99


def _severity_rank(entry: Dict[str, Any]) -> int:
    try:
        return SEVERITY_RANK[Severity(entry.get("severity"))]
    except ValueError:
        return SEVERITY_RANK[Severity.LOW]


class AlertLifecycleStore:
    """
    Persistent alert state keyed by deterministic alert id.

    One instance serves one cooldown pathway: the pillar engines use the
    default 7-day cooldown; a recommendation feed would build its own
    instance with RECOMMENDATION_COOLDOWN_DAYS and its own namespace.
    """

    def __init__(
        self,
        kv: KVStore,
        namespace: Optional[str] = "pulse",
        cooldown_days: int = DISMISS_COOLDOWN_DAYS,
        max_age_days: int = ALERT_MAX_AGE_DAYS,
        logger: Optional[LogUtil] = None,
    ):
        self._kv = kv
        self._cooldown = timedelta(days=cooldown_days)
        self._max_age = timedelta(days=max_age_days)
        self._logger = logger or LogUtil("pulse", component="lifecycle")
        prefix = f"{namespace}:" if namespace else ""
        self.active_key = f"{prefix}{ACTIVE_KEY}"
        self.dismissed_key = f"{prefix}{DISMISSED_KEY}"

    # -------------------------------------------------
    # Raw document access
    # -------------------------------------------------

    def _load(self, key: str, expected: type) -> Optional[Any]:
        """The document, an empty one if absent or malformed, None if the read failed."""
        try:
            value = self._kv.get(key)
        except KVStoreError as e:
            self._logger.warn(f"read {key} failed: {e}")
            return None
        if value is None:
            return expected()
        if not isinstance(value, expected):
            self._logger.warn(f"ignoring malformed {key} document ({type(value).__name__})")
            return expected()
        return value

    def _read(self, key: str, expected: type) -> Any:
        value = self._load(key, expected)
        return expected() if value is None else value

    def _load_alerts(self) -> Optional[List[Dict[str, Any]]]:
        stored = self._load(self.active_key, list)
        if stored is None:
            return None
        return [a for a in stored if isinstance(a, dict) and "id" in a]

    def _write(self, key: str, value: Any) -> bool:
        try:
            self._kv.set(key, value)
            return True
        except KVStoreError as e:
            self._logger.warn(f"write {key} failed: {e}")
            return False

    def stored_alerts(self) -> List[Dict[str, Any]]:
        return self._load_alerts() or []

    def dismissals(self) -> Dict[str, str]:
        return self._read(self.dismissed_key, dict)

    def get(self, alert_id: str) -> Optional[Dict[str, Any]]:
        for entry in self.stored_alerts():
            if entry["id"] == alert_id:
                return entry
        return None

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------

    def upsert_many(self, alerts: Iterable[Any], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Store alerts (dicts or objects with to_dict()) in one write.

        last_triggered_at is refreshed; first_detected_at is kept when the
        id is already stored.
        """
        stamp = timestamp(_now(now))
        loaded = self._load_alerts()
        stored = loaded if loaded is not None else []
        by_id = {entry["id"]: i for i, entry in enumerate(stored)}

        written = []
        for alert in alerts:
            data = dict(alert.to_dict() if hasattr(alert, "to_dict") else alert)
            existing = by_id.get(data["id"])
            data["last_triggered_at"] = stamp
            if existing is not None:
                data["first_detected_at"] = stored[existing].get("first_detected_at") or stamp
                stored[existing] = data
            else:
                data["first_detected_at"] = stamp
                by_id[data["id"]] = len(stored)
                stored.append(data)
            written.append(data)

        if loaded is None:
            self._logger.warn(f"not writing {self.active_key}: stored alerts unreadable")
        else:
            self._write(self.active_key, stored)
        return written

    def upsert(self, alert: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.upsert_many([alert], now)[0]

    def remove_many(self, alert_ids: Iterable[str]) -> int:
        ids = set(alert_ids)
        stored = self._load_alerts()
        if stored is None:
            return 0
        kept = [a for a in stored if a["id"] not in ids]
        removed = len(stored) - len(kept)
        if removed:
            self._write(self.active_key, kept)
        return removed

    def remove(self, alert_id: str) -> bool:
        return self.remove_many([alert_id]) > 0

    def resolve(self, alert_id: str) -> bool:
        """The user acted on the alert; it disappears until it triggers again."""
        return self.remove(alert_id)

    def dismiss(self, alert_id: str, now: Optional[datetime] = None) -> None:
        dismissed = self._load(self.dismissed_key, dict)
        if dismissed is None:
            self._logger.warn(f"not dismissing {alert_id}: dismissals unreadable")
        else:
            dismissed[alert_id] = timestamp(_now(now))
            self._write(self.dismissed_key, dismissed)
        self.remove(alert_id)

    def clear(self) -> None:
        for key in (self.active_key, self.dismissed_key):
            try:
                self._kv.delete(key)
            except KVStoreError as e:
                self._logger.warn(f"delete {key} failed: {e}")

    # -------------------------------------------------
    # Suppression queries
    # -------------------------------------------------

    def _within(self, since: Any, window: timedelta, now: datetime) -> bool:
        elapsed = _elapsed(parse_timestamp(since), now)
        return elapsed is not None and elapsed < window

    def _expired(self, since: Any, window: timedelta, now: datetime) -> bool:
        elapsed = _elapsed(parse_timestamp(since), now)
        return elapsed is not None and elapsed >= window

    def is_dismissed(
        self,
        alert_id: str,
        now: Optional[datetime] = None,
        cooldown_days: Optional[int] = None,
    ) -> bool:
        now = _now(now)
        window = timedelta(days=cooldown_days) if cooldown_days is not None else self._cooldown
        return self._within(self.dismissals().get(alert_id), window, now)

    def dismissed_ids(self, now: Optional[datetime] = None) -> Set[str]:
        now = _now(now)
        return {
            alert_id for alert_id, at in self.dismissals().items()
            if self._within(at, self._cooldown, now)
        }

    def has_triggered_today(self, alert_id: str, now: Optional[datetime] = None) -> bool:
        now = _now(now)
        entry = self.get(alert_id)
        last = parse_timestamp(entry.get("last_triggered_at")) if entry else None
        return last is not None and last.date() == now.date()

    def triggered_today_ids(self, now: Optional[datetime] = None) -> Set[str]:
        now = _now(now)
        return {a["id"] for a in self.stored_alerts() if self.has_triggered_today(a["id"], now)}

    def has_triggered_within(self, alert_id: str, days: int, now: Optional[datetime] = None) -> bool:
        now = _now(now)
        entry = self.get(alert_id)
        if not entry:
            return False
        return self._within(entry.get("last_triggered_at"), timedelta(days=days), now)

    # -------------------------------------------------
    # Views & housekeeping
    # -------------------------------------------------

    def active(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Stored alerts not under dismissal: priority, then severity, then most recent."""
        now = _now(now)
        dismissed = self.dismissed_ids(now)
        alerts = [a for a in self.stored_alerts() if a["id"] not in dismissed]
        alerts.sort(key=lambda a: a.get("last_triggered_at") or "", reverse=True)
        alerts.sort(key=lambda a: (_priority(a), _severity_rank(a)))
        return alerts

    def counts(self, now: Optional[datetime] = None) -> Dict[str, int]:
        alerts = self.active(now)
        out = {"total": len(alerts)}
        for severity in Severity:
            out[severity.value] = sum(1 for a in alerts if a.get("severity") == severity.value)
        for pillar in ("economy", "mental", "physical"):
            out[pillar] = sum(1 for a in alerts if a.get("pillar") == pillar)
        return out

    def prune(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        """
        Drop alerts first detected more than max_age ago and dismissals
        older than twice the cooldown. Returns (alerts_removed, dismissals_removed).

        Entries whose timestamp cannot be read are kept; a document whose
        read failed is left untouched.
        """
        now = _now(now)

        stored = self._load_alerts() or []
        kept = [
            a for a in stored
            if not self._expired(a.get("first_detected_at"), self._max_age, now)
        ]
        if len(kept) != len(stored):
            self._write(self.active_key, kept)

        dismissed = self._load(self.dismissed_key, dict) or {}
        kept_dismissed = {
            alert_id: at for alert_id, at in dismissed.items()
            if not self._expired(at, self._cooldown * 2, now)
        }
        if len(kept_dismissed) != len(dismissed):
            self._write(self.dismissed_key, kept_dismissed)

        removed = (len(stored) - len(kept), len(dismissed) - len(kept_dismissed))
        if any(removed):
            self._logger.debug(f"pruned {removed[0]} alerts, {removed[1]} dismissals")
        return removed
