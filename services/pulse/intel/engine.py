"""
Pulse Engine - unified entry point.

One run: prune stale state -> evaluate every pillar -> drop dismissed
alerts -> rank globally -> persist what still triggers -> return the capped
feed with insights, snapshots and the overall state.

Evaluators never touch the store; only this module reads and writes it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from shared.logutil import LogUtil

from .config import PulseConfig
from .economic import get_economic_alerts, get_economic_insights, get_economy_snapshot
from .lifecycle import AlertLifecycleStore
from .mental import get_mental_alerts, get_mental_insights, get_mental_snapshot
from .models import (
    Insight,
    MentalSnapshot,
    PhysicalSnapshot,
    Pillar,
    RecordBundle,
    Severity,
    EconomySnapshot,
    Trend,
)
from .physical import get_physical_alerts, get_physical_insights, get_physical_snapshot
from .priority import BAND_ECONOMY_SECONDARY, RankedAlert, rank
from .windows import in_trailing


class OverallStatus(str, Enum):
    STABLE = "stable"
    ATTENTION = "attention"
    ALERT = "alert"


STABLE_SUBTITLE = "Everything within your usual range"


@dataclass(frozen=True)
class OverallState:
    status: OverallStatus
    subtitle: str

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "subtitle": self.subtitle}


@dataclass(frozen=True)
class FeedAlert:
    """A ranked alert as returned to the caller, with its lifecycle stamps."""
    ranked: RankedAlert
    first_detected_at: Optional[str]
    last_triggered_at: Optional[str]

    @property
    def id(self) -> str:
        return self.ranked.id

    @property
    def pillar(self) -> Pillar:
        return self.ranked.alert.pillar

    @property
    def priority(self) -> int:
        return self.ranked.band

    @property
    def severity(self) -> Severity:
        return self.ranked.alert.severity

    def to_dict(self) -> Dict[str, Any]:
        out = self.ranked.to_dict()
        out["first_detected_at"] = self.first_detected_at
        out["last_triggered_at"] = self.last_triggered_at
        return out


@dataclass
class EngineResult:
    alerts: List[FeedAlert]
    new_today: List[str]
    insights: Dict[Pillar, List[Insight]]
    economy: EconomySnapshot
    mental: MentalSnapshot
    physical: PhysicalSnapshot
    state: OverallState
    tracking_consistency_percent: int
    generated_at: str = ""
    counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "alerts": [a.to_dict() for a in self.alerts],
            "new_today": list(self.new_today),
            "insights": {
                pillar.value: [i.to_dict() for i in items]
                for pillar, items in self.insights.items()
            },
            "snapshots": {
                "economy": self.economy.to_dict(),
                "mental": self.mental.to_dict(),
                "physical": self.physical.to_dict(),
            },
            "state": self.state.to_dict(),
            "progress": {"tracking_consistency_percent": self.tracking_consistency_percent},
            "counts": dict(self.counts),
        }


# ---------------------------------------------------------------------------
# Overview helpers
# ---------------------------------------------------------------------------

def _join(parts: List[str]) -> str:
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def overall_state(
    alerts: Sequence[FeedAlert],
    mental: MentalSnapshot,
    physical: PhysicalSnapshot,
) -> OverallState:
    """stable / attention / alert, plus a one-line subtitle of what drives it."""
    mental_down = mental.trend == Trend.DOWN
    physical_down = physical.trend == Trend.DOWN

    if any(a.severity == Severity.HIGH for a in alerts):
        status = OverallStatus.ALERT
    elif alerts or mental_down or physical_down:
        status = OverallStatus.ATTENTION
    else:
        status = OverallStatus.STABLE

    econ_alert = next(
        (a for a in alerts if a.pillar == Pillar.ECONOMY and a.priority <= BAND_ECONOMY_SECONDARY),
        None,
    )
    mental_alert = any(a.pillar == Pillar.MENTAL for a in alerts)
    physical_alert = any(a.pillar == Pillar.PHYSICAL for a in alerts)

    if not (econ_alert or mental_alert or physical_alert or mental_down or physical_down):
        return OverallState(status, STABLE_SUBTITLE)

    parts = []
    if econ_alert:
        parts.append("High spending" if econ_alert.severity == Severity.HIGH else "Irregular spending")
    else:
        parts.append("Spending stable")
    if mental_alert or mental_down:
        parts.append("variable mood")
    if physical_alert or physical_down:
        parts.append("low physical activity")

    return OverallState(status, _join(parts))


def tracking_consistency(bundle: RecordBundle, today: date, days: int = 14) -> int:
    """Percent of the trailing `days` with at least one record in any pillar."""
    if days <= 0:
        return 0
    tracked = {
        r.date
        for records in (bundle.mental_records, bundle.physical_records, bundle.transactions)
        for r in records
        if in_trailing(r.date, today, days)
    }
    return min(100, round(len(tracked) / days * 100))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PulseEngine:
    """
    Orchestrates the three pillar evaluators, the priority resolver and
    the lifecycle store.

    The store is injected: MemoryKVStore in tests, RedisKVStore in
    production.
    """

    def __init__(
        self,
        store: AlertLifecycleStore,
        config: Optional[PulseConfig] = None,
        logger: Optional[LogUtil] = None,
    ):
        self._store = store
        self._config = config or PulseConfig()
        self._logger = logger or LogUtil("pulse", component="engine")

    @property
    def store(self) -> AlertLifecycleStore:
        return self._store

    def run(self, bundle: RecordBundle, now: Optional[datetime] = None) -> EngineResult:
        now = now or datetime.now()
        today = now.date()
        cfg = self._config

        self._store.prune(now)

        pillar_alerts = [
            get_economic_alerts(bundle.transactions, bundle.subscriptions, bundle.price_history, today),
            get_mental_alerts(bundle.mental_records, today),
            get_physical_alerts(bundle.physical_records, today),
        ]

        dismissed = self._store.dismissed_ids(now)
        seen_today = self._store.triggered_today_ids(now)

        candidates = [a for alerts in pillar_alerts for a in alerts if a.id not in dismissed]
        ranked = rank(candidates)
        live_ids = {r.id for r in ranked}

        stale = {a["id"] for a in self._store.stored_alerts()} - live_ids
        if stale:
            self._store.remove_many(stale)
            self._logger.debug(f"resolved {len(stale)} alerts: {sorted(stale)}")

        stored = {entry["id"]: entry for entry in self._store.upsert_many(ranked, now)}

        feed = [
            FeedAlert(
                ranked=r,
                first_detected_at=stored[r.id].get("first_detected_at"),
                last_triggered_at=stored[r.id].get("last_triggered_at"),
            )
            for r in ranked[: cfg.max_alerts]
        ]

        economy = get_economy_snapshot(bundle.transactions, today)
        mental = get_mental_snapshot(bundle.mental_records, today)
        physical = get_physical_snapshot(bundle.physical_records, today)

        insights = {
            Pillar.ECONOMY: get_economic_insights(bundle.transactions, today)[: cfg.max_insights],
            Pillar.MENTAL: get_mental_insights(bundle.mental_records, today)[: cfg.max_insights],
            Pillar.PHYSICAL: get_physical_insights(bundle.physical_records, today)[: cfg.max_insights],
        }

        result = EngineResult(
            alerts=feed,
            new_today=[a.id for a in feed if a.id not in seen_today],
            insights=insights,
            economy=economy,
            mental=mental,
            physical=physical,
            state=overall_state(feed, mental, physical),
            tracking_consistency_percent=tracking_consistency(bundle, today, cfg.progress_days),
            generated_at=now.isoformat(timespec="seconds"),
            counts={
                "candidates": len(candidates),
                "dismissed": sum(len(alerts) for alerts in pillar_alerts) - len(candidates),
                "returned": len(feed),
            },
        )
        self._logger.info(
            f"run complete: {len(feed)} alerts ({len(result.new_today)} new today), "
            f"state={result.state.status.value}"
        )
        return result

    # -------------------------------------------------
    # User actions
    # -------------------------------------------------

    def dismiss(self, alert_id: str, now: Optional[datetime] = None) -> None:
        self._store.dismiss(alert_id, now)
        self._logger.info(f"dismissed {alert_id}")

    def resolve(self, alert_id: str) -> bool:
        resolved = self._store.resolve(alert_id)
        if resolved:
            self._logger.info(f"resolved {alert_id}")
        return resolved

    def active_alerts(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return self._store.active(now)[: self._config.max_alerts]
