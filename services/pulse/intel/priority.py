"""
Priority Resolver - one global, capped, severity-ordered alert feed.

Bands (lower = more urgent) outrank severity across pillars:

  1  economy critical   daily anomaly, monthly overspend
  2  mental critical    sustained low, sharp drop
  3  physical critical  critical inactivity (with history), abandonment risk
  4  economy secondary  category overflow, heavy subscriptions, expensive price
  5  no records         any pillar with no (recent) data

Within a band, high < medium < low. Remaining ties keep input order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .models import Alert, AlertRule, CriticalInactivityAlert

BAND_ECONOMY_CRITICAL = 1
BAND_MENTAL_CRITICAL = 2
BAND_PHYSICAL_CRITICAL = 3
BAND_ECONOMY_SECONDARY = 4
BAND_NO_RECORDS = 5

MAX_ALERTS = 3

RULE_BANDS: Dict[AlertRule, int] = {
    AlertRule.DAILY_ANOMALY: BAND_ECONOMY_CRITICAL,
    AlertRule.MONTHLY_OVERSPEND: BAND_ECONOMY_CRITICAL,
    AlertRule.SUSTAINED_LOW: BAND_MENTAL_CRITICAL,
    AlertRule.SHARP_DROP: BAND_MENTAL_CRITICAL,
    AlertRule.CRITICAL_INACTIVITY: BAND_PHYSICAL_CRITICAL,
    AlertRule.ABANDONMENT_RISK: BAND_PHYSICAL_CRITICAL,
    AlertRule.CATEGORY_OVERFLOW: BAND_ECONOMY_SECONDARY,
    AlertRule.HEAVY_SUBSCRIPTIONS: BAND_ECONOMY_SECONDARY,
    AlertRule.EXPENSIVE_PRICE: BAND_ECONOMY_SECONDARY,
    AlertRule.NO_RECORDS: BAND_NO_RECORDS,
    AlertRule.MENTAL_NO_RECORDS: BAND_NO_RECORDS,
}


def band_for(alert: Alert) -> int:
    # A pillar that never logged anything is a nudge, not an emergency
    if isinstance(alert, CriticalInactivityAlert) and alert.no_data:
        return BAND_NO_RECORDS
    return RULE_BANDS[alert.rule]


@dataclass(frozen=True)
class RankedAlert:
    """A pillar alert placed in the global feed."""
    alert: Alert
    band: int

    @property
    def id(self) -> str:
        return self.alert.id

    @property
    def severity_rank(self) -> int:
        return self.alert.severity.rank

    def to_dict(self) -> Dict[str, Any]:
        out = self.alert.to_dict()
        out["priority"] = self.band
        out["rule_priority"] = self.alert.priority
        return out


def rank(alerts: Sequence[Alert]) -> List[RankedAlert]:
    """Band and sort, without truncation."""
    ranked = [RankedAlert(alert=a, band=band_for(a)) for a in alerts]
    # sorted() is stable, so equal keys keep the caller's pillar order
    return sorted(ranked, key=lambda r: (r.band, r.severity_rank))


def resolve(*pillar_alerts: Sequence[Alert], limit: int = MAX_ALERTS) -> List[RankedAlert]:
    """
    Merge the pillars' alert lists into one feed capped at `limit`.

    Pass the lists in pillar order (economy, mental, physical) so ties
    resolve the same way on every run.
    """
    merged: List[Alert] = [a for alerts in pillar_alerts for a in alerts]
    return rank(merged)[:limit]
