"""
Physical pillar - alerts, insights and snapshot from activity logs.

Same-day entries count as one active day for every frequency rule.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence

from .models import (
    AbandonmentRiskAlert,
    Alert,
    CriticalInactivityAlert,
    Cta,
    CtaAction,
    Insight,
    InsightType,
    PhysicalRecord,
    PhysicalSnapshot,
    Pillar,
    Severity,
    Trend,
)
from .windows import as_day, days_since, distinct_days, preceding, trailing

# --- Thresholds ---
CRITICAL_INACTIVITY_DAYS = 14
CRITICAL_INACTIVITY_HIGH_DAYS = 21
ABANDONMENT_MIN_DAYS = 10
ABANDONMENT_WINDOW_DAYS = 28
ABANDONMENT_MIN_PER_WEEK = 2.0
PROLONGED_INACTIVITY_DAYS = 10
CONSISTENCY_DROP_RATIO = 0.6
CONSISTENCY_MIN_PRIOR_DAYS = 3
IRREGULAR_GAP_DAYS = 5
IRREGULAR_MIN_GAPS = 3
IRREGULAR_MIN_RECORDS = 3

MAX_INSIGHTS = 3

_LOG_ACTIVITY_CTA = Cta("Log activity", CtaAction.CHAT_PREFILL, text="💪 ")


def last_active_day(records: Sequence[PhysicalRecord]) -> Optional[date]:
    return max((r.date for r in records), default=None)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

def get_physical_alerts(
    records: Sequence[PhysicalRecord],
    now: Optional[datetime | date] = None,
) -> List[Alert]:
    """At most one alert: critical inactivity outranks abandonment risk."""
    today = as_day(now)

    last = last_active_day(records)
    if last is None:
        return [CriticalInactivityAlert(
            id="phys_alert_critical",
            text="No physical activity logged yet.",
            priority=1,
            severity=Severity.MEDIUM,
            cta=_LOG_ACTIVITY_CTA,
            days_inactive=None,
        )]

    gap = days_since(last, today)

    if gap >= CRITICAL_INACTIVITY_DAYS:
        return [CriticalInactivityAlert(
            id="phys_alert_critical",
            text=f"{gap} days without logging physical activity.",
            priority=1,
            severity=Severity.HIGH if gap >= CRITICAL_INACTIVITY_HIGH_DAYS else Severity.MEDIUM,
            cta=_LOG_ACTIVITY_CTA,
            days_inactive=gap,
        )]

    if gap >= ABANDONMENT_MIN_DAYS:
        # Was there a routine in the four weeks before the gap started?
        window = preceding(records, today, ABANDONMENT_WINDOW_DAYS, offset=ABANDONMENT_MIN_DAYS)
        per_week = distinct_days(window) / (ABANDONMENT_WINDOW_DAYS / 7)
        if per_week >= ABANDONMENT_MIN_PER_WEEK:
            return [AbandonmentRiskAlert(
                id="phys_alert_abandonment",
                text="A routine that had been steady has stopped.",
                priority=2,
                severity=Severity.MEDIUM,
                cta=_LOG_ACTIVITY_CTA,
                days_inactive=gap,
                prior_days_per_week=per_week,
            )]

    return []


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

def count_long_gaps(records: Sequence[PhysicalRecord], today: date) -> int:
    """Gaps of IRREGULAR_GAP_DAYS+ between active days, plus the open gap to today."""
    dates = sorted({r.date for r in records})
    gaps = sum(
        1 for prev, cur in zip(dates, dates[1:])
        if (cur - prev).days >= IRREGULAR_GAP_DAYS
    )
    if dates and days_since(dates[-1], today) >= IRREGULAR_GAP_DAYS:
        gaps += 1
    return gaps


def get_physical_insights(
    records: Sequence[PhysicalRecord],
    now: Optional[datetime | date] = None,
) -> List[Insight]:
    today = as_day(now)
    insights: List[Insight] = []

    # A) Prolonged inactivity
    last = last_active_day(records)
    if last is None:
        insights.append(Insight(
            id="phys_no_data",
            pillar=Pillar.PHYSICAL,
            text="No physical activity records yet.",
            type=InsightType.INACTIVITY,
        ))
    else:
        gap = days_since(last, today)
        if gap >= PROLONGED_INACTIVITY_DAYS:
            insights.append(Insight(
                id="phys_inactivity",
                pillar=Pillar.PHYSICAL,
                text=f"It has been {gap} days since your last logged activity.",
                type=InsightType.INACTIVITY,
            ))

    # B) Consistency drop: last two weeks vs the two before
    count_last = distinct_days(trailing(records, today, 14))
    count_prev = distinct_days(preceding(records, today, 14, offset=14))
    if count_prev >= CONSISTENCY_MIN_PRIOR_DAYS and count_last < count_prev * CONSISTENCY_DROP_RATIO:
        insights.append(Insight(
            id="phys_drop",
            pillar=Pillar.PHYSICAL,
            text="Less physical activity over the last couple of weeks.",
            type=InsightType.DROP,
        ))

    # C) Irregular pattern over the month
    last30 = trailing(records, today, 30)
    if len(last30) >= IRREGULAR_MIN_RECORDS and count_long_gaps(last30, today) >= IRREGULAR_MIN_GAPS:
        insights.append(Insight(
            id="phys_irregular",
            pillar=Pillar.PHYSICAL,
            text="Your activity pattern has been irregular this month.",
            type=InsightType.IRREGULARITY,
        ))

    return insights[:MAX_INSIGHTS]


def get_physical_snapshot(
    records: Sequence[PhysicalRecord],
    now: Optional[datetime | date] = None,
) -> PhysicalSnapshot:
    today = as_day(now)
    last = last_active_day(records)

    count_last7 = distinct_days(trailing(records, today, 7))
    count_prev7 = distinct_days(preceding(records, today, 7, offset=7))

    trend = Trend.STABLE
    if count_last7 > count_prev7:
        trend = Trend.UP
    elif count_last7 < count_prev7:
        trend = Trend.DOWN

    return PhysicalSnapshot(
        last_activity_days_ago=days_since(last, today) if last is not None else None,
        active_days_last_14=distinct_days(trailing(records, today, 14)),
        trend=trend,
    )
