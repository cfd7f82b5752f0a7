"""
Mental pillar - alerts, insights and snapshot from mood logs (1-5).

At most one alert is returned (the most urgent match). Insights are
independent of alerts and capped at MAX_INSIGHTS.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence

import numpy as np

from .models import (
    Alert,
    Cta,
    CtaAction,
    Insight,
    InsightType,
    MentalNoRecordsAlert,
    MentalRecord,
    MentalSnapshot,
    Pillar,
    Severity,
    SharpDropAlert,
    SustainedLowAlert,
    Trend,
)
from .windows import as_day, days_since, trailing

# --- Thresholds ---
SUSTAINED_LOW_LEVEL = 2
SUSTAINED_LOW_COUNT = 3
SUSTAINED_LOW_HIGH_COUNT = 5
SHARP_DROP_RATIO = 0.7
SHARP_DROP_MIN_RECORDS = 5
NO_RECORDS_DAYS = 7
NO_RECORDS_MEDIUM_DAYS = 14
TREND_THRESHOLD_RATIO = 0.85
TREND_MIN_RECORDS_7D = 3
TREND_MIN_RECORDS_30D = 5
VARIABILITY_THRESHOLD = 1.2
MIN_RECORDS_FOR_INSIGHTS = 4

MAX_INSIGHTS = 3

_LOG_MOOD_CTA = Cta("Log mood", CtaAction.CHAT_PREFILL, text="")


def _moods(records: Sequence[MentalRecord]) -> np.ndarray:
    return np.array([r.mood_level for r in records], dtype=np.float64)


def mean_mood(records: Sequence[MentalRecord]) -> Optional[float]:
    if not records:
        return None
    return float(np.mean(_moods(records)))


def mood_std(records: Sequence[MentalRecord]) -> float:
    """Population standard deviation (ddof=0); 0 below two samples."""
    if len(records) < 2:
        return 0.0
    return float(np.std(_moods(records)))


def newest_first(records: Sequence[MentalRecord]) -> List[MentalRecord]:
    # Stable sort: same-day entries keep their logged order
    return sorted(records, key=lambda r: r.date, reverse=True)


def low_run_length(records: Sequence[MentalRecord]) -> int:
    """Length of the leading run of low moods among the most recent records."""
    run = 0
    for r in newest_first(records):
        if r.mood_level > SUSTAINED_LOW_LEVEL:
            break
        run += 1
    return run


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

def check_sustained_low(records: Sequence[MentalRecord]) -> Optional[SustainedLowAlert]:
    if len(records) < SUSTAINED_LOW_COUNT:
        return None
    run = low_run_length(records)
    if run < SUSTAINED_LOW_COUNT:
        return None
    return SustainedLowAlert(
        id="mental_sustained_low",
        text="Sustained low mood over your latest check-ins.",
        priority=1,
        severity=Severity.HIGH if run >= SUSTAINED_LOW_HIGH_COUNT else Severity.MEDIUM,
        cta=_LOG_MOOD_CTA,
        run_length=run,
    )


def check_sharp_drop(records: Sequence[MentalRecord], today: date) -> Optional[SharpDropAlert]:
    last30 = trailing(records, today, 30)
    if len(last30) < SHARP_DROP_MIN_RECORDS:
        return None
    avg30 = mean_mood(last30)
    latest = newest_first(records)[0]
    if latest.mood_level > avg30 * SHARP_DROP_RATIO:
        return None
    return SharpDropAlert(
        id="mental_sharp_drop",
        text="Your latest check-in is well below your usual mood.",
        priority=2,
        severity=Severity.HIGH,
        cta=Cta("View history", CtaAction.NAVIGATE, href="/mental"),
        last_mood=latest.mood_level,
        avg_30d=avg30,
    )


def check_no_records(records: Sequence[MentalRecord], today: date) -> Optional[MentalNoRecordsAlert]:
    if not records:
        return MentalNoRecordsAlert(
            id="mental_no_records",
            text="No mood check-ins yet.",
            priority=3,
            severity=Severity.LOW,
            cta=_LOG_MOOD_CTA,
            days_since_last_record=None,
        )

    days = days_since(max(r.date for r in records), today)
    if days < NO_RECORDS_DAYS:
        return None
    return MentalNoRecordsAlert(
        id="mental_no_recent_records",
        text=f"{days} days without a mood check-in.",
        priority=3,
        severity=Severity.MEDIUM if days >= NO_RECORDS_MEDIUM_DAYS else Severity.LOW,
        cta=_LOG_MOOD_CTA,
        days_since_last_record=days,
    )


def get_mental_alerts(
    records: Sequence[MentalRecord],
    now: Optional[datetime | date] = None,
) -> List[Alert]:
    """At most one alert: the lowest priority number that matched."""
    today = as_day(now)
    candidates = [
        check_sustained_low(records),
        check_sharp_drop(records, today),
        check_no_records(records, today),
    ]
    alerts = sorted((a for a in candidates if a is not None), key=lambda a: a.priority)
    return alerts[:1]


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

def get_mental_insights(
    records: Sequence[MentalRecord],
    now: Optional[datetime | date] = None,
) -> List[Insight]:
    today = as_day(now)
    insights: List[Insight] = []

    last7 = trailing(records, today, 7)
    last14 = trailing(records, today, 14)
    last30 = trailing(records, today, 30)

    # A) Recent week below the monthly norm
    if len(last7) >= TREND_MIN_RECORDS_7D and len(last30) >= TREND_MIN_RECORDS_30D:
        if mean_mood(last7) < mean_mood(last30) * TREND_THRESHOLD_RATIO:
            insights.append(Insight(
                id="mental_trend_negative",
                pillar=Pillar.MENTAL,
                text="Your average mood this week was lower than your usual.",
                type=InsightType.TREND,
            ))

    # B) Large swings
    if len(last14) >= MIN_RECORDS_FOR_INSIGHTS and mood_std(last14) > VARIABILITY_THRESHOLD:
        insights.append(Insight(
            id="mental_high_variability",
            pillar=Pillar.MENTAL,
            text="Noticeable swings in your mood over the last days.",
            type=InsightType.VARIABILITY,
        ))

    # C) Sparse tracking
    if len(last14) < MIN_RECORDS_FOR_INSIGHTS:
        insights.append(Insight(
            id="mental_few_records",
            pillar=Pillar.MENTAL,
            text="Few recent mood check-ins.",
            type=InsightType.MISSING_DATA,
        ))

    return insights[:MAX_INSIGHTS]


def get_mental_snapshot(
    records: Sequence[MentalRecord],
    now: Optional[datetime | date] = None,
) -> MentalSnapshot:
    today = as_day(now)
    last7 = trailing(records, today, 7)
    last14 = trailing(records, today, 14)
    last30 = trailing(records, today, 30)

    avg14 = mean_mood(last14)

    trend = Trend.STABLE
    if len(last7) >= 2 and len(last30) >= TREND_MIN_RECORDS_30D:
        avg7, avg30 = mean_mood(last7), mean_mood(last30)
        if avg7 > avg30:
            trend = Trend.UP
        elif avg7 < avg30:
            trend = Trend.DOWN

    return MentalSnapshot(
        days_tracked_last_14=len({r.date for r in last14}),
        avg_mood_last_14=round(avg14, 1) if avg14 is not None else None,
        trend=trend,
    )
