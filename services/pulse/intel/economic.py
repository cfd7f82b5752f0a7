"""
Economic pillar - alerts, insights and snapshot.

Deterministic, no AI. Six alert rules, priority-ordered:
  1. daily anomaly         - today's spend far above the 30-day daily average
  2. monthly overspend     - month projection above the 3-month average
  3. category overflow     - one category projected well above its history
  4. heavy subscriptions   - recurring charges eat a large share of spend
  5. expensive price       - a recent purchase above its tracked price history
  6. no records            - nothing logged for several days

Every rule runs on each call; the result is sorted by rule priority and
capped at MAX_ALERTS.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from .models import (
    DEFAULT_CATEGORY,
    Alert,
    CategoryOverflowAlert,
    Cta,
    CtaAction,
    DailyAnomalyAlert,
    EconomicNoRecordsAlert,
    EconomySnapshot,
    ExpensivePriceAlert,
    HeavySubscriptionsAlert,
    Insight,
    InsightType,
    MonthlyOverspendAlert,
    Pillar,
    PriceRecord,
    Severity,
    Subscription,
    Transaction,
    TransactionKind,
)
from .windows import (
    as_day,
    days_since,
    in_range,
    month_bounds,
    month_key,
    month_start,
    preceding,
    project_month,
    trailing,
)

# --- Thresholds ---
DAILY_ANOMALY_MULTIPLIER = 1.25
DAILY_ANOMALY_MIN_RECORDS = 5
DAILY_ANOMALY_HIGH_PCT = 80
MONTHLY_OVERSPEND_MULTIPLIER = 1.15
MONTHLY_OVERSPEND_HIGH_PCT = 40
CATEGORY_OVERFLOW_MULTIPLIER = 1.3
CATEGORY_MIN_SHARE = 0.10
CATEGORY_OVERFLOW_HIGH_PCT = 60
SUBSCRIPTION_MAX_SHARE = 0.15
SUBSCRIPTION_HIGH_PCT = 25
EXPENSIVE_PRICE_MULTIPLIER = 1.2
EXPENSIVE_PRICE_MIN_POINTS = 2
EXPENSIVE_PRICE_LOOKBACK_DAYS = 7
NO_RECORDS_DAYS = 5
NO_RECORDS_MEDIUM_DAYS = 10
HISTORY_MONTHS = 3

WEEKLY_TREND_RATIO = 0.20
CONCENTRATION_SHARE = 0.40
INSIGHT_MIN_RECORDS = 5

MAX_ALERTS = 3
MAX_INSIGHTS = 3

_MOVEMENTS_CTA = Cta("View movements", CtaAction.NAVIGATE, href="/money/movements")
_LOG_EXPENSE_CTA = Cta("Log expense", CtaAction.CHAT_PREFILL, text="")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def expenses_only(transactions: Sequence[Transaction]) -> List[Transaction]:
    return [t for t in transactions if t.kind == TransactionKind.EXPENSE]


def _total(expenses: Sequence[Transaction]) -> float:
    return sum(t.amount for t in expenses)


def _pct_over(value: float, baseline: float) -> int:
    return round((value - baseline) / baseline * 100)


def _current_month(expenses: Sequence[Transaction], today: date) -> List[Transaction]:
    start = month_start(today)
    return [t for t in expenses if start <= t.date <= today]


def _month_expenses(expenses: Sequence[Transaction], today: date, months_back: int) -> List[Transaction]:
    start, end = month_bounds(today, months_back)
    return [t for t in expenses if in_range(t.date, start, end)]


def monthly_history(expenses: Sequence[Transaction], today: date) -> List[float]:
    """Totals of the previous HISTORY_MONTHS calendar months, zero months dropped."""
    totals = []
    for i in range(1, HISTORY_MONTHS + 1):
        total = _total(_month_expenses(expenses, today, i))
        if total > 0:
            totals.append(total)
    return totals


def average_monthly_spend(expenses: Sequence[Transaction], today: date) -> Optional[float]:
    totals = monthly_history(expenses, today)
    if not totals:
        return None
    return sum(totals) / len(totals)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def check_daily_anomaly(expenses: Sequence[Transaction], today: date) -> Optional[DailyAnomalyAlert]:
    last30 = trailing(expenses, today, 30)
    if len(last30) < DAILY_ANOMALY_MIN_RECORDS:
        return None

    avg_daily = _total(last30) / 30
    today_total = _total([t for t in expenses if t.date == today])
    if today_total <= 0 or avg_daily <= 0:
        return None

    if today_total <= avg_daily * DAILY_ANOMALY_MULTIPLIER:
        return None

    pct = _pct_over(today_total, avg_daily)
    return DailyAnomalyAlert(
        id="econ_daily_anomaly",
        text=f"Today's spending {today_total:.2f} is +{pct}% over your daily average ({avg_daily:.2f})",
        priority=1,
        severity=Severity.HIGH if pct >= DAILY_ANOMALY_HIGH_PCT else Severity.MEDIUM,
        cta=_MOVEMENTS_CTA,
        today_total=today_total,
        avg_daily=avg_daily,
        pct=pct,
    )


def check_monthly_overspend(expenses: Sequence[Transaction], today: date) -> Optional[MonthlyOverspendAlert]:
    current_total = _total(_current_month(expenses, today))
    if current_total <= 0:
        return None

    avg_3m = average_monthly_spend(expenses, today)
    if avg_3m is None:
        return None

    projected = project_month(current_total, today)
    if projected <= avg_3m * MONTHLY_OVERSPEND_MULTIPLIER:
        return None

    pct = _pct_over(projected, avg_3m)
    return MonthlyOverspendAlert(
        id="econ_monthly_overspend",
        text=f"Month projected at {projected:.2f}: +{pct}% over your 3-month average ({avg_3m:.2f})",
        priority=2,
        severity=Severity.HIGH if pct >= MONTHLY_OVERSPEND_HIGH_PCT else Severity.MEDIUM,
        cta=Cta("View summary", CtaAction.NAVIGATE, href="/money/summary"),
        current_total=current_total,
        projected=projected,
        avg_3m=avg_3m,
        pct=pct,
    )


def category_averages(expenses: Sequence[Transaction], today: date) -> Dict[str, float]:
    """
    Historical monthly average per category.

    The numerator is the category's spend over the previous HISTORY_MONTHS
    months; the denominator counts every earlier month in which the
    category had any spend, capped at HISTORY_MONTHS.
    """
    totals: Dict[str, float] = defaultdict(float)
    for i in range(1, HISTORY_MONTHS + 1):
        for t in _month_expenses(expenses, today, i):
            totals[t.category_bucket] += t.amount

    current_start = month_start(today)
    months_seen: Dict[str, set] = defaultdict(set)
    for t in expenses:
        if t.date < current_start:
            months_seen[t.category_bucket].add(month_key(t.date))

    return {
        cat: total / (min(HISTORY_MONTHS, len(months_seen[cat])) or 1)
        for cat, total in totals.items()
    }


def check_category_overflow(expenses: Sequence[Transaction], today: date) -> Optional[CategoryOverflowAlert]:
    current = _current_month(expenses, today)
    month_total = _total(current)
    if month_total <= 0:
        return None

    by_category: Dict[str, float] = defaultdict(float)
    for t in current:
        by_category[t.category_bucket] += t.amount

    averages = category_averages(expenses, today)

    worst: Optional[CategoryOverflowAlert] = None
    for cat, cat_total in by_category.items():
        if cat == DEFAULT_CATEGORY:
            continue
        if cat_total / month_total < CATEGORY_MIN_SHARE:
            continue

        avg_cat = averages.get(cat)
        if not avg_cat or avg_cat <= 0:
            continue

        projected = project_month(cat_total, today)
        if projected <= avg_cat * CATEGORY_OVERFLOW_MULTIPLIER:
            continue

        pct = _pct_over(projected, avg_cat)
        if worst is None or pct > worst.pct:
            worst = CategoryOverflowAlert(
                id=f"econ_category_overflow_{cat}",
                text=f"{cat}: {cat_total:.2f} this month, +{pct}% over your average",
                priority=3,
                severity=Severity.HIGH if pct >= CATEGORY_OVERFLOW_HIGH_PCT else Severity.MEDIUM,
                cta=Cta(f"View {cat}", CtaAction.NAVIGATE, href="/money/movements"),
                category=cat,
                current_total=cat_total,
                projected=projected,
                avg_category=avg_cat,
                pct=pct,
            )
    return worst


def check_heavy_subscriptions(
    expenses: Sequence[Transaction],
    subscriptions: Sequence[Subscription],
    today: date,
) -> Optional[HeavySubscriptionsAlert]:
    active = [s for s in subscriptions if s.active]
    if not active:
        return None

    monthly_subs = sum(s.monthly_cost for s in active)
    avg_monthly = average_monthly_spend(expenses, today)
    if not avg_monthly or avg_monthly <= 0:
        return None

    share = monthly_subs / avg_monthly
    if share <= SUBSCRIPTION_MAX_SHARE:
        return None

    pct = round(share * 100)
    return HeavySubscriptionsAlert(
        id="econ_heavy_subscriptions",
        text=f"Subscriptions take {pct}% of your monthly spending ({monthly_subs:.2f}/month)",
        priority=4,
        severity=Severity.HIGH if pct >= SUBSCRIPTION_HIGH_PCT else Severity.MEDIUM,
        cta=Cta("View subscriptions", CtaAction.NAVIGATE, href="/money/subscriptions"),
        monthly_subscriptions=monthly_subs,
        avg_monthly=avg_monthly,
        pct=pct,
    )


def price_index(price_history: Sequence[PriceRecord]) -> Dict[str, List[float]]:
    index: Dict[str, List[float]] = {}
    for p in price_history:
        key = p.product_name.lower().strip()
        if key:
            index.setdefault(key, []).append(p.price)
    return index


def check_expensive_price(
    expenses: Sequence[Transaction],
    price_history: Sequence[PriceRecord],
    today: date,
) -> Optional[ExpensivePriceAlert]:
    index = price_index(price_history)
    if not index:
        return None

    recent = sorted(
        trailing(expenses, today, EXPENSIVE_PRICE_LOOKBACK_DAYS),
        key=lambda t: t.date,
        reverse=True,
    )
    for t in recent:
        description = t.description.lower().strip()
        if not description:
            continue

        for product, prices in index.items():
            # Heuristic: containment either way ("milk" ~ "whole milk 1l")
            if product not in description and description not in product:
                continue
            if len(prices) < EXPENSIVE_PRICE_MIN_POINTS:
                continue

            avg_price = sum(prices) / len(prices)
            if t.amount <= avg_price * EXPENSIVE_PRICE_MULTIPLIER:
                continue

            pct = _pct_over(t.amount, avg_price)
            return ExpensivePriceAlert(
                id=f"econ_expensive_{product}",
                text=f'"{t.description}" at {t.amount:.2f}: +{pct}% over your usual price ({avg_price:.2f})',
                priority=5,
                severity=Severity.LOW,
                cta=Cta("View price history", CtaAction.NAVIGATE, href="/money/insights"),
                product=product,
                current_price=t.amount,
                avg_price=avg_price,
                pct=pct,
            )
    return None


def check_no_records(expenses: Sequence[Transaction], today: date) -> Optional[EconomicNoRecordsAlert]:
    if not expenses:
        return EconomicNoRecordsAlert(
            id="econ_no_records",
            text="No expenses recorded yet. Log your first expense to unlock insights.",
            priority=6,
            severity=Severity.LOW,
            cta=_LOG_EXPENSE_CTA,
            days_since_last_record=None,
        )

    last = max(t.date for t in expenses)
    days = days_since(last, today)
    if days < NO_RECORDS_DAYS:
        return None

    return EconomicNoRecordsAlert(
        id="econ_no_records",
        text=f"{days} days without logging expenses (last: {last.isoformat()})",
        priority=6,
        severity=Severity.MEDIUM if days >= NO_RECORDS_MEDIUM_DAYS else Severity.LOW,
        cta=_LOG_EXPENSE_CTA,
        days_since_last_record=days,
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def get_economic_alerts(
    transactions: Sequence[Transaction],
    subscriptions: Sequence[Subscription] = (),
    price_history: Sequence[PriceRecord] = (),
    now: Optional[datetime | date] = None,
) -> List[Alert]:
    """Up to MAX_ALERTS economic alerts, most urgent rule first."""
    today = as_day(now)
    expenses = expenses_only(transactions)

    candidates = [
        check_daily_anomaly(expenses, today),
        check_monthly_overspend(expenses, today),
        check_category_overflow(expenses, today),
        check_heavy_subscriptions(expenses, subscriptions, today),
        check_expensive_price(expenses, price_history, today),
        check_no_records(expenses, today),
    ]
    alerts = [a for a in candidates if a is not None]
    alerts.sort(key=lambda a: a.priority)
    return alerts[:MAX_ALERTS]


def get_economic_insights(
    transactions: Sequence[Transaction],
    now: Optional[datetime | date] = None,
) -> List[Insight]:
    today = as_day(now)
    expenses = expenses_only(transactions)
    insights: List[Insight] = []

    # A) Week-over-week spending change
    this_week = _total(trailing(expenses, today, 7))
    last_week = _total(preceding(expenses, today, 7, offset=7))
    if last_week > 0:
        change = (this_week - last_week) / last_week
        if change >= WEEKLY_TREND_RATIO:
            insights.append(Insight(
                id="econ_weekly_trend_up",
                pillar=Pillar.ECONOMY,
                text=f"You spent {round(change * 100)}% more this week than the week before.",
                type=InsightType.TREND,
            ))
        elif change <= -WEEKLY_TREND_RATIO:
            insights.append(Insight(
                id="econ_weekly_trend_down",
                pillar=Pillar.ECONOMY,
                text=f"You spent {round(-change * 100)}% less this week than the week before.",
                type=InsightType.TREND,
            ))

    # B) One category dominates the last 30 days
    last30 = trailing(expenses, today, 30)
    total30 = _total(last30)
    if len(last30) >= INSIGHT_MIN_RECORDS and total30 > 0:
        by_category: Dict[str, float] = defaultdict(float)
        for t in last30:
            by_category[t.category_bucket] += t.amount
        by_category.pop(DEFAULT_CATEGORY, None)
        if by_category:
            top, top_total = max(by_category.items(), key=lambda kv: (kv[1], kv[0]))
            share = top_total / total30
            if share >= CONCENTRATION_SHARE:
                insights.append(Insight(
                    id="econ_top_category",
                    pillar=Pillar.ECONOMY,
                    text=f"{top} accounts for {round(share * 100)}% of your spending in the last 30 days.",
                    type=InsightType.CONCENTRATION,
                ))

    # C) Not enough records to say much
    if len(last30) < INSIGHT_MIN_RECORDS:
        insights.append(Insight(
            id="econ_few_records",
            pillar=Pillar.ECONOMY,
            text="Few expenses recorded in the last 30 days.",
            type=InsightType.MISSING_DATA,
        ))

    return insights[:MAX_INSIGHTS]


def get_economy_snapshot(
    transactions: Sequence[Transaction],
    now: Optional[datetime | date] = None,
) -> EconomySnapshot:
    today = as_day(now)
    expenses = expenses_only(transactions)
    current = _current_month(expenses, today)
    monthly_spend = _total(current)

    avg_3m = average_monthly_spend(expenses, today) or 0.0
    projected = project_month(monthly_spend, today)
    delta = round((projected - avg_3m) / avg_3m * 100) if avg_3m > 0 else 0

    by_category: Dict[str, float] = defaultdict(float)
    for t in current:
        by_category[t.category_bucket] += t.amount
    main_category = None
    if by_category:
        top = max(by_category.items(), key=lambda kv: (kv[1], kv[0]))[0]
        main_category = None if top == DEFAULT_CATEGORY else top

    return EconomySnapshot(
        monthly_spend=monthly_spend,
        delta_vs_avg_percent=delta,
        main_category=main_category,
    )
