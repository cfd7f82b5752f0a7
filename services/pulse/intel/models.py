"""
Pulse Data Models - records, alerts, insights and snapshots.

Records are the read-only inputs handed to the engine by the caller.
Alerts are a tagged union: one frozen dataclass per rule, each carrying
only the metrics its rule produces. Insights and snapshots are plain
derived values, recomputed on every run.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

DEFAULT_CATEGORY = "Other"


class Pillar(str, Enum):
    ECONOMY = "economy"
    MENTAL = "mental"
    PHYSICAL = "physical"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class TransactionKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class ActivityType(str, Enum):
    WALK = "walk"
    GYM = "gym"
    RUN = "run"
    SPORT = "sport"
    OTHER = "other"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class CtaAction(str, Enum):
    NAVIGATE = "navigate"
    CHAT_PREFILL = "chat_prefill"


class AlertRule(str, Enum):
    DAILY_ANOMALY = "daily_anomaly"
    MONTHLY_OVERSPEND = "monthly_overspend"
    CATEGORY_OVERFLOW = "category_overflow"
    HEAVY_SUBSCRIPTIONS = "heavy_subscriptions"
    EXPENSIVE_PRICE = "expensive_price"
    NO_RECORDS = "no_records"
    SUSTAINED_LOW = "sustained_low"
    SHARP_DROP = "sharp_drop"
    MENTAL_NO_RECORDS = "mental_no_records"
    CRITICAL_INACTIVITY = "critical_inactivity"
    ABANDONMENT_RISK = "abandonment_risk"


class InsightType(str, Enum):
    TREND = "trend"
    VARIABILITY = "variability"
    MISSING_DATA = "missing-data"
    INACTIVITY = "inactivity"
    DROP = "drop"
    IRREGULARITY = "irregularity"
    CONCENTRATION = "concentration"


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> date:
    """Accept a date, a datetime or an ISO string ("2026-03-01" or full timestamp)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    raise ValueError(f"unparseable date: {value!r}")


def _positive_amount(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")


def _mood_level(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"mood_level must be an integer 1-5, got {value!r}")
    level = float(value)
    if not level.is_integer():
        raise ValueError(f"mood_level must be an integer 1-5, got {value!r}")
    return int(level)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transaction:
    id: str
    kind: TransactionKind
    amount: float
    date: date
    description: str = ""
    category: Optional[str] = None
    wallet: Optional[str] = None
    source_wallet: Optional[str] = None       # transfer only
    destination_wallet: Optional[str] = None  # transfer only
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.kind, TransactionKind):
            object.__setattr__(self, "kind", TransactionKind(self.kind))
        _positive_amount("amount", self.amount)

    @property
    def category_bucket(self) -> str:
        return (self.category or "").strip() or DEFAULT_CATEGORY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        kind = TransactionKind(data.get("kind", "expense"))
        return cls(
            id=str(data["id"]),
            kind=kind,
            amount=float(data["amount"]),
            date=parse_date(data["date"]),
            description=data.get("description") or "",
            category=data.get("category"),
            wallet=data.get("wallet"),
            source_wallet=data.get("source_wallet"),
            destination_wallet=data.get("destination_wallet"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class Subscription:
    id: str
    name: str
    amount: float
    cadence_months: int = 1
    next_charge_date: Optional[date] = None
    active: bool = True

    def __post_init__(self):
        _positive_amount("amount", self.amount)
        if self.cadence_months < 1:
            raise ValueError(f"cadence_months must be >= 1, got {self.cadence_months}")

    @property
    def monthly_cost(self) -> float:
        return self.amount / self.cadence_months

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscription":
        next_charge = data.get("next_charge_date")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            amount=float(data["amount"]),
            cadence_months=int(data.get("cadence_months", 1)),
            next_charge_date=parse_date(next_charge) if next_charge else None,
            active=bool(data.get("active", True)),
        )


@dataclass(frozen=True)
class PriceRecord:
    product_name: str
    price: float
    fetched_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceRecord":
        return cls(
            product_name=str(data["product_name"]),
            price=float(data["price"]),
            fetched_at=data.get("fetched_at"),
        )


@dataclass(frozen=True)
class MentalRecord:
    date: date
    mood_level: int  # 1 (very low) .. 5 (very high)
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.mood_level, int) or not 1 <= self.mood_level <= 5:
            raise ValueError(f"mood_level must be an integer 1-5, got {self.mood_level!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MentalRecord":
        level = data.get("mood_level", data.get("moodLevel"))
        return cls(
            date=parse_date(data["date"]),
            mood_level=_mood_level(level),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class PhysicalRecord:
    date: date
    activity_type: ActivityType = ActivityType.OTHER
    duration_min: int = 0

    def __post_init__(self):
        if not isinstance(self.activity_type, ActivityType):
            object.__setattr__(self, "activity_type", ActivityType(self.activity_type))
        if self.duration_min < 0:
            raise ValueError(f"duration_min must be >= 0, got {self.duration_min}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhysicalRecord":
        activity = data.get("activity_type", data.get("activityType", "other"))
        duration = data.get("duration_min", data.get("durationMin", 0))
        return cls(
            date=parse_date(data["date"]),
            activity_type=ActivityType(activity),
            duration_min=int(duration),
        )


@dataclass
class RecordBundle:
    """Everything one engine run reads."""
    transactions: List[Transaction] = field(default_factory=list)
    subscriptions: List[Subscription] = field(default_factory=list)
    price_history: List[PriceRecord] = field(default_factory=list)
    mental_records: List[MentalRecord] = field(default_factory=list)
    physical_records: List[PhysicalRecord] = field(default_factory=list)

    _SECTIONS: ClassVar[Dict[str, type]] = {
        "transactions": Transaction,
        "subscriptions": Subscription,
        "price_history": PriceRecord,
        "mental_records": MentalRecord,
        "physical_records": PhysicalRecord,
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], logger=None) -> "RecordBundle":
        """
        Build a bundle from a JSON-style document.

        Malformed entries are skipped (and logged) so one bad record never
        hides the rest of the user's history.
        """
        sections: Dict[str, list] = {}
        for key, record_cls in cls._SECTIONS.items():
            parsed = []
            entries = data.get(key) or []
            if not isinstance(entries, list):
                if logger:
                    logger.warn(f"skipping {key}: expected a list, got {type(entries).__name__}")
                entries = []
            for i, raw in enumerate(entries):
                if not isinstance(raw, dict):
                    if logger:
                        logger.warn(f"skipping {key}[{i}]: expected an object, got {type(raw).__name__}")
                    continue
                try:
                    parsed.append(record_cls.from_dict(raw))
                except (KeyError, TypeError, ValueError) as e:
                    if logger:
                        logger.warn(f"skipping {key}[{i}]: {e}")
            sections[key] = parsed
        return cls(**sections)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Cta:
    """Single suggested action: open a view, or prefill the chat composer."""
    label: str
    action: CtaAction
    href: Optional[str] = None
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"label": self.label, "action": self.action.value}
        if self.href is not None:
            out["href"] = self.href
        if self.text is not None:
            out["text"] = self.text
        return out


@dataclass(frozen=True)
class Alert:
    """
    Base of the alert union. Subclasses set `rule` and `pillar` and add
    their own metric fields; `data` exposes exactly those fields.
    """
    id: str
    text: str
    priority: int
    severity: Severity
    cta: Cta

    rule: ClassVar[AlertRule]
    pillar: ClassVar[Pillar]
    _BASE_FIELDS: ClassVar[frozenset] = frozenset({"id", "text", "priority", "severity", "cta"})

    @property
    def data(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in self._BASE_FIELDS
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pillar": self.pillar.value,
            "type": self.rule.value,
            "text": self.text,
            "priority": self.priority,
            "severity": self.severity.value,
            "cta": self.cta.to_dict(),
            "data": self.data,
        }


# --- economy ---

@dataclass(frozen=True)
class DailyAnomalyAlert(Alert):
    today_total: float
    avg_daily: float
    pct: int

    rule = AlertRule.DAILY_ANOMALY
    pillar = Pillar.ECONOMY


@dataclass(frozen=True)
class MonthlyOverspendAlert(Alert):
    current_total: float
    projected: float
    avg_3m: float
    pct: int

    rule = AlertRule.MONTHLY_OVERSPEND
    pillar = Pillar.ECONOMY


@dataclass(frozen=True)
class CategoryOverflowAlert(Alert):
    category: str
    current_total: float
    projected: float
    avg_category: float
    pct: int

    rule = AlertRule.CATEGORY_OVERFLOW
    pillar = Pillar.ECONOMY


@dataclass(frozen=True)
class HeavySubscriptionsAlert(Alert):
    monthly_subscriptions: float
    avg_monthly: float
    pct: int

    rule = AlertRule.HEAVY_SUBSCRIPTIONS
    pillar = Pillar.ECONOMY


@dataclass(frozen=True)
class ExpensivePriceAlert(Alert):
    product: str
    current_price: float
    avg_price: float
    pct: int

    rule = AlertRule.EXPENSIVE_PRICE
    pillar = Pillar.ECONOMY


@dataclass(frozen=True)
class EconomicNoRecordsAlert(Alert):
    days_since_last_record: Optional[int]  # None when nothing was ever recorded

    rule = AlertRule.NO_RECORDS
    pillar = Pillar.ECONOMY


# --- mental ---

@dataclass(frozen=True)
class SustainedLowAlert(Alert):
    run_length: int

    rule = AlertRule.SUSTAINED_LOW
    pillar = Pillar.MENTAL


@dataclass(frozen=True)
class SharpDropAlert(Alert):
    last_mood: int
    avg_30d: float

    rule = AlertRule.SHARP_DROP
    pillar = Pillar.MENTAL


@dataclass(frozen=True)
class MentalNoRecordsAlert(Alert):
    days_since_last_record: Optional[int]

    rule = AlertRule.MENTAL_NO_RECORDS
    pillar = Pillar.MENTAL


# --- physical ---

@dataclass(frozen=True)
class CriticalInactivityAlert(Alert):
    days_inactive: Optional[int]  # None when no activity was ever logged

    rule = AlertRule.CRITICAL_INACTIVITY
    pillar = Pillar.PHYSICAL

    @property
    def no_data(self) -> bool:
        return self.days_inactive is None


@dataclass(frozen=True)
class AbandonmentRiskAlert(Alert):
    days_inactive: int
    prior_days_per_week: float

    rule = AlertRule.ABANDONMENT_RISK
    pillar = Pillar.PHYSICAL


# ---------------------------------------------------------------------------
# Insights & snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Insight:
    id: str
    pillar: Pillar
    text: str
    type: InsightType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pillar": self.pillar.value,
            "text": self.text,
            "type": self.type.value,
        }


@dataclass(frozen=True)
class MentalSnapshot:
    days_tracked_last_14: int
    avg_mood_last_14: Optional[float]
    trend: Trend

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days_tracked_last_14": self.days_tracked_last_14,
            "avg_mood_last_14": self.avg_mood_last_14,
            "trend": self.trend.value,
        }


@dataclass(frozen=True)
class PhysicalSnapshot:
    last_activity_days_ago: Optional[int]
    active_days_last_14: int
    trend: Trend

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_activity_days_ago": self.last_activity_days_ago,
            "active_days_last_14": self.active_days_last_14,
            "trend": self.trend.value,
        }


@dataclass(frozen=True)
class EconomySnapshot:
    monthly_spend: float
    delta_vs_avg_percent: int
    main_category: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly_spend": self.monthly_spend,
            "delta_vs_avg_percent": self.delta_vs_avg_percent,
            "main_category": self.main_category,
        }
