"""Pricing rules — pure rate-plan arithmetic and the rolling materialization window.

No database access here. Everything is Decimal; callers convert at the edges.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

KIND_NONE = "NONE"
KIND_ABSOLUTE = "ABSOLUTE"
KIND_PERCENT = "PERCENT"

# Derived prices are persisted only for [today - 2d, today + 183d)
WINDOW_LOOKBACK_DAYS = 2
WINDOW_HORIZON_DAYS = 183

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PlanRule:
    """A rate plan reduced to what derivation needs."""

    id: int
    kind: str
    value: Decimal
    code: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "value": float(self.value),
            "code": self.code,
        }


def normalize_kind(kind: str | None) -> str:
    return (kind or KIND_NONE).strip().upper()


def to_decimal(value) -> Decimal | None:
    """Coerce a DB/JSON number to a finite Decimal, or None."""
    if value is None:
        return None
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return d if d.is_finite() else None


def apply_plan_rule(base: Decimal, kind: str | None, value) -> Decimal | None:
    """Apply a plan rule to the STD price. Unrounded.

    ABSOLUTE adds value, PERCENT scales by (1 + value/100), anything else
    returns the base unchanged. A non-finite base yields None.
    """
    base = to_decimal(base)
    if base is None:
        return None

    v = to_decimal(value) or Decimal("0")
    k = normalize_kind(kind)

    if k == KIND_ABSOLUTE:
        result = base + v
    elif k == KIND_PERCENT:
        result = base * (1 + v / 100)
    else:
        result = base

    return result if result.is_finite() else None


def round_price(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def derive_price(std_price: Decimal | None, rule: PlanRule) -> Decimal | None:
    """Derived nightly price for a plan, rounded to cents. None if not computable."""
    if std_price is None:
        return None
    raw = apply_plan_rule(std_price, rule.kind, rule.value)
    if raw is None:
        return None
    return round_price(raw)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def materialization_window(today: date | None = None) -> tuple[date, date]:
    """Half-open [start, end) range in which derived prices may be persisted."""
    today = today or utc_today()
    return (
        today - timedelta(days=WINDOW_LOOKBACK_DAYS),
        today + timedelta(days=WINDOW_HORIZON_DAYS),
    )


def within_window(day: date, today: date | None = None) -> bool:
    start, end = materialization_window(today)
    return start <= day < end


def date_range(start: date, end: date) -> list[date]:
    """All days in [start, end)."""
    if end <= start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days)]
