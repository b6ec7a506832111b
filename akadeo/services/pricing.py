"""Plan pricing: discount windows and the public plan shape.

Everything here is pure and deterministic. Prices are integer minor units
(cents). A discount runs through the whole of its end date, i.e. until
23:59:59.999 UTC on that calendar day.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from akadeo.models.enums import SubscriptionStatus

_END_OF_DAY = time(23, 59, 59, 999_000, tzinfo=UTC)


@dataclass(frozen=True)
class PlanPricing:
    """Price breakdown for a plan at a given instant."""

    base_price_cents: int
    current_price_cents: int
    discount_percent: int | None
    discount_ends_on: date | None
    discount_active: bool


def _coerce_percent(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        percent = int(value)
    except (TypeError, ValueError):
        return None
    return max(0, min(100, percent))


def _coerce_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def discount_deadline(end_date: date) -> datetime:
    """Last instant at which a discount ending on ``end_date`` still applies."""
    return datetime.combine(end_date, _END_OF_DAY)


def is_discount_active(discount_percent: Any, discount_end_date: Any, now: datetime) -> bool:
    percent = _coerce_percent(discount_percent)
    end_date = _coerce_date(discount_end_date)
    if not percent or end_date is None:
        return False
    return _as_utc(now) <= discount_deadline(end_date)


def apply_discount(base_price_cents: int, percent: int) -> int:
    """Apply a percentage discount, rounding half-up to the nearest cent."""
    exact = Decimal(base_price_cents) * Decimal(100 - percent) / Decimal(100)
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_plan_pricing(
    base_price_cents: int,
    discount_percent: Any,
    discount_end_date: Any,
    now: datetime,
) -> PlanPricing:
    """Work out the price a customer pays for a plan right now.

    Malformed discount values are treated as absent; a free plan is never
    reported as discounted.
    """
    base = max(0, int(base_price_cents or 0))
    percent = _coerce_percent(discount_percent)
    end_date = _coerce_date(discount_end_date)
    active = base > 0 and is_discount_active(percent, end_date, now)
    current = apply_discount(base, percent) if active else base
    return PlanPricing(
        base_price_cents=base,
        current_price_cents=current,
        discount_percent=percent,
        discount_ends_on=end_date,
        discount_active=active,
    )


def plan_pricing(plan: Any, now: datetime) -> PlanPricing:
    """Price a Plan model (or any object with the same attributes)."""
    return calculate_plan_pricing(
        plan.price_cents, plan.discount_percent, plan.discount_end_date, now
    )


def normalise_plan(plan: Any, now: datetime) -> dict[str, Any]:
    """Public representation of a plan with its current price."""
    pricing = plan_pricing(plan, now)
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "priceCents": pricing.base_price_cents,
        "currentPriceCents": pricing.current_price_cents,
        "discountPercent": pricing.discount_percent,
        "discountEndsOn": pricing.discount_ends_on.isoformat() if pricing.discount_ends_on else None,
        "discountActive": pricing.discount_active,
    }


def subscription_is_active(status: str | None) -> bool:
    if not status:
        return False
    try:
        return SubscriptionStatus(status.lower()).is_active()
    except ValueError:
        return False
