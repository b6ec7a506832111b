"""Tests for plan pricing."""

from datetime import UTC, date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from akadeo.services.pricing import (
    apply_discount,
    calculate_plan_pricing,
    is_discount_active,
    normalise_plan,
    subscription_is_active,
)

END = date(2025, 1, 4)


class TestDiscountWindow:
    """The discount runs through the whole of its end date in UTC."""

    def test_active_on_last_millisecond(self):
        now = datetime(2025, 1, 4, 23, 59, 59, 999_000, tzinfo=UTC)
        assert is_discount_active(30, END, now) is True

    def test_inactive_one_tick_later(self):
        now = datetime(2025, 1, 4, 23, 59, 59, 999_000, tzinfo=UTC) + timedelta(microseconds=1)
        assert is_discount_active(30, END, now) is False

    def test_inactive_next_day(self):
        assert is_discount_active(30, END, datetime(2025, 1, 5, tzinfo=UTC)) is False

    def test_other_timezones_are_compared_in_utc(self):
        # 2025-01-04 20:00 in UTC-5 is already 2025-01-05 in UTC
        eastern = timezone(timedelta(hours=-5))
        assert is_discount_active(30, END, datetime(2025, 1, 4, 20, 0, tzinfo=eastern)) is False
        assert is_discount_active(30, END, datetime(2025, 1, 4, 18, 0, tzinfo=eastern)) is True

    @pytest.mark.parametrize("percent", [None, 0, -5, "abc", True])
    def test_missing_or_malformed_percent(self, percent):
        assert is_discount_active(percent, END, datetime(2024, 12, 1, tzinfo=UTC)) is False

    @pytest.mark.parametrize("end_date", [None, "", "not-a-date", 42])
    def test_missing_or_malformed_end_date(self, end_date):
        assert is_discount_active(30, end_date, datetime(2024, 12, 1, tzinfo=UTC)) is False

    def test_end_date_as_iso_string(self):
        assert is_discount_active(30, "2025-01-04", datetime(2025, 1, 4, 12, tzinfo=UTC)) is True


class TestCalculatePlanPricing:
    def test_starter_plan_discounted(self):
        pricing = calculate_plan_pricing(699, 30, END, datetime(2024, 12, 1, tzinfo=UTC))
        assert pricing.current_price_cents == 489
        assert pricing.base_price_cents == 699
        assert pricing.discount_active is True

    def test_starter_plan_after_discount(self):
        pricing = calculate_plan_pricing(699, 30, END, datetime(2025, 2, 1, tzinfo=UTC))
        assert pricing.current_price_cents == 699
        assert pricing.discount_active is False

    def test_free_plan_never_discounted(self):
        pricing = calculate_plan_pricing(0, 50, END, datetime(2024, 12, 1, tzinfo=UTC))
        assert pricing.current_price_cents == 0
        assert pricing.discount_active is False

    def test_percent_is_clamped(self):
        pricing = calculate_plan_pricing(2900, 150, END, datetime(2024, 12, 1, tzinfo=UTC))
        assert pricing.discount_percent == 100
        assert pricing.current_price_cents == 0

    def test_rounding_is_half_up(self):
        # 250 * 0.5 = 125 exactly; 25 * 0.5 = 12.5 -> 13
        assert apply_discount(250, 50) == 125
        assert apply_discount(25, 50) == 13
        assert apply_discount(2900, 30) == 2030

    def test_naive_instant_is_treated_as_utc(self):
        pricing = calculate_plan_pricing(699, 30, END, datetime(2025, 1, 4, 23, 0))
        assert pricing.discount_active is True


def test_normalise_plan_shape():
    plan = SimpleNamespace(
        id=2,
        name="Starter (Teacher)",
        description="Everything a single teacher needs",
        price_cents=699,
        discount_percent=30,
        discount_end_date=END,
    )
    assert normalise_plan(plan, datetime(2024, 12, 1, tzinfo=UTC)) == {
        "id": 2,
        "name": "Starter (Teacher)",
        "description": "Everything a single teacher needs",
        "priceCents": 699,
        "currentPriceCents": 489,
        "discountPercent": 30,
        "discountEndsOn": "2025-01-04",
        "discountActive": True,
    }


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("active", True),
        ("trialing", True),
        ("trial", True),
        ("ACTIVE", True),
        ("canceled", False),
        ("unknown", False),
        ("none", False),
        (None, False),
        ("past_due", False),
    ],
)
def test_subscription_is_active(status, expected):
    assert subscription_is_active(status) is expected
