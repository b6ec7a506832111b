"""Plans, subscriptions and the payment audit log in the billing store."""

import logging
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from akadeo.database import is_missing_table_error
from akadeo.errors import AppError, Err, Ok, Result
from akadeo.models.enums import PaymentStatus, SubscriptionStatus
from akadeo.models.payment import Payment
from akadeo.models.plan import Plan
from akadeo.models.subscription import Subscription
from akadeo.services.payment_gateway import PaymentGatewayError, StripeGateway
from akadeo.services.pricing import normalise_plan, plan_pricing, subscription_is_active

logger = logging.getLogger(__name__)

# Shipped plan catalogue. Also seeded by the initial migration.
DEFAULT_PLANS: list[dict[str, Any]] = [
    {
        "id": 1,
        "name": "Free",
        "price_cents": 0,
        "discount_percent": None,
        "discount_end_date": None,
        "description": "Default free plan",
    },
    {
        "id": 2,
        "name": "Starter (Teacher)",
        "price_cents": 699,
        "discount_percent": 30,
        "discount_end_date": date(2025, 1, 4),
        "description": "Everything a single teacher needs",
    },
    {
        "id": 3,
        "name": "School",
        "price_cents": 2900,
        "discount_percent": 30,
        "discount_end_date": date(2025, 1, 4),
        "description": "For schools that want shared access",
    },
    {
        "id": 4,
        "name": "Enterprise",
        "price_cents": 0,
        "discount_percent": None,
        "discount_end_date": None,
        "description": "Contact us for large deployments",
    },
]


def default_plan(plan_id: int) -> Plan | None:
    """Build a transient Plan from the shipped catalogue."""
    for row in DEFAULT_PLANS:
        if row["id"] == plan_id:
            return Plan(**row)
    return None


def get_plan(db: Session, plan_id: int) -> Plan | None:
    return db.get(Plan, plan_id)


def latest_subscription(db: Session, user_id: int) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.id.desc())
        .first()
    )


def subscription_by_reference(db: Session, stripe_subscription_id: str) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
        .order_by(Subscription.id.desc())
        .first()
    )


def record_payment_attempt(
    db: Session,
    session_key: str,
    *,
    user_id: int,
    plan_id: int | None,
    status: PaymentStatus,
    amount_cents: int,
) -> Payment | None:
    """Upsert the audit row for a checkout session or failed invoice.

    Runs inside a SAVEPOINT so a missing ``payments`` table only costs the
    audit entry, never the surrounding transaction. A late ``pending``
    write never downgrades a row that is already settled.
    """
    try:
        with db.begin_nested():
            payment = db.query(Payment).filter(Payment.stripe_session_id == session_key).first()
            if payment is None:
                payment = Payment(stripe_session_id=session_key, user_id=user_id)
                db.add(payment)
            elif status == PaymentStatus.PENDING and payment.status != PaymentStatus.PENDING:
                return payment
            payment.plan_id = plan_id
            payment.status = status
            payment.amount_paid_cents = amount_cents
        return payment
    except DBAPIError as e:
        if not is_missing_table_error(e):
            raise
        logger.warning(f"Payments table not found. Skipping audit log for {session_key}.")
        return None


def placeholder_subscription() -> dict[str, Any]:
    """Shape returned when the user has never subscribed."""
    return {
        "id": None,
        "planId": None,
        "planName": "Free",
        "status": SubscriptionStatus.NONE.value,
        "isActive": False,
        "startDate": None,
        "endDate": None,
        "stripeSubscriptionId": None,
        "priceCents": None,
        "currentPriceCents": None,
        "discountPercent": None,
        "discountEndsOn": None,
        "description": "",
    }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_subscription(subscription: Subscription, plan: Plan | None, now: datetime) -> dict[str, Any]:
    plan_info = normalise_plan(plan, now) if plan is not None else None
    status = subscription.status or SubscriptionStatus.UNKNOWN.value
    is_active = subscription_is_active(status) and (
        subscription.end_date is None or subscription.end_date >= now
    )
    return {
        "id": subscription.id,
        "planId": subscription.plan_id,
        "planName": plan_info["name"] if plan_info else "Free",
        "status": status,
        "isActive": is_active,
        "startDate": _isoformat(subscription.start_date),
        "endDate": _isoformat(subscription.end_date),
        "stripeSubscriptionId": subscription.stripe_subscription_id,
        "priceCents": plan_info["priceCents"] if plan_info else None,
        "currentPriceCents": plan_info["currentPriceCents"] if plan_info else None,
        "discountPercent": plan_info["discountPercent"] if plan_info else None,
        "discountEndsOn": plan_info["discountEndsOn"] if plan_info else None,
        "description": (plan_info["description"] or "") if plan_info else "",
    }


class MembershipService:
    """Read and cancel operations on plans and subscriptions."""

    def __init__(self, db: Session, gateway: StripeGateway | None = None):
        self.db = db
        self.gateway = gateway

    def list_plans(self, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or datetime.now(UTC)
        plans = self.db.query(Plan).order_by(Plan.price_cents.asc(), Plan.id.asc()).all()
        return [normalise_plan(plan, now) for plan in plans]

    def current_subscription(self, user_id: int, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(UTC)
        subscription = latest_subscription(self.db, user_id)
        if subscription is None:
            return placeholder_subscription()
        plan = get_plan(self.db, subscription.plan_id) if subscription.plan_id else None
        return serialize_subscription(subscription, plan, now)

    async def cancel(self, user_id: int, now: datetime | None = None) -> Result[dict]:
        """Cancel the user's subscription locally and at the gateway."""
        subscription = latest_subscription(self.db, user_id)
        if subscription is None:
            return Err(
                AppError.not_found("No subscription found to cancel.", "E_SUBSCRIPTION_NOT_FOUND")
            )
        if not subscription_is_active(subscription.status):
            return Err(
                AppError.conflict(
                    "You do not have an active subscription to cancel.", "E_SUBSCRIPTION_NOT_ACTIVE"
                )
            )

        if subscription.stripe_subscription_id:
            try:
                await self.gateway.cancel_subscription(subscription.stripe_subscription_id)
            except PaymentGatewayError as e:
                return Err(
                    AppError.internal(
                        "We could not cancel your subscription with Stripe.",
                        "E_STRIPE_CANCEL_FAILED",
                        details=str(e) or None,
                        status_code=502,
                    )
                )

        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.end_date = now or datetime.now(UTC)
        self.db.commit()
        logger.info(f"User {user_id} canceled subscription {subscription.id}")
        return Ok({"message": "Subscription canceled."})


def plan_charge_cents(plan: Plan, now: datetime) -> int:
    """Amount charged per month for a plan right now."""
    return plan_pricing(plan, now).current_price_cents
