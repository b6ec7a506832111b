"""Reconcile Stripe webhook events into the billing store.

Delivery is at-least-once and unordered, so every handler is an upsert or
a guarded update and can safely run twice. Each handler commits in one
transaction, or rolls back and re-raises so Stripe retries the event.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from akadeo.errors import AppError
from akadeo.models.enums import PaymentStatus, SubscriptionStatus
from akadeo.models.plan import Plan
from akadeo.models.subscription import Subscription
from akadeo.services.membership import (
    default_plan,
    get_plan,
    latest_subscription,
    plan_charge_cents,
    record_payment_attempt,
    subscription_by_reference,
)
from akadeo.services.payment_gateway import StripeGateway
from akadeo.services.pricing import subscription_is_active

logger = logging.getLogger(__name__)


def _parse_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _reference(value: Any) -> str | None:
    """Id of a Stripe object given either its id string or the expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id") or None
    return None


def _from_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def subscription_period(subscription: dict[str, Any] | None) -> tuple[datetime | None, datetime | None]:
    """Current period bounds, read from the subscription or its first item."""
    if not subscription:
        return None, None
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None and end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = items[0].get("current_period_start")
            end = items[0].get("current_period_end")
    return _from_timestamp(start), _from_timestamp(end)


def invoice_subscription_reference(invoice: dict[str, Any]) -> str | None:
    reference = _reference(invoice.get("subscription"))
    if reference:
        return reference
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _reference(details.get("subscription"))


class WebhookReconciler:
    """Applies verified Stripe events to subscriptions and payments."""

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self._handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "customer.subscription.deleted": self.handle_subscription_deleted,
        }

    async def process_event(self, event: dict[str, Any], now: datetime | None = None) -> None:
        event_type = event.get("type")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug(f"[WEBHOOK] Ignoring event type {event_type}")
            return

        data_object = (event.get("data") or {}).get("object") or {}
        logger.info(f"[WEBHOOK] Processing {event_type} ({event.get('id')})")
        await handler(data_object, now or datetime.now(UTC))

    def _resolve_plan(self, plan_id: int) -> Plan:
        plan = get_plan(self.db, plan_id)
        if plan is not None:
            return plan
        plan = default_plan(plan_id)
        if plan is not None:
            logger.warning(f"[WEBHOOK] Plan {plan_id} missing from the billing store; using built-in defaults")
            return plan
        raise AppError.not_found(
            "Plan referenced by payment was not found.", "E_WEBHOOK_PLAN_NOT_FOUND"
        )

    async def handle_checkout_completed(self, session: dict[str, Any], now: datetime) -> None:
        metadata = session.get("metadata") or {}
        user_id = _parse_id(metadata.get("userId") or session.get("client_reference_id"))
        plan_id = _parse_id(metadata.get("planId"))
        if user_id is None or plan_id is None:
            logger.warning(
                f"[WEBHOOK] Checkout session {session.get('id')} completed without user or plan metadata"
            )
            return

        plan = self._resolve_plan(plan_id)

        embedded = session.get("subscription")
        if isinstance(embedded, str) and embedded:
            stripe_subscription = await self.gateway.retrieve_subscription(embedded)
        elif isinstance(embedded, dict) and embedded.get("id"):
            stripe_subscription = embedded
        else:
            stripe_subscription = None
        stripe_subscription_id = _reference(embedded)
        period_start, period_end = subscription_period(stripe_subscription)

        try:
            self._activate_subscription(
                user_id, plan_id, stripe_subscription_id, period_start or now, period_end
            )
            if session.get("id"):
                record_payment_attempt(
                    self.db,
                    session["id"],
                    user_id=user_id,
                    plan_id=plan_id,
                    status=PaymentStatus.PAID,
                    amount_cents=plan_charge_cents(plan, now),
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"[WEBHOOK] Subscription active for user {user_id} on plan {plan_id}")

    def _activate_subscription(
        self,
        user_id: int,
        plan_id: int,
        stripe_subscription_id: str | None,
        start_date: datetime,
        end_date: datetime | None,
    ) -> Subscription:
        subscription = latest_subscription(self.db, user_id)
        if subscription is None:
            try:
                with self.db.begin_nested():
                    subscription = Subscription(user_id=user_id)
                    self.db.add(subscription)
            except IntegrityError:
                # A concurrent delivery inserted the row first.
                subscription = latest_subscription(self.db, user_id)
                if subscription is None:
                    raise
        subscription.plan_id = plan_id
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.start_date = start_date
        subscription.end_date = end_date
        subscription.stripe_subscription_id = stripe_subscription_id
        return subscription

    async def handle_invoice_payment_failed(self, invoice: dict[str, Any], now: datetime) -> None:
        stripe_subscription_id = invoice_subscription_reference(invoice)
        if not stripe_subscription_id:
            logger.warning(f"[WEBHOOK] Invoice {invoice.get('id')} failed without a subscription reference")
            return

        try:
            subscription = subscription_by_reference(self.db, stripe_subscription_id)
            if subscription is None:
                logger.warning(
                    f"[WEBHOOK] No local subscription {stripe_subscription_id} for failed invoice {invoice.get('id')}"
                )
                self.db.rollback()
                return

            subscription.status = SubscriptionStatus.CANCELED.value
            subscription.end_date = now
            record_payment_attempt(
                self.db,
                invoice.get("id") or f"{stripe_subscription_id}-failed",
                user_id=subscription.user_id,
                plan_id=subscription.plan_id,
                status=PaymentStatus.FAILED,
                amount_cents=_parse_id(invoice.get("amount_due")) or 0,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"[WEBHOOK] Subscription {stripe_subscription_id} canceled after failed payment")

    async def handle_subscription_deleted(self, stripe_subscription: dict[str, Any], now: datetime) -> None:
        stripe_subscription_id = _reference(stripe_subscription)
        if not stripe_subscription_id:
            return

        try:
            subscription = subscription_by_reference(self.db, stripe_subscription_id)
            if subscription is None or not subscription_is_active(subscription.status):
                self.db.rollback()
                return
            subscription.status = SubscriptionStatus.CANCELED.value
            subscription.end_date = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"[WEBHOOK] Subscription {stripe_subscription_id} deleted at Stripe")
