"""Checkout orchestration: turn a plan choice into a hosted Stripe checkout."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from akadeo.config import Settings
from akadeo.errors import AppError, Err, Ok, Result
from akadeo.models.enums import PaymentStatus
from akadeo.models.user import User
from akadeo.services.membership import get_plan, latest_subscription, plan_charge_cents, record_payment_attempt
from akadeo.services.payment_gateway import PaymentGatewayError, StripeGateway
from akadeo.services.pricing import subscription_is_active

logger = logging.getLogger(__name__)


def _first_header_value(value: str | None) -> str | None:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def resolve_base_url(request: Request, settings: Settings) -> str | None:
    """Public origin used to build the checkout return URLs.

    The configured APP_BASE_URL wins; otherwise proxy headers, then the
    request's own Host. Returns None when no host can be determined.
    """
    if settings.app_base_url:
        return settings.app_base_url.rstrip("/")

    host = _first_header_value(request.headers.get("x-forwarded-host")) or request.headers.get("host")
    if not host:
        return None
    scheme = _first_header_value(request.headers.get("x-forwarded-proto")) or request.url.scheme
    return f"{scheme}://{host}"


def parse_plan_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        plan_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return plan_id if plan_id > 0 else None


class CheckoutService:
    """Validates a purchase and opens a gateway checkout session for it."""

    def __init__(
        self,
        credentials_db: Session,
        billing_db: Session,
        gateway: StripeGateway,
    ):
        self.credentials_db = credentials_db
        self.billing_db = billing_db
        self.gateway = gateway

    async def start_checkout(
        self,
        user_id: int,
        raw_plan_id: Any,
        base_url: str | None,
        now: datetime | None = None,
    ) -> Result[dict]:
        now = now or datetime.now(UTC)
        plan_id = parse_plan_id(raw_plan_id)
        if plan_id is None:
            return Err(AppError.validation("Choose a valid plan to continue.", "E_INVALID_PLAN_ID"))

        plan = get_plan(self.billing_db, plan_id)
        if plan is None:
            return Err(
                AppError.not_found("The selected plan could not be found.", "E_PLAN_NOT_FOUND")
            )

        user = self.credentials_db.get(User, user_id)
        if user is None:
            return Err(AppError.not_found("We could not find your account.", "E_USER_NOT_FOUND"))

        # Advisory only; the webhook keeps one row per user regardless.
        existing = latest_subscription(self.billing_db, user_id)
        if existing is not None and subscription_is_active(existing.status):
            return Err(
                AppError.conflict("You already have an active subscription.", "E_SUBSCRIPTION_EXISTS")
            )

        amount_cents = plan_charge_cents(plan, now)
        if amount_cents <= 0:
            return Err(
                AppError.validation(
                    "This plan cannot be purchased online. Please contact sales.",
                    "E_PLAN_REQUIRES_SALES",
                )
            )

        if base_url is None:
            return Err(
                AppError.internal(
                    "Could not determine application base URL.", "E_BASE_URL_UNAVAILABLE"
                )
            )

        try:
            session = await self.gateway.create_checkout_session(
                user_id=user_id,
                plan_id=plan.id,
                plan_name=plan.name,
                plan_description=plan.description,
                customer_email=user.email,
                amount_cents=amount_cents,
                base_url=base_url,
            )
        except PaymentGatewayError as e:
            return Err(
                AppError.internal(
                    "We could not start checkout with Stripe.",
                    "E_STRIPE_CHECKOUT_FAILED",
                    details=str(e) or None,
                    status_code=502,
                )
            )

        record_payment_attempt(
            self.billing_db,
            session["id"],
            user_id=user_id,
            plan_id=plan.id,
            status=PaymentStatus.PENDING,
            amount_cents=amount_cents,
        )
        self.billing_db.commit()

        return Ok(
            {
                "sessionId": session["id"],
                "url": session.get("url"),
                "existingSubscriptionId": existing.id if existing is not None else None,
            }
        )
