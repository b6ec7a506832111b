"""Stripe adapter.

Every call passes the API key and version per request instead of mutating
the ``stripe`` module globals, so several settings objects can coexist in
one process (tests build their own).
"""

import json
import logging
from typing import Any

import stripe

from akadeo.config import Settings
from akadeo.errors import AppError, ErrorType

logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentGatewayError(Exception):
    """Raised when Stripe rejects or fails a request."""


class StripeGateway:
    """Checkout sessions, subscriptions and webhook verification."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _request_options(self) -> dict[str, Any]:
        if not self.settings.stripe_secret_key:
            raise AppError.internal("Payments are not configured.", "E_STRIPE_NOT_CONFIGURED")
        return {
            "api_key": self.settings.stripe_secret_key,
            "stripe_version": self.settings.stripe_api_version,
        }

    async def create_checkout_session(
        self,
        *,
        user_id: int,
        plan_id: int,
        plan_name: str,
        plan_description: str | None,
        customer_email: str,
        amount_cents: int,
        base_url: str,
    ) -> dict[str, Any]:
        """Create a hosted subscription checkout for one plan, billed monthly."""
        metadata = {"userId": str(user_id), "planId": str(plan_id)}
        product_data: dict[str, Any] = {"name": plan_name or "Akadeo plan"}
        if plan_description:
            product_data["description"] = plan_description

        try:
            session = await stripe.checkout.Session.create_async(
                mode="subscription",
                success_url=f"{base_url}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/dashboard/payment-failed",
                customer_email=customer_email,
                client_reference_id=str(user_id),
                metadata=metadata,
                subscription_data={"metadata": metadata},
                line_items=[
                    {
                        "price_data": {
                            "currency": self.settings.stripe_currency,
                            "product_data": product_data,
                            "unit_amount": amount_cents,
                            "recurring": {"interval": "month"},
                        },
                        "quantity": 1,
                    }
                ],
                **self._request_options(),
            )
        except stripe.StripeError as e:
            logger.error(f"[STRIPE] Checkout session creation failed for user {user_id}: {e}")
            raise PaymentGatewayError(str(e)) from e

        logger.info(f"[STRIPE] Created checkout session {session['id']} for user {user_id}")
        return {"id": session["id"], "url": session.get("url")}

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        try:
            subscription = await stripe.Subscription.retrieve_async(
                subscription_id, **self._request_options()
            )
        except stripe.StripeError as e:
            logger.error(f"[STRIPE] Could not retrieve subscription {subscription_id}: {e}")
            raise PaymentGatewayError(str(e)) from e
        return dict(subscription)

    async def cancel_subscription(self, subscription_id: str) -> None:
        try:
            await stripe.Subscription.cancel_async(subscription_id, **self._request_options())
        except stripe.StripeError as e:
            logger.error(f"[STRIPE] Could not cancel subscription {subscription_id}: {e}")
            raise PaymentGatewayError(str(e)) from e
        logger.info(f"[STRIPE] Canceled subscription {subscription_id}")

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify the webhook signature over the raw body and decode the event."""
        secret = self.settings.stripe_webhook_secret
        if not secret:
            raise AppError.internal("Stripe webhooks are not configured.", "E_WEBHOOK_NOT_CONFIGURED")
        if not signature:
            raise AppError.validation(
                "Missing Stripe signature header.", "E_STRIPE_SIGNATURE_MISSING", status_code=400
            )

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, secret, tolerance=WEBHOOK_TOLERANCE_SECONDS
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"[WEBHOOK] Invalid signature: {e}")
            raise AppError(
                400,
                ErrorType.VALIDATION,
                "Invalid Stripe webhook signature.",
                "E_STRIPE_SIGNATURE_INVALID",
                str(e),
            ) from e

        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise AppError.validation(
                "Invalid JSON payload.", "E_INVALID_JSON", status_code=400
            ) from e
        if not isinstance(event, dict):
            raise AppError.validation("Invalid JSON payload.", "E_INVALID_JSON", status_code=400)
        return event
