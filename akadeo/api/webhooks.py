"""Stripe webhook endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from akadeo.api.dependencies import get_payment_gateway, get_webhook_reconciler
from akadeo.responses import ok
from akadeo.services.payment_gateway import StripeGateway
from akadeo.services.webhooks import WebhookReconciler


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    gateway: Annotated[StripeGateway, Depends(get_payment_gateway)],
    reconciler: Annotated[WebhookReconciler, Depends(get_webhook_reconciler)],
):
    """Receive a Stripe event. The signature is checked against the raw body."""
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    await reconciler.process_event(event)
    return ok(request, {"received": True})
