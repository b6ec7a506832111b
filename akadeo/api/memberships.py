"""Plan and subscription API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from akadeo.api.dependencies import (
    get_app_settings,
    get_checkout_service,
    get_membership_service,
    require_authenticated,
)
from akadeo.config import Settings
from akadeo.responses import ok
from akadeo.services.checkout import CheckoutService, resolve_base_url
from akadeo.services.membership import MembershipService
from akadeo.services.sessions import SessionState

router = APIRouter(prefix="/api", tags=["memberships"])


@router.get("/plans")
async def list_plans(
    request: Request,
    service: Annotated[MembershipService, Depends(get_membership_service)],
):
    """List plans cheapest first, with their current prices."""
    return ok(request, {"plans": service.list_plans()})


@router.post("/plans/{plan_id}/checkout")
async def start_checkout(
    request: Request,
    plan_id: str,
    auth: Annotated[SessionState, Depends(require_authenticated)],
    service: Annotated[CheckoutService, Depends(get_checkout_service)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Open a Stripe checkout session for the plan."""
    result = await service.start_checkout(
        auth.user_id, plan_id, resolve_base_url(request, settings)
    )
    return ok(request, result.unwrap())


@router.get("/subscriptions/current")
async def current_subscription(
    request: Request,
    auth: Annotated[SessionState, Depends(require_authenticated)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
):
    return ok(request, {"subscription": service.current_subscription(auth.user_id)})


@router.post("/subscriptions/cancel")
async def cancel_subscription(
    request: Request,
    auth: Annotated[SessionState, Depends(require_authenticated)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
):
    result = await service.cancel(auth.user_id)
    return ok(request, result.unwrap())
