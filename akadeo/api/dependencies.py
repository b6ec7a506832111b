"""FastAPI dependencies for sessions, services and external clients."""

from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from akadeo.config import Settings
from akadeo.database import get_billing_db, get_db
from akadeo.errors import AppError
from akadeo.services.checkout import CheckoutService
from akadeo.services.email import EmailDispatcher
from akadeo.services.membership import MembershipService
from akadeo.services.payment_gateway import StripeGateway
from akadeo.services.registration import RegistrationService
from akadeo.services.sessions import SessionState, SessionStore, set_session_cookie
from akadeo.services.webhooks import WebhookReconciler


def get_app_settings(request: Request) -> Settings:
    """Get the settings the running application was built with."""
    return request.app.state.settings


def get_email_dispatcher(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> EmailDispatcher:
    return EmailDispatcher(settings)


def get_payment_gateway(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> StripeGateway:
    return StripeGateway(settings)


def get_session_store(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> SessionStore:
    return SessionStore(db, settings)


def get_session_state(
    request: Request,
    store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> SessionState:
    """Load the session named by the cookie; anonymous if there is none."""
    return store.load(request.cookies.get(settings.session_cookie_name))


def require_authenticated(
    response: Response,
    state: Annotated[SessionState, Depends(get_session_state)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> SessionState:
    """Require a signed-in session and roll its expiry forward."""
    if not state.is_authenticated:
        raise AppError.auth("You must be signed in to continue.", "E_NOT_AUTHENTICATED")
    store.save(state)
    set_session_cookie(response, state, settings)
    return state


def get_registration_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    mailer: Annotated[EmailDispatcher, Depends(get_email_dispatcher)],
) -> RegistrationService:
    """Get registration service with dependencies."""
    return RegistrationService(db, settings, mailer)


def get_membership_service(
    billing_db: Annotated[Session, Depends(get_billing_db)],
    gateway: Annotated[StripeGateway, Depends(get_payment_gateway)],
) -> MembershipService:
    return MembershipService(billing_db, gateway)


def get_checkout_service(
    db: Annotated[Session, Depends(get_db)],
    billing_db: Annotated[Session, Depends(get_billing_db)],
    gateway: Annotated[StripeGateway, Depends(get_payment_gateway)],
) -> CheckoutService:
    return CheckoutService(db, billing_db, gateway)


def get_webhook_reconciler(
    billing_db: Annotated[Session, Depends(get_billing_db)],
    gateway: Annotated[StripeGateway, Depends(get_payment_gateway)],
) -> WebhookReconciler:
    return WebhookReconciler(billing_db, gateway)
