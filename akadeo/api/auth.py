"""Account API endpoints: registration, verification, login and setup."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from akadeo.api.dependencies import (
    get_app_settings,
    get_registration_service,
    get_session_state,
    get_session_store,
    require_authenticated,
)
from akadeo.config import Settings
from akadeo.database import get_db
from akadeo.responses import ok
from akadeo.schemas.auth import (
    CompleteSetupRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    VerifyRequest,
)
from akadeo.services.auth import authenticate_user
from akadeo.services.registration import RegistrationService
from akadeo.services.sessions import (
    SessionState,
    SessionStore,
    clear_session_cookie,
    set_session_cookie,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _sign_in(
    response: Response,
    store: SessionStore,
    settings: Settings,
    previous: SessionState,
    user_id: int,
    setup_completed_at,
) -> SessionState:
    """Bind a fresh session id to the user and set the cookie."""
    state = store.regenerate(previous)
    state.user_id = user_id
    state.setup_completed_at = setup_completed_at
    store.save(state)
    set_session_cookie(response, state, settings)
    return state


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    payload: RegisterRequest,
    service: Annotated[RegistrationService, Depends(get_registration_service)],
):
    """Start a registration and email the verification code."""
    result = await service.register(payload)
    return ok(request, result.unwrap())


@router.post("/verify")
async def verify(
    request: Request,
    response: Response,
    payload: VerifyRequest,
    service: Annotated[RegistrationService, Depends(get_registration_service)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    session: Annotated[SessionState, Depends(get_session_state)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Redeem a verification code and sign the new user in."""
    user = service.verify(payload).unwrap()
    state = _sign_in(response, store, settings, session, user.id, user.setup_completed_at)
    return ok(request, {"message": "Email verified.", "requiresSetup": state.requires_setup})


@router.post("/resend-verification")
async def resend_verification(
    request: Request,
    payload: ResendVerificationRequest,
    service: Annotated[RegistrationService, Depends(get_registration_service)],
):
    result = await service.resend(payload)
    return ok(request, result.unwrap())


@router.post("/login")
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    session: Annotated[SessionState, Depends(get_session_state)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Login with email and password."""
    user = (await authenticate_user(db, payload.email, payload.password)).unwrap()
    state = _sign_in(response, store, settings, session, user.id, user.setup_completed_at)
    return ok(request, {"message": "Signed in successfully.", "requiresSetup": state.requires_setup})


@router.post("/complete-setup")
async def complete_setup(
    request: Request,
    response: Response,
    payload: CompleteSetupRequest,
    auth: Annotated[SessionState, Depends(require_authenticated)],
    service: Annotated[RegistrationService, Depends(get_registration_service)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Save the onboarding answers for the signed-in user."""
    auth.setup_completed_at = service.complete_setup(auth.user_id, payload).unwrap()
    store.save(auth)
    set_session_cookie(response, auth, settings)
    return ok(request, {"message": "Setup complete."})


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    session: Annotated[SessionState, Depends(get_session_state)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    store.destroy(session)
    clear_session_cookie(response, settings)
    return ok(request, {"message": "Signed out."})


@router.get("/session")
async def current_session(
    request: Request,
    session: Annotated[SessionState, Depends(get_session_state)],
):
    """Report whether the caller is signed in, without failing for anonymous users."""
    return ok(
        request,
        {
            "authenticated": session.is_authenticated,
            "userId": session.user_id,
            "requiresSetup": session.requires_setup if session.is_authenticated else False,
        },
    )
