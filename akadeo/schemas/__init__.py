"""Pydantic schemas for API requests and responses."""

from akadeo.schemas.auth import (
    CompleteSetupRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    VerifyRequest,
)
from akadeo.schemas.memberships import CheckoutSessionResponse, PlanResponse

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "VerifyRequest",
    "ResendVerificationRequest",
    "CompleteSetupRequest",
    "PlanResponse",
    "CheckoutSessionResponse",
]
