"""Authentication schemas.

Field values are validated by the account services so that failures carry
their own error codes; these models only define the JSON shape.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request model accepting camelCase keys from the browser client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """Account registration request."""

    full_name: str | None = None
    institution: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(CamelModel):
    """Login request."""

    email: str | None = None
    password: str | None = None


class VerifyRequest(CamelModel):
    """Verification code redemption request."""

    email: str | None = None
    code: str | None = None


class ResendVerificationRequest(CamelModel):
    email: str | None = None


class CompleteSetupRequest(CamelModel):
    """Onboarding form submitted after the first sign in."""

    subject: str | None = None
    grade_levels: list[Any] | None = None
    country: str | None = None
    student_count_range: str | None = None
    primary_goal: str | None = None
    # Must be literally ``true``; strings such as "yes" are rejected later.
    consent_ai_processing: Any = Field(default=None)
