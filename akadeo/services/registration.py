"""Registration, email verification and onboarding."""

import hmac
import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from akadeo.config import Settings
from akadeo.errors import AppError, Err, Ok, Result
from akadeo.models.account_verification import AccountVerification
from akadeo.models.setup_profile import SetupProfile
from akadeo.models.user import User
from akadeo.services.auth import email_fingerprint, get_user_by_email, hash_password
from akadeo.services.email import EmailDispatcher
from akadeo.services.validation import (
    validate_email_address,
    validate_registration,
    validate_setup,
    validate_verification_code,
)

logger = logging.getLogger(__name__)

EMAIL_SEND_FAILED_MESSAGE = "We could not send the verification email. Please try again."


def generate_verification_code() -> str:
    """Uniformly random 6 digit code, zero padded."""
    return f"{secrets.randbelow(1_000_000):06d}"


class RegistrationService:
    """Moves an account from sign up through verification to a completed setup."""

    def __init__(self, db: Session, settings: Settings, mailer: EmailDispatcher):
        self.db = db
        self.settings = settings
        self.mailer = mailer

    def _expiry(self, now: datetime) -> datetime:
        return now + timedelta(hours=self.settings.verification_code_ttl_hours)

    def purge_expired_verifications(self, now: datetime | None = None) -> int:
        deleted = (
            self.db.query(AccountVerification)
            .filter(AccountVerification.expires_at < (now or datetime.now(UTC)))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    async def register(self, payload: Any, now: datetime | None = None) -> Result[dict]:
        """Store a pending registration and email its verification code."""
        checked = validate_registration(payload)
        if isinstance(checked, Err):
            return checked
        fields = checked.value
        email = fields["email"]
        now = now or datetime.now(UTC)

        self.purge_expired_verifications(now)
        if get_user_by_email(self.db, email) is not None:
            return Err(
                AppError.conflict("An account with that email already exists.", "E_USER_EXISTS", "email")
            )

        code = generate_verification_code()
        password_hash = await hash_password(fields["password"])

        try:
            self.db.query(AccountVerification).filter(AccountVerification.email == email).delete(
                synchronize_session=False
            )
            self.db.add(
                AccountVerification(
                    email=email,
                    email_hash=email_fingerprint(email),
                    full_name=fields["full_name"],
                    institution=fields["institution"],
                    password_hash=password_hash,
                    verification_code=code,
                    expires_at=self._expiry(now),
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Concurrent registration lost the race for a pending verification")
            return Err(
                AppError.conflict(
                    "A registration for that email is already in progress.",
                    "E_REGISTRATION_IN_PROGRESS",
                    "email",
                )
            )
        except Exception:
            self.db.rollback()
            raise

        if not await self.mailer.send_verification_email(email, fields["full_name"], code):
            # Only remove our own row; a newer registration may have replaced it.
            self.db.query(AccountVerification).filter(
                AccountVerification.email == email,
                AccountVerification.verification_code == code,
            ).delete(synchronize_session=False)
            self.db.commit()
            return Err(AppError.internal(EMAIL_SEND_FAILED_MESSAGE, "E_EMAIL_SEND_FAILED"))

        logger.info(f"Pending verification created for {email_fingerprint(email)[:12]}")
        return Ok({"message": "Verification email sent."})

    def verify(self, payload: Any, now: datetime | None = None) -> Result[User]:
        """Redeem a verification code and return the (possibly existing) user."""
        email = validate_email_address(payload.email)
        if isinstance(email, Err):
            return email
        code = validate_verification_code(payload.code)
        if isinstance(code, Err):
            return code
        now = now or datetime.now(UTC)

        record = (
            self.db.query(AccountVerification)
            .filter(AccountVerification.email == email.value)
            .first()
        )
        if record is None or not hmac.compare_digest(record.verification_code, code.value):
            return Err(
                AppError.not_found(
                    "We could not find a verification request for that email and code.",
                    "E_VERIFICATION_NOT_FOUND",
                    "email",
                )
            )

        if record.is_expired(now):
            self.db.delete(record)
            self.db.commit()
            return Err(
                AppError.validation(
                    "This verification code expired. Please sign up again.",
                    "E_VERIFICATION_EXPIRED",
                    "code",
                    status_code=410,
                )
            )

        try:
            user = self._activate(record)
        except IntegrityError:
            # Another request created the user first; reuse its row.
            self.db.rollback()
            user = get_user_by_email(self.db, email.value)
            if user is None:
                raise
            self._delete_pending(email.value)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"User {user.id} verified their email")
        return Ok(user)

    def _activate(self, record: AccountVerification) -> User:
        user = get_user_by_email(self.db, record.email)
        if user is None:
            user = User(
                full_name=record.full_name,
                institution=record.institution,
                email=record.email,
                email_hash=record.email_hash,
                password_hash=record.password_hash,
                setup_completed_at=None,
            )
            self.db.add(user)
        self.db.delete(record)
        self.db.commit()
        return user

    def _delete_pending(self, email: str) -> None:
        self.db.query(AccountVerification).filter(AccountVerification.email == email).delete(
            synchronize_session=False
        )

    async def resend(self, payload: Any, now: datetime | None = None) -> Result[dict]:
        """Issue a fresh code for a pending registration."""
        email = validate_email_address(payload.email)
        if isinstance(email, Err):
            return email
        now = now or datetime.now(UTC)

        self.purge_expired_verifications(now)
        record = (
            self.db.query(AccountVerification)
            .filter(AccountVerification.email_hash == email_fingerprint(email.value))
            .first()
        )
        if record is None:
            return Err(
                AppError.not_found(
                    "Start the sign up process again to receive a new code.",
                    "E_VERIFICATION_NOT_FOUND",
                    "email",
                )
            )

        record.verification_code = generate_verification_code()
        record.expires_at = self._expiry(now)
        self.db.commit()

        if not await self.mailer.send_verification_email(
            record.email, record.full_name, record.verification_code
        ):
            return Err(AppError.internal(EMAIL_SEND_FAILED_MESSAGE, "E_EMAIL_SEND_FAILED"))
        return Ok({"message": "Verification code resent."})

    def complete_setup(self, user_id: int, payload: Any, now: datetime | None = None) -> Result[datetime]:
        """Store the onboarding answers and mark setup complete.

        Returns the completion timestamp for the session snapshot.
        """
        now = now or datetime.now(UTC)
        checked = validate_setup(payload, now)
        if isinstance(checked, Err):
            return checked

        user = self.db.get(User, user_id)
        if user is None:
            return Err(AppError.not_found("We could not find your account.", "E_USER_NOT_FOUND"))

        try:
            profile = self.db.query(SetupProfile).filter(SetupProfile.user_id == user_id).first()
            if profile is None:
                profile = SetupProfile(user_id=user_id)
                self.db.add(profile)
            for field, value in checked.value.items():
                setattr(profile, field, value)
            user.setup_completed_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"User {user_id} completed setup")
        return Ok(now)
