"""Password hashing, session cookie signing and credential checks."""

import hashlib
import logging

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from akadeo.config import Settings
from akadeo.errors import AppError, Err, Ok, Result
from akadeo.models.account_verification import AccountVerification
from akadeo.models.user import User
from akadeo.services.validation import normalize_email, validate_email_address

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


async def hash_password(password: str) -> str:
    """Hash a password off the event loop."""
    return await run_in_threadpool(get_password_hash, password)


def email_fingerprint(email: str) -> str:
    """SHA-256 hex digest of the normalized email, used for lookups."""
    return hashlib.sha256(normalize_email(email).encode("utf-8")).hexdigest()


def sign_session_id(session_id: str, settings: Settings) -> str:
    """Sign a session id for use as the cookie value."""
    return jwt.encode({"sid": session_id}, settings.session_secret, algorithm=settings.session_algorithm)


def read_session_id(token: str | None, settings: Settings) -> str | None:
    """Extract the session id from a cookie value, or None if it was tampered with."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
    except JWTError:
        return None
    session_id = payload.get("sid")
    return session_id if isinstance(session_id, str) and session_id else None


def get_user_by_email(db: Session, email: str) -> User | None:
    """Get a user by normalized email."""
    return db.query(User).filter(User.email == normalize_email(email)).first()


def has_pending_verification(db: Session, email: str) -> bool:
    return (
        db.query(AccountVerification.id)
        .filter(AccountVerification.email == normalize_email(email))
        .first()
        is not None
    )


async def authenticate_user(db: Session, email: str | None, password: str | None) -> Result[User]:
    """Check a login attempt.

    Unknown emails still pay for a bcrypt round so timing does not reveal
    whether the account exists. A pending registration is reported with
    its own code so the client can point the user at verification.
    """
    checked_email = validate_email_address(email)
    if isinstance(checked_email, Err) or not isinstance(password, str) or not password:
        return Err(
            AppError.validation(
                "Enter your email address and password.", "E_INVALID_CREDENTIALS_INPUT"
            )
        )

    invalid = Err(AppError.auth("Invalid email or password.", "E_INVALID_CREDENTIALS", {"field": "email"}))
    user = get_user_by_email(db, checked_email.value)
    if user is None:
        await run_in_threadpool(pwd_context.dummy_verify)
        if has_pending_verification(db, checked_email.value):
            return Err(
                AppError.auth(
                    "Verify your email address before signing in.",
                    "E_EMAIL_NOT_VERIFIED",
                    {"field": "email"},
                )
            )
        return invalid

    if not user.password_hash:
        await run_in_threadpool(pwd_context.dummy_verify)
        logger.warning(f"User {user.id} has no password hash")
        return invalid
    try:
        matches = await run_in_threadpool(verify_password, password, user.password_hash)
    except ValueError:
        # Unrecognised hash format
        logger.warning(f"User {user.id} has an unreadable password hash")
        return invalid
    if not matches:
        logger.info(f"Failed login for user {user.id}")
        return invalid
    return Ok(user)
