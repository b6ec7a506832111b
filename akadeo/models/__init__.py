"""SQLAlchemy models."""

from akadeo.models.account_verification import AccountVerification
from akadeo.models.payment import Payment
from akadeo.models.plan import Plan
from akadeo.models.setup_profile import SetupProfile
from akadeo.models.subscription import Subscription
from akadeo.models.user import User
from akadeo.models.user_session import UserSession

__all__ = [
    "User",
    "AccountVerification",
    "SetupProfile",
    "UserSession",
    "Plan",
    "Subscription",
    "Payment",
]
