"""Enums for model fields."""

from enum import StrEnum


class SubscriptionStatus(StrEnum):
    """Lifecycle states of a local subscription record."""

    ACTIVE = "active"
    TRIALING = "trialing"
    TRIAL = "trial"
    CANCELED = "canceled"
    UNKNOWN = "unknown"
    NONE = "none"

    def is_active(self) -> bool:
        """Check if this status grants access to paid features."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.TRIAL)


class PaymentStatus(StrEnum):
    """States of a payment attempt in the audit log."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
