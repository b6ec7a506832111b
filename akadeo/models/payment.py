"""Payment attempt audit log."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from akadeo.database import Base
from akadeo.models.enums import PaymentStatus
from akadeo.models.mixins import TimestampMixin


class Payment(Base, TimestampMixin):
    """One row per checkout session (or failed invoice)."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    plan_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stripe_session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING)
    amount_paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Payment(session={self.stripe_session_id}, status={self.status})>"
