"""User model."""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from akadeo.database import Base
from akadeo.models.mixins import TimestampMixin, UTCDateTime


class User(Base, TimestampMixin):
    """A verified account. Only ever created by redeeming a verification code."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    institution: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    email_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    setup_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def requires_setup(self) -> bool:
        return self.setup_completed_at is None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
