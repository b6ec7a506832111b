"""Onboarding answers collected when a user completes setup."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from akadeo.database import Base
from akadeo.models.mixins import TimestampMixin, UTCDateTime


class SetupProfile(Base, TimestampMixin):
    """One row per user; rewritten each time setup is submitted."""

    __tablename__ = "user_setup_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    grade_levels: Mapped[list] = mapped_column(JSON, nullable=False)  # ["k5", "68", ...]
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    student_count_range: Mapped[str] = mapped_column(String(20), nullable=False)
    primary_goal: Mapped[str] = mapped_column(Text, nullable=False)
    consent_ai_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consented_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
