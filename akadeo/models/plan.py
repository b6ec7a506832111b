"""Subscription plan model."""

from datetime import date

from sqlalchemy import Date, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from akadeo.database import Base


class Plan(Base):
    """A purchasable plan. Prices are stored in minor currency units."""

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name={self.name}, price_cents={self.price_cents})>"
