"""Plan and subscription schemas."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PlanResponse(BaseModel):
    """Public plan representation with its current price."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    description: str | None
    price_cents: int
    current_price_cents: int
    discount_percent: int | None
    discount_ends_on: str | None
    discount_active: bool


class CheckoutSessionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    url: str | None
    existing_subscription_id: int | None = None
