"""
Billing schemas for the pricing page and webhook replies.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class PriceResponse(BaseModel):
    """Recurring Stripe price."""

    id: str
    product_id: Optional[str] = None
    unit_amount: Optional[int] = None
    currency: str
    interval: Optional[str] = None
    trial_period_days: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ProductResponse(BaseModel):
    """Active Stripe product."""

    id: str
    name: str
    description: Optional[str] = None
    default_price_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class WebhookResponse(BaseModel):
    received: bool = True
