"""
Schemas for the Stripe billing endpoints.
"""
from pydantic import BaseModel, Field
from typing import Optional, Literal


class StripeCheckoutRequest(BaseModel):
    """Body for POST /billing/stripe/checkout"""
    interval: Literal["weekly", "monthly", "yearly"] = Field(..., description="Billing interval")

    class Config:
        json_schema_extra = {"example": {"interval": "monthly"}}


class StripeCheckoutResponse(BaseModel):
    url: str


class StripePortalResponse(BaseModel):
    """Either ``url`` or ``error``/``message`` is set."""
    url: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class StripeSyncResponse(BaseModel):
    synced: bool
    tier: str
    status: str
