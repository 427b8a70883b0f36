"""
Schemas for the subscription, admin and config endpoints.
"""
from datetime import date, datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


class SubscriptionResponse(BaseModel):
    account_id: str
    tier: str
    status: str
    trial_started_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    stripe_current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    admin_granted_pro: bool = False
    admin_granted_by: Optional[str] = None
    admin_grant_expires_at: Optional[datetime] = None
    admin_grant_note: Optional[str] = None
    paused_at: Optional[datetime] = None
    pause_resumes_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionConfigResponse(BaseModel):
    trial_period_days: int
    price_weekly_cents: int
    price_monthly_cents: int
    price_yearly_cents: int
    yearly_discount_percent: int
    free_recipe_limit: int
    pro_features: List[str] = []
    stripe_weekly_price_id: Optional[str] = None
    stripe_monthly_price_id: Optional[str] = None
    stripe_yearly_price_id: Optional[str] = None
    cancel_offer_enabled: bool
    cancel_offer_discount_percent: int
    cancel_offer_duration_months: int
    cancel_offer_message: str
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionConfigUpdate(BaseModel):
    """Body for PATCH /admin/subscription-config. Omitted fields are left unchanged."""
    trial_period_days: Optional[int] = Field(None, ge=0)
    price_weekly_cents: Optional[int] = Field(None, ge=0)
    price_monthly_cents: Optional[int] = Field(None, ge=0)
    price_yearly_cents: Optional[int] = Field(None, ge=0)
    yearly_discount_percent: Optional[int] = Field(None, ge=0, le=100)
    free_recipe_limit: Optional[int] = Field(None, ge=0)
    pro_features: Optional[List[str]] = None
    stripe_weekly_price_id: Optional[str] = None
    stripe_monthly_price_id: Optional[str] = None
    stripe_yearly_price_id: Optional[str] = None
    cancel_offer_enabled: Optional[bool] = None
    cancel_offer_discount_percent: Optional[int] = Field(None, ge=1, le=100)
    cancel_offer_duration_months: Optional[int] = Field(None, ge=1)
    cancel_offer_message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "trial_period_days": 14,
                "cancel_offer_discount_percent": 40,
            }
        }


class SubscriptionStateResponse(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    config: SubscriptionConfigResponse
    has_pro: bool
    access_reason: Optional[str] = None
    is_trialing: bool
    days_left_in_trial: Optional[int] = None
    recipe_count: int
    recipe_limit: Optional[int] = None
    can_create_recipe: bool


class PlanPrice(BaseModel):
    interval: str
    price_cents: int
    price: str
    per_period: str
    savings: Optional[str] = None
    available: bool = Field(..., description="A Stripe price is configured for this interval")


class PlansResponse(BaseModel):
    plans: List[PlanPrice]
    pro_features: List[str] = []


class ValidateRequest(BaseModel):
    """Body for POST /subscription/validate"""
    action: Literal["check_pro", "can_create_recipe", "check_feature"]
    feature: Optional[str] = Field(None, description="Feature name for check_feature")


class ValidateResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class ActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class PauseRequest(BaseModel):
    """Body for POST /subscription/pause"""
    resume_date: date = Field(..., description="Billing resumes at the start of this day (UTC)")


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class CancelOfferResponse(BaseModel):
    offer_available: bool
    discount_percent: Optional[int] = None
    duration_months: Optional[int] = None
    message: Optional[str] = None


class GrantRequest(BaseModel):
    """Body for POST /admin/subscriptions/{account_id}/grant"""
    expires_at: Optional[datetime] = Field(None, description="Null grants Pro permanently")
    note: Optional[str] = Field(None, max_length=1000)


class SubscriptionEventResponse(BaseModel):
    id: int
    account_id: str
    event_type: str
    reason: Optional[str] = None
    details: Optional[Any] = None
    actor_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
