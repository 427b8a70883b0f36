from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON
from .account import Base


CONFIG_SINGLETON_ID = "00000000-0000-0000-0000-000000000001"

DEFAULT_PRO_FEATURES = [
    "pantry_scanner",
    "video_scanner",
    "live_dictation",
    "audio_recorder",
    "unlimited_recipes",
]

DEFAULT_CANCEL_OFFER_MESSAGE = "Before you go, we'd like to offer you a special discount!"


class SubscriptionConfig(Base):
    """
    Global pricing, trial and retention settings (singleton row).
    """
    __tablename__ = "subscription_config"

    id = Column(String(36), primary_key=True, default=CONFIG_SINGLETON_ID)

    trial_period_days = Column(Integer, default=7, nullable=False)

    # Prices in cents
    price_weekly_cents = Column(Integer, default=299, nullable=False)
    price_monthly_cents = Column(Integer, default=999, nullable=False)
    price_yearly_cents = Column(Integer, default=7999, nullable=False)
    yearly_discount_percent = Column(Integer, default=33, nullable=False)  # display only

    free_recipe_limit = Column(Integer, default=20, nullable=False)
    pro_features = Column(JSON, default=lambda: list(DEFAULT_PRO_FEATURES))

    # Stripe price IDs per billing interval
    stripe_weekly_price_id = Column(String(100), nullable=True)
    stripe_monthly_price_id = Column(String(100), nullable=True)
    stripe_yearly_price_id = Column(String(100), nullable=True)

    # Retention offer shown during cancellation
    cancel_offer_enabled = Column(Boolean, default=True, nullable=False)
    cancel_offer_discount_percent = Column(Integer, default=50, nullable=False)
    cancel_offer_duration_months = Column(Integer, default=3, nullable=False)
    cancel_offer_message = Column(Text, default=DEFAULT_CANCEL_OFFER_MESSAGE, nullable=False)

    updated_by = Column(String(36), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
