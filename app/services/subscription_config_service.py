import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import SubscriptionConfig
from app.models.subscription_config import CONFIG_SINGLETON_ID
from app.services.exceptions import PreconditionFailed

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "trial_period_days",
    "price_weekly_cents",
    "price_monthly_cents",
    "price_yearly_cents",
    "yearly_discount_percent",
    "free_recipe_limit",
    "pro_features",
    "stripe_weekly_price_id",
    "stripe_monthly_price_id",
    "stripe_yearly_price_id",
    "cancel_offer_enabled",
    "cancel_offer_discount_percent",
    "cancel_offer_duration_months",
    "cancel_offer_message",
})

# Only the provider price IDs may be cleared
NULLABLE_FIELDS = frozenset({
    "stripe_weekly_price_id",
    "stripe_monthly_price_id",
    "stripe_yearly_price_id",
})

PRICE_ID_FIELDS = {
    "weekly": "stripe_weekly_price_id",
    "monthly": "stripe_monthly_price_id",
    "yearly": "stripe_yearly_price_id",
}


class SubscriptionConfigService:

    @staticmethod
    def get(db: Session) -> SubscriptionConfig:
        """Return the singleton config row, creating it with defaults on first read."""
        config = db.get(SubscriptionConfig, CONFIG_SINGLETON_ID)
        if config is None:
            config = SubscriptionConfig(id=CONFIG_SINGLETON_ID)
            db.add(config)
            db.commit()
            db.refresh(config)
            logger.info("Subscription config initialized with defaults")
        return config

    @staticmethod
    def update(db: Session, fields: dict, updated_by: Optional[str] = None) -> SubscriptionConfig:
        """Change only the provided fields; everything else keeps its current value."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise PreconditionFailed(f"Unknown config fields: {', '.join(sorted(unknown))}")

        cleared = {name for name, value in fields.items() if value is None} - NULLABLE_FIELDS
        if cleared:
            raise PreconditionFailed(f"Config fields cannot be null: {', '.join(sorted(cleared))}")

        config = SubscriptionConfigService.get(db)
        for name, value in fields.items():
            setattr(config, name, value)
        config.updated_by = updated_by
        db.commit()
        db.refresh(config)

        logger.info("Subscription config updated by %s: %s", updated_by, sorted(fields))
        return config

    @staticmethod
    def price_id_for_interval(config: SubscriptionConfig, interval: str) -> Optional[str]:
        field = PRICE_ID_FIELDS.get(interval)
        if field is None:
            raise PreconditionFailed(f"Invalid billing interval: {interval}")
        return getattr(config, field)
