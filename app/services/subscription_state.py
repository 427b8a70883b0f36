"""
Read side: the subscription state shown to the app and the feature checks
it performs before gated actions.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models.user_subscription import STATUS_TRIALING
from app.services.entitlements import can_save_recipe, resolve_access, trial_days_remaining
from app.services.exceptions import PreconditionFailed
from app.services.pause_controller import PauseController
from app.services.recipe_gate import RecipeCountGate
from app.services.subscription_config_service import SubscriptionConfigService

logger = logging.getLogger(__name__)

VALIDATE_ACTIONS = ("check_pro", "can_create_recipe", "check_feature")


class SubscriptionStateService:

    @staticmethod
    def get_state(db: Session, account_id: str, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        # An elapsed pause is settled here so the resolver only sees settled state
        subscription = PauseController.reconcile_expired_pause(db, account_id, now)
        config = SubscriptionConfigService.get(db)
        decision = resolve_access(subscription, now)
        recipe_count = RecipeCountGate.count_saved_recipes(db, account_id)

        return {
            "subscription": subscription,
            "config": config,
            "has_pro": decision.has_pro,
            "access_reason": decision.reason,
            "is_trialing": bool(subscription and subscription.status == STATUS_TRIALING),
            "days_left_in_trial": trial_days_remaining(subscription, now),
            "recipe_count": recipe_count,
            "recipe_limit": None if decision.has_pro else config.free_recipe_limit,
            "can_create_recipe": can_save_recipe(subscription, config, recipe_count, now),
        }

    @staticmethod
    def validate(
        db: Session,
        account_id: str,
        action: str,
        feature: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Answer one gated-action question: ``{"allowed": bool, "reason": str|None}``."""
        if action not in VALIDATE_ACTIONS:
            raise PreconditionFailed(f"Unknown action: {action}")

        now = now or utcnow()
        subscription = PauseController.reconcile_expired_pause(db, account_id, now)
        config = SubscriptionConfigService.get(db)
        decision = resolve_access(subscription, now)

        if action == "check_pro":
            return {"allowed": decision.has_pro, "reason": None if decision.has_pro else "Pro subscription required."}

        if action == "can_create_recipe":
            allowed, reason = RecipeCountGate.check(db, subscription, config, now)
            return {"allowed": allowed, "reason": reason}

        if not feature:
            raise PreconditionFailed("A feature name is required for check_feature.")
        if feature not in (config.pro_features or []):
            # Features outside the Pro list are available to everyone
            return {"allowed": True, "reason": None}
        if decision.has_pro:
            return {"allowed": True, "reason": None}
        return {"allowed": False, "reason": f"{feature} is a Pro feature."}
