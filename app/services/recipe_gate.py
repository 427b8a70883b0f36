"""
RecipeCountGate — counts an account's saved recipes for the free-tier limit.

Saved recipes live in ``favorite_meals``, owned by the recipe service; this
module only reads it. Without that table (e.g. a fresh database) the count is 0.

Usage:
    allowed, reason = RecipeCountGate.check(db, subscription, config)
    if not allowed:
        raise HTTPException(status_code=403, detail=reason)
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import SubscriptionConfig, UserSubscription
from app.services.entitlements import can_save_recipe

logger = logging.getLogger(__name__)


class RecipeCountGate:

    @staticmethod
    def count_saved_recipes(db: Session, account_id: str) -> int:
        try:
            row = db.execute(
                text("SELECT COUNT(*) FROM favorite_meals WHERE user_id = :account_id"),
                {"account_id": account_id},
            ).fetchone()
        except SQLAlchemyError as e:
            db.rollback()
            logger.debug("Could not count saved recipes for %s: %s", account_id, e)
            return 0
        return int(row[0] or 0) if row else 0

    @staticmethod
    def check(
        db: Session,
        subscription: Optional[UserSubscription],
        config: SubscriptionConfig,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, Optional[str]]:
        """
        Returns (allowed, reason).
        - Pro access → (True, None)
        - below the free limit → (True, None)
        - at or over the limit → (False, "reason message")
        """
        now = now or utcnow()
        count = RecipeCountGate.count_saved_recipes(db, subscription.account_id) if subscription else 0
        if can_save_recipe(subscription, config, count, now):
            return True, None
        return False, (
            f"Free accounts can save up to {config.free_recipe_limit} recipes. "
            "Upgrade to Pro for unlimited recipes."
        )
