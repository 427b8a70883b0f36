"""
Trial lifecycle — starts the signup trial and cancels it early.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import UserSubscription
from app.models.user_subscription import TIER_FREE, TIER_PRO, STATUS_ACTIVE, STATUS_TRIALING
from app.services.exceptions import PreconditionFailed
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_events import SubscriptionEventLog, TRIAL_STARTED, TRIAL_CANCELLED
from app.services.subscription_records import SubscriptionRecordManager, OWNER_TRIAL

logger = logging.getLogger(__name__)


class TrialLifecycle:

    @staticmethod
    def start_trial(db: Session, account_id: str, now: Optional[datetime] = None) -> UserSubscription:
        """
        Provision the subscription record for a new account with a trial of
        the configured length. An account that already has a record is
        returned unchanged.
        """
        existing = SubscriptionRecordManager.find(db, account_id)
        if existing is not None:
            return existing

        now = now or utcnow()
        config = SubscriptionConfigService.get(db)
        trial_ends_at = now + timedelta(days=config.trial_period_days)

        record = SubscriptionRecordManager.create(
            db,
            account_id,
            {
                "tier": TIER_PRO,
                "status": STATUS_TRIALING,
                "trial_started_at": now,
                "trial_ends_at": trial_ends_at,
            },
            owner=OWNER_TRIAL,
        )
        SubscriptionEventLog.record(
            db, account_id, TRIAL_STARTED,
            details={"trial_ends_at": trial_ends_at.isoformat()},
        )
        return record

    @staticmethod
    def cancel_trial(
        db: Session,
        account_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """End a trial immediately and revert to the free tier."""
        record = SubscriptionRecordManager.get(db, account_id)

        if record.stripe_subscription_id:
            raise PreconditionFailed(
                "This account has a paid subscription. Cancel the subscription instead of the trial."
            )
        if record.status != STATUS_TRIALING:
            raise PreconditionFailed("There is no active trial to cancel.")

        record = SubscriptionRecordManager.update(
            db,
            account_id,
            {
                "tier": TIER_FREE,
                "status": STATUS_ACTIVE,
                "trial_started_at": None,
                "trial_ends_at": None,
            },
            owner=OWNER_TRIAL,
            now=now,
        )
        SubscriptionEventLog.record(db, account_id, TRIAL_CANCELLED, reason=reason, actor_id=account_id)
        logger.info("Account %s cancelled trial. Reason: %s", account_id, reason or "Not provided")
        return record
