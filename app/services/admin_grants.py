"""
Admin grant manager — manual Pro overrides independent of billing.

A grant never downgrades or reshapes a paying customer: when a live Stripe
subscription is linked, grant and revoke touch only the admin_* fields and
leave tier/status to the billing sync.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.timeutils import naive_utc, utcnow
from app.models import UserSubscription
from app.models.user_subscription import TIER_FREE, TIER_PRO, STATUS_ACTIVE
from app.services.exceptions import PreconditionFailed
from app.services.subscription_events import SubscriptionEventLog, PRO_GRANTED, PRO_REVOKED
from app.services.subscription_records import (
    SubscriptionRecordManager, OWNER_ADMIN_GRANT, has_live_billing_subscription,
)

logger = logging.getLogger(__name__)


class AdminGrantManager:

    @staticmethod
    def grant(
        db: Session,
        account_id: str,
        granted_by: str,
        expires_at: Optional[datetime] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        now = now or utcnow()
        expires_at = naive_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise PreconditionFailed("Grant expiry must be in the future.")

        record = SubscriptionRecordManager.get(db, account_id)
        fields = {
            "admin_granted_pro": True,
            "admin_granted_by": granted_by,
            "admin_grant_expires_at": expires_at,
            "admin_grant_note": note,
        }
        if not has_live_billing_subscription(record):
            fields.update({"tier": TIER_PRO, "status": STATUS_ACTIVE})

        record = SubscriptionRecordManager.update(db, account_id, fields, owner=OWNER_ADMIN_GRANT, now=now)
        SubscriptionEventLog.record(
            db, account_id, PRO_GRANTED,
            reason=note,
            details={"expires_at": expires_at.isoformat() if expires_at else None},
            actor_id=granted_by,
        )
        logger.info("Admin %s granted Pro to %s (expires %s)", granted_by, account_id, expires_at or "never")
        return record

    @staticmethod
    def revoke(
        db: Session,
        account_id: str,
        revoked_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """
        Clear the grant. Tier/status drop to free/active only when no live
        paid subscription exists; a paying customer keeps their Pro access.
        """
        record = SubscriptionRecordManager.get(db, account_id)
        paid = has_live_billing_subscription(record)

        fields = {
            "admin_granted_pro": False,
            "admin_granted_by": None,
            "admin_grant_expires_at": None,
            "admin_grant_note": None,
        }
        if not paid:
            fields.update({"tier": TIER_FREE, "status": STATUS_ACTIVE})

        record = SubscriptionRecordManager.update(db, account_id, fields, owner=OWNER_ADMIN_GRANT, now=now)
        SubscriptionEventLog.record(
            db, account_id, PRO_REVOKED,
            details={"paid_subscription_kept": paid},
            actor_id=revoked_by,
        )
        logger.info("Admin %s revoked Pro grant for %s (paid subscription kept: %s)", revoked_by, account_id, paid)
        return record
