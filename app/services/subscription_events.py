import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import SubscriptionEvent

logger = logging.getLogger(__name__)

TRIAL_STARTED = "trial_started"
TRIAL_CANCELLED = "trial_cancelled"
PAUSED = "paused"
RESUMED = "resumed"
AUTO_RESUMED = "auto_resumed"
CANCELLATION_SCHEDULED = "cancellation_scheduled"
RETENTION_OFFER_ACCEPTED = "retention_offer_accepted"
PRO_GRANTED = "pro_granted"
PRO_REVOKED = "pro_revoked"
RESET_TO_FREE = "reset_to_free"
PROVIDER_SNAPSHOT_APPLIED = "provider_snapshot_applied"


class SubscriptionEventLog:

    @staticmethod
    def record(
        db: Session,
        account_id: str,
        event_type: str,
        reason: Optional[str] = None,
        details: Optional[dict] = None,
        actor_id: Optional[str] = None,
    ) -> SubscriptionEvent:
        event = SubscriptionEvent(
            account_id=account_id,
            event_type=event_type,
            reason=reason,
            details=details,
            actor_id=actor_id,
            created_at=utcnow(),
        )
        db.add(event)
        db.commit()
        logger.info("Subscription event %s for account %s", event_type, account_id)
        return event

    @staticmethod
    def list_for_account(db: Session, account_id: str, limit: int = 50) -> List[SubscriptionEvent]:
        return (
            db.query(SubscriptionEvent)
            .filter(SubscriptionEvent.account_id == account_id)
            .order_by(SubscriptionEvent.created_at.desc(), SubscriptionEvent.id.desc())
            .limit(limit)
            .all()
        )
