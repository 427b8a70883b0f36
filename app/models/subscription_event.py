from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index
from .account import Base


class SubscriptionEvent(Base):
    """
    Append-only lifecycle log — cancellation reasons, grants, pauses, syncs.
    """
    __tablename__ = "subscription_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)   # trial_started|trial_cancelled|paused|...
    reason = Column(Text, nullable=True)              # Free text supplied by the user
    details = Column(JSON, nullable=True)
    actor_id = Column(String(36), nullable=True)      # Admin or account that triggered the event
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_subscription_events_account_created", "account_id", "created_at"),
    )
