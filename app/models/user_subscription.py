from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, Index
from .account import Base


TIER_FREE = "free"
TIER_PRO = "pro"

STATUS_ACTIVE = "active"
STATUS_TRIALING = "trialing"
STATUS_CANCELLED = "cancelled"
STATUS_PAUSED = "paused"


class UserSubscription(Base):
    """
    Per-account subscription record. Entitlement is derived from these fields
    at read time; nothing here stores "has Pro" directly.
    """
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        String(36),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )

    tier = Column(String(10), default=TIER_FREE, nullable=False)        # free|pro
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)  # active|trialing|cancelled|paused

    # Trial period
    trial_started_at = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)

    # Stripe IDs (populated once a paid subscription exists)
    stripe_customer_id = Column(String(100), nullable=True, unique=True, index=True)
    stripe_subscription_id = Column(String(100), nullable=True, unique=True, index=True)
    stripe_price_id = Column(String(100), nullable=True)
    stripe_current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)

    # Admin override (stacks with the Stripe subscription)
    admin_granted_pro = Column(Boolean, default=False, nullable=False)
    admin_granted_by = Column(String(36), nullable=True)
    admin_grant_expires_at = Column(DateTime, nullable=True)   # NULL = permanent
    admin_grant_note = Column(Text, nullable=True)

    # Pause
    paused_at = Column(DateTime, nullable=True)
    pause_resumes_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_subscriptions_status", "status"),
        Index("idx_subscriptions_tier", "tier"),
    )
