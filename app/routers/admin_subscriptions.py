"""
Admin endpoints: Pro grants, subscription listing, event history and the
global subscription config. Every route requires the admin role claim.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.limiter import limiter
from app.middleware.auth import require_admin
from app.models import Account
from app.models.user_subscription import TIER_PRO
from app.schemas.subscription import (
    ActionResponse,
    GrantRequest,
    SubscriptionConfigResponse,
    SubscriptionConfigUpdate,
    SubscriptionEventResponse,
    SubscriptionResponse,
)
from app.services.admin_grants import AdminGrantManager
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_events import SubscriptionEventLog
from app.services.subscription_records import SubscriptionRecordManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/subscriptions", response_model=List[SubscriptionResponse], summary="All subscription records")
@limiter.limit("30/minute")
def list_subscriptions(
    request: Request,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return SubscriptionRecordManager.list_all(db)


@router.post(
    "/subscriptions/{account_id}/grant",
    response_model=ActionResponse,
    summary="Grant Pro access",
    description="Grants Pro independent of billing. Omit expires_at for a permanent grant.",
)
@limiter.limit("30/minute")
def grant_pro_access(
    account_id: str,
    body: GrantRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    AdminGrantManager.grant(db, account_id, granted_by=admin.id, expires_at=body.expires_at, note=body.note)
    return ActionResponse(success=True, message="Pro access granted.")


@router.post("/subscriptions/{account_id}/revoke", response_model=ActionResponse, summary="Revoke a Pro grant")
@limiter.limit("30/minute")
def revoke_pro_access(
    account_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    record = AdminGrantManager.revoke(db, account_id, revoked_by=admin.id)
    if record.tier == TIER_PRO:
        return ActionResponse(success=True, message="Grant revoked. The paid subscription keeps Pro access.")
    return ActionResponse(success=True, message="Pro access revoked.")


@router.get(
    "/subscriptions/{account_id}/events",
    response_model=List[SubscriptionEventResponse],
    summary="Subscription event history",
)
@limiter.limit("30/minute")
def list_subscription_events(
    account_id: str,
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return SubscriptionEventLog.list_for_account(db, account_id, limit=limit)


@router.patch("/subscription-config", response_model=SubscriptionConfigResponse, summary="Update pricing/trial config")
@limiter.limit("10/minute")
def update_subscription_config(
    body: SubscriptionConfigUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return SubscriptionConfigService.update(db, body.model_dump(exclude_unset=True), updated_by=admin.id)
