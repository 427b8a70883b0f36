from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.services.admin_grants import AdminGrantManager
from app.services.entitlements import has_pro_access
from app.services.exceptions import PreconditionFailed
from app.services.subscription_events import SubscriptionEventLog


def test_grant_sets_pro_and_records_admin(db_session: Session, account, admin, make_subscription):
    make_subscription(account.id)

    record = AdminGrantManager.grant(db_session, account.id, granted_by=admin.id, note="Beta tester")

    assert record.admin_granted_pro is True
    assert (record.tier, record.status) == ("pro", "active")
    assert record.admin_granted_by == admin.id
    assert record.admin_grant_note == "Beta tester"
    assert record.admin_grant_expires_at is None
    assert has_pro_access(record, utcnow())

    events = SubscriptionEventLog.list_for_account(db_session, account.id)
    assert events[0].event_type == "pro_granted"
    assert events[0].actor_id == admin.id


def test_grant_with_past_expiry_is_rejected(db_session: Session, account, admin, make_subscription):
    make_subscription(account.id)
    with pytest.raises(PreconditionFailed):
        AdminGrantManager.grant(
            db_session, account.id, granted_by=admin.id, expires_at=utcnow() - timedelta(minutes=1)
        )


def test_timed_grant_expires(db_session: Session, account, admin, make_subscription):
    make_subscription(account.id)
    expires = utcnow() + timedelta(days=7)

    record = AdminGrantManager.grant(db_session, account.id, granted_by=admin.id, expires_at=expires)

    assert has_pro_access(record, expires - timedelta(seconds=1)) is True
    assert record.admin_grant_expires_at == expires


def test_grant_leaves_paid_subscription_status_alone(db_session: Session, account, admin, make_subscription):
    make_subscription(
        account.id, tier="pro", status="trialing",
        stripe_customer_id="cus_1", stripe_subscription_id="sub_1",
        trial_ends_at=utcnow() + timedelta(days=5),
    )

    record = AdminGrantManager.grant(db_session, account.id, granted_by=admin.id)

    assert record.status == "trialing"
    assert record.admin_granted_pro is True


def test_revoke_downgrades_account_without_billing(db_session: Session, account, admin, make_subscription):
    make_subscription(account.id)
    AdminGrantManager.grant(db_session, account.id, granted_by=admin.id)

    record = AdminGrantManager.revoke(db_session, account.id, revoked_by=admin.id)

    assert (record.tier, record.status) == ("free", "active")
    assert record.admin_granted_pro is False
    assert record.admin_granted_by is None
    assert has_pro_access(record, utcnow()) is False


def test_revoke_keeps_paid_pro_access_documented_choice(db_session: Session, account, admin, make_subscription):
    """
    Revoking a grant on a paying customer clears only the grant; tier/status
    stay with the billing subscription so the customer keeps Pro.
    """
    now = utcnow()
    make_subscription(
        account.id, tier="pro", status="active",
        stripe_customer_id="cus_1", stripe_subscription_id="sub_1",
        stripe_current_period_end=now + timedelta(days=20),
        admin_granted_pro=True, admin_granted_by=admin.id,
    )

    record = AdminGrantManager.revoke(db_session, account.id, revoked_by=admin.id)

    assert record.admin_granted_pro is False
    assert (record.tier, record.status) == ("pro", "active")
    assert record.stripe_subscription_id == "sub_1"
    assert has_pro_access(record, now) is True
    event = SubscriptionEventLog.list_for_account(db_session, account.id)[0]
    assert event.details == {"paid_subscription_kept": True}


def test_revoke_after_subscription_ended_downgrades(db_session: Session, account, admin, make_subscription):
    make_subscription(
        account.id, tier="free", status="cancelled", stripe_customer_id="cus_1",
        admin_granted_pro=True, admin_granted_by=admin.id,
    )

    record = AdminGrantManager.revoke(db_session, account.id, revoked_by=admin.id)

    assert (record.tier, record.status) == ("free", "active")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_grant_endpoint_requires_admin(client, account, make_subscription, auth_headers):
    make_subscription(account.id)
    response = client.post(f"/admin/subscriptions/{account.id}/grant", json={}, headers=auth_headers(account))
    assert response.status_code == 403


def test_grant_and_revoke_endpoints(client, db_session: Session, account, admin, make_subscription, auth_headers):
    make_subscription(account.id)
    headers = auth_headers(admin)

    response = client.post(
        f"/admin/subscriptions/{account.id}/grant", json={"note": "Support credit"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Pro access granted."}

    listing = client.get("/admin/subscriptions", headers=headers).json()
    assert [row["admin_granted_pro"] for row in listing] == [True]

    response = client.post(f"/admin/subscriptions/{account.id}/revoke", headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Pro access revoked."

    events = client.get(f"/admin/subscriptions/{account.id}/events", headers=headers).json()
    assert {e["event_type"] for e in events} == {"pro_granted", "pro_revoked"}


def test_grant_unknown_account_is_not_found(client, admin, auth_headers):
    response = client.post("/admin/subscriptions/missing/grant", json={}, headers=auth_headers(admin))
    assert response.status_code == 404
