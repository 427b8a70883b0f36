import calendar

from jose import jwt

from app.core.config import get_settings
from app.core.timeutils import utcnow
from app.middleware.auth import create_access_token


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert "is running" in client.get("/").json()["message"]


def test_missing_token_is_unauthorized(client):
    response = client.get("/subscription")
    assert response.status_code == 401


def test_invalid_token_is_unauthorized(client):
    response = client.get("/subscription", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_token_signed_with_other_key_is_unauthorized(client, account):
    token = jwt.encode({"sub": account.id}, "some-other-secret", algorithm="HS256")
    response = client.get("/subscription", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_token_for_unknown_account_is_unauthorized(client):
    response = client.get("/subscription", headers={"Authorization": f"Bearer {create_access_token('ghost')}"})
    assert response.status_code == 401


def test_expired_token_is_unauthorized(client, account):
    token = create_access_token(account.id, expires_minutes=-5)
    response = client.get("/subscription", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_token_subject_is_account_id(account):
    settings = get_settings()
    payload = jwt.decode(create_access_token(account.id), settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    assert payload["sub"] == account.id


def test_admin_routes_check_role_claim(client, account, admin, auth_headers):
    assert client.get("/admin/subscriptions", headers=auth_headers(account)).status_code == 403
    assert client.get("/admin/subscriptions", headers=auth_headers(admin)).status_code == 200


def test_admin_routes_reject_anonymous(client):
    assert client.get("/admin/subscriptions").status_code == 401


def test_token_lifetime_follows_settings(account):
    settings = get_settings()
    payload = jwt.decode(create_access_token(account.id), settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])

    assert payload["exp"] - payload["iat"] == settings.JWT_EXPIRE_MINUTES * 60
    assert abs(payload["iat"] - calendar.timegm(utcnow().utctimetuple())) <= 5
