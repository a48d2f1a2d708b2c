"""
DocPortal — Authentication Tests
==================================

What:  Tests for password handling, account management and sign-in over
       both the JSON API and the login form.

Test Strategy:
    ✅ bcrypt hash / verify, including a corrupted stored hash
    ✅ upsert_user validation and the password-reset path
    ✅ Unknown email and wrong password fail with the same message
    ✅ Session cookie: login → /api/auth/me → logout
    ✅ Cookies signed with the default secret are not honoured
    ✅ Anonymous pages redirect to /login with the original path in ?next=
"""

import base64
import json

import pytest
from itsdangerous import TimestampSigner

from docportal.config import INSECURE_SESSION_SECRET, settings
from docportal.dependencies import SESSION_USER_KEY
from docportal.exceptions import AuthenticationError, ValidationError
from docportal.models.user import ROLE_ADMIN, ROLE_USER
from docportal.services.auth_service import auth_service, hash_password, verify_password

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "correct-horse-battery"


class TestPasswords:

    def test_hash_roundtrip(self):
        hashed = hash_password("s3cret-value")
        assert hashed != "s3cret-value"
        assert verify_password("s3cret-value", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_malformed_hash_fails_closed(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestUpsertUser:

    async def test_create_normalizes_email(self, db):
        user = await auth_service.upsert_user(db, "  Someone@Example.COM ", PASSWORD, "Someone")
        assert user.email == "someone@example.com"
        assert user.role == ROLE_USER
        assert (await auth_service.get_user_by_email(db, "SOMEONE@example.com")).id == user.id

    async def test_existing_account_is_updated(self, db, admin_user):
        updated = await auth_service.upsert_user(db, ADMIN_EMAIL, "another-password", role=ROLE_USER)

        assert updated.id == admin_user.id
        assert updated.role == ROLE_USER
        assert updated.name == "Ada Admin"
        assert verify_password("another-password", updated.password_hash)

    @pytest.mark.parametrize(
        "email, password, role, field",
        [
            ("no-at-sign", PASSWORD, ROLE_USER, "email"),
            ("x@example.com", "short", ROLE_USER, "password"),
            ("x@example.com", PASSWORD, "owner", "role"),
        ],
    )
    async def test_validation(self, db, email, password, role, field):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.upsert_user(db, email, password, role=role)
        assert exc_info.value.context["field"] == field


class TestAuthenticate:

    async def test_valid_credentials(self, db, admin_user):
        user = await auth_service.authenticate(db, "ADMIN@example.com", PASSWORD)
        assert user.id == admin_user.id
        assert user.role == ROLE_ADMIN

    async def test_failures_share_one_message(self, db, admin_user):
        with pytest.raises(AuthenticationError) as wrong_password:
            await auth_service.authenticate(db, ADMIN_EMAIL, "not-the-password")
        with pytest.raises(AuthenticationError) as unknown_email:
            await auth_service.authenticate(db, "nobody@example.com", PASSWORD)
        assert wrong_password.value.message == unknown_email.value.message

    async def test_get_user_ignores_garbage_ids(self, db):
        assert await auth_service.get_user(db, None) is None
        assert await auth_service.get_user(db, "not-a-uuid") is None


class TestAuthApi:

    async def test_login_me_logout(self, client, admin_user):
        response = await client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["role"] == ROLE_ADMIN

        me = await client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == ADMIN_EMAIL

        assert (await client.post("/api/auth/logout")).json()["success"] is True
        assert (await client.get("/api/auth/me")).status_code == 401

    async def test_bad_credentials(self, client, admin_user):
        response = await client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "authentication_required"
        assert body["message"] == "Invalid email or password"
        assert "request_id" in body

    async def test_anonymous_api_gets_json_401(self, client):
        response = await client.get("/api/versions")
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"


class TestLoginPage:

    async def test_anonymous_page_redirects_to_login(self, client):
        response = await client.get("/docs/v1.0?tab=1")
        assert response.status_code == 303
        assert response.headers["location"] == "/login?next=/docs/v1.0%3Ftab%3D1"

    async def test_login_form_renders(self, client):
        response = await client.get("/login?next=/admin")
        assert response.status_code == 200
        assert 'value="/admin"' in response.text

    async def test_form_sign_in_sets_session(self, client, admin_user):
        response = await client.post(
            "/login", data={"email": ADMIN_EMAIL, "password": PASSWORD, "next": "/admin"}
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/admin"
        assert (await client.get("/api/auth/me")).status_code == 200

    async def test_form_rejects_offsite_next(self, client, admin_user):
        response = await client.post(
            "/login", data={"email": ADMIN_EMAIL, "password": PASSWORD, "next": "//evil.example"}
        )
        assert response.headers["location"] == "/docs"

    async def test_form_wrong_password(self, client, admin_user):
        response = await client.post("/login", data={"email": ADMIN_EMAIL, "password": "nope"})
        assert response.status_code == 401
        assert "Invalid email or password" in response.text

    async def test_logout_page(self, admin_client):
        response = await admin_client.get("/logout")
        assert response.status_code == 303
        assert (await admin_client.get("/api/auth/me")).status_code == 401


def _signed_session(secret: str, user_id) -> str:
    payload = base64.b64encode(json.dumps({SESSION_USER_KEY: str(user_id)}).encode("utf-8"))
    return TimestampSigner(secret).sign(payload).decode("utf-8")


class TestSessionCookie:

    async def test_cookie_signed_with_configured_secret(self, client, admin_user):
        client.cookies.set(settings.session_cookie, _signed_session(settings.session_secret, admin_user.id))
        assert (await client.get("/api/auth/me")).status_code == 200

    async def test_cookie_signed_with_default_secret_is_rejected(self, client, admin_user):
        client.cookies.set(settings.session_cookie, _signed_session(INSECURE_SESSION_SECRET, admin_user.id))
        assert (await client.get("/api/auth/me")).status_code == 401
