"""Tests for the authentication HTTP endpoints."""

import pytest
from httpx import AsyncClient

from authcore.services.rotation import INVALID_REFRESH_TOKEN
from authcore.services.tokens import decode_token
from tests.conftest import TEST_DEVICE_ID, TEST_PASSWORD, TEST_PIN, bearer, device_headers

pytestmark = pytest.mark.asyncio


async def _login(async_client: AsyncClient, principal) -> dict:
    response = await async_client.post(
        "/auth/login",
        json={"phone": principal.phone_number, "pin": TEST_PIN},
        headers=device_headers(),
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


class TestLogin:
    """Tests for /auth/login and /auth/verify-otp."""

    async def test_trusted_device_login(self, async_client, principal_factory, trusted_device):
        principal = await principal_factory()
        await trusted_device(principal)

        response = await async_client.post(
            "/auth/login",
            json={"phone": principal.phone_number, "pin": TEST_PIN},
            headers=device_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Login successful"
        assert set(body["data"]) == {"token", "user"}
        assert {
            "access_token",
            "access_token_expires_at",
            "refresh_token",
            "refresh_token_expires_at",
        } <= set(body["data"]["token"])
        assert body["data"]["token"]["token_type"] == "bearer"
        assert body["data"]["user"]["id"] == str(principal.id)
        assert "pin_hash" not in body["data"]["user"]

    async def test_new_device_challenge_flow(self, async_client, principal_factory, fake_notifier):
        principal = await principal_factory(email="frank@example.com")

        challenge = await _login(async_client, principal)
        assert challenge == {"requires_otp": True, "send_to": "f***@example.com"}

        response = await async_client.post(
            "/auth/verify-otp",
            json={"identity": principal.phone_number, "otp": fake_notifier.last_code("login")},
            headers=device_headers(),
        )

        assert response.status_code == 200
        assert response.json()["data"]["token"]["access_token"]

    async def test_missing_device_id(self, async_client, principal_factory):
        principal = await principal_factory()

        response = await async_client.post(
            "/auth/login",
            json={"phone": principal.phone_number, "pin": TEST_PIN},
            headers=device_headers(device_id=None),
        )

        assert response.status_code == 422
        assert response.json()["success"] is False

    async def test_invalid_pin_format(self, async_client):
        response = await async_client.post(
            "/auth/login", json={"phone": "0811111111", "pin": "12"}, headers=device_headers()
        )

        assert response.status_code == 422
        body = response.json()
        assert body == {"success": False, "message": "Validation failed", "errors": body["errors"]}
        assert "pin" in body["errors"]

    async def test_wrong_pin(self, async_client, principal_factory):
        principal = await principal_factory()

        response = await async_client.post(
            "/auth/login",
            json={"phone": principal.phone_number, "pin": "000000"},
            headers=device_headers(),
        )

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["message"] == "Invalid phone number or PIN"

    async def test_wrong_pin_same_answer_for_known_and_unknown_phone(
        self, async_client, principal_factory
    ):
        unverified = await principal_factory(email_verified=False)
        banned = await principal_factory(is_active=False, banned_reason="Fraud review")

        responses = [
            await async_client.post(
                "/auth/login",
                json={"phone": phone, "pin": "000000"},
                headers=device_headers(),
            )
            for phone in ("0899999999", unverified.phone_number, banned.phone_number)
        ]

        assert {r.status_code for r in responses} == {401}
        assert {r.json()["message"] for r in responses} == {"Invalid phone number or PIN"}

    async def test_locked_after_repeated_failures(self, async_client, principal_factory):
        principal = await principal_factory()
        for _ in range(5):
            await async_client.post(
                "/auth/login",
                json={"phone": principal.phone_number, "pin": "000000"},
                headers=device_headers(),
            )

        response = await async_client.post(
            "/auth/login",
            json={"phone": principal.phone_number, "pin": TEST_PIN},
            headers=device_headers(),
        )

        assert response.status_code == 403

    async def test_email_login_challenge(self, async_client, principal_factory):
        principal = await principal_factory()

        response = await async_client.post(
            "/auth/login-email",
            json={"email": principal.email, "password": TEST_PASSWORD},
            headers=device_headers(),
        )

        assert response.status_code == 200
        assert response.json()["data"]["requires_otp"] is True

    async def test_verify_otp_wrong_code(self, async_client, principal_factory, fake_notifier):
        principal = await principal_factory()
        await _login(async_client, principal)
        code = fake_notifier.last_code("login")

        response = await async_client.post(
            "/auth/verify-otp",
            json={"identity": principal.phone_number, "otp": "000000" if code != "000000" else "111111"},
            headers=device_headers(),
        )

        assert response.status_code == 401


class TestOtpDelivery:
    """Tests for resend, forgot and reset endpoints."""

    async def test_resend_unknown_identity(self, async_client):
        response = await async_client.post(
            "/auth/resend-otp", json={"identity": "0899999999", "purpose": "login"}
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"purpose": "login", "ttl_mins": 5}

    async def test_resend_cooldown(self, async_client, principal_factory):
        principal = await principal_factory()
        payload = {"identity": principal.phone_number, "purpose": "login"}

        first = await async_client.post("/auth/resend-otp", json=payload)
        second = await async_client.post("/auth/resend-otp", json=payload)

        assert first.status_code == 200
        assert second.status_code == 429

    async def test_resend_invalid_purpose(self, async_client):
        response = await async_client.post(
            "/auth/resend-otp", json={"identity": "0899999999", "purpose": "nope"}
        )
        assert response.status_code == 422

    async def test_reset_pin_flow(self, async_client, principal_factory, trusted_device, fake_notifier):
        principal = await principal_factory()
        await trusted_device(principal)

        response = await async_client.post("/auth/forgot-pin", json={"phone": principal.phone_number})
        assert response.status_code == 200

        response = await async_client.post(
            "/auth/reset-pin",
            json={
                "phone": principal.phone_number,
                "otp": fake_notifier.last_code("reset_pin"),
                "new_pin": "246810",
            },
        )
        assert response.status_code == 200

        response = await async_client.post(
            "/auth/login",
            json={"phone": principal.phone_number, "pin": "246810"},
            headers=device_headers(),
        )
        assert response.status_code == 200
        assert response.json()["data"]["token"]

    async def test_reset_password_weak_password(self, async_client):
        response = await async_client.post(
            "/auth/reset-password",
            json={"email": "a@example.com", "otp": "123456", "new_password": "alllowercase"},
        )

        assert response.status_code == 422
        assert "new_password" in response.json()["errors"]

    async def test_forgot_password_unknown_email(self, async_client, fake_notifier):
        response = await async_client.post(
            "/auth/forgot-password", json={"email": "nobody@example.com"}
        )

        assert response.status_code == 200
        assert fake_notifier.sent == []


class TestRefresh:
    """Tests for /auth/refresh-token."""

    async def test_refresh_from_body(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/refresh-token", json={"refresh_token": bundle.refresh_token}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["refresh_token"] != bundle.refresh_token

    async def test_refresh_from_bearer_header(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/refresh-token", headers=bearer(bundle.refresh_token)
        )

        assert response.status_code == 200

    async def test_replay_rejected(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)
        payload = {"refresh_token": bundle.refresh_token}

        first = await async_client.post("/auth/refresh-token", json=payload)
        second = await async_client.post("/auth/refresh-token", json=payload)

        assert first.status_code == 200
        assert second.status_code == 401
        assert second.json()["message"] == INVALID_REFRESH_TOKEN

    async def test_missing_token(self, async_client):
        response = await async_client.post("/auth/refresh-token")

        assert response.status_code == 401
        assert response.json()["message"] == INVALID_REFRESH_TOKEN


class TestAuthenticatedEndpoints:
    """Tests for endpoints behind the access token."""

    async def test_me(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.get("/auth/me", headers=bearer(bundle.access_token))

        assert response.status_code == 200
        assert response.json()["data"]["phone_number"] == principal.phone_number

    async def test_me_without_token(self, async_client):
        response = await async_client.get("/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["success"] is False

    async def test_me_with_refresh_token(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.get("/auth/me", headers=bearer(bundle.refresh_token))

        assert response.status_code == 401

    async def test_logout_blacklists_access_token(
        self, async_client, principal_factory, issue_tokens, token_blacklist
    ):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/logout",
            json={"refresh_token": bundle.refresh_token},
            headers=bearer(bundle.access_token),
        )
        assert response.status_code == 200
        assert await token_blacklist.contains(decode_token(bundle.access_token).jti)

        me = await async_client.get("/auth/me", headers=bearer(bundle.access_token))
        assert me.status_code == 401

        refresh = await async_client.post(
            "/auth/refresh-token", json={"refresh_token": bundle.refresh_token}
        )
        assert refresh.status_code == 401

    async def test_logout_without_body(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post("/auth/logout", headers=bearer(bundle.access_token))

        assert response.status_code == 200

    async def test_logout_all(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        current = await issue_tokens(principal)
        other = await issue_tokens(principal, device_id="tablet")

        response = await async_client.post("/auth/logout-all", headers=bearer(current.access_token))

        assert response.status_code == 200
        assert response.json()["data"] == {"revoked": 2}

        me = await async_client.get("/auth/me", headers=bearer(other.access_token))
        assert me.status_code == 401

    async def test_change_pin(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/change-pin",
            json={"current_pin": TEST_PIN, "new_pin": "135790"},
            headers=bearer(bundle.access_token),
        )
        assert response.status_code == 200

        me = await async_client.get("/auth/me", headers=bearer(bundle.access_token))
        assert me.status_code == 401

    async def test_change_password_wrong_current(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        bundle = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/change-password",
            json={"current_password": "wrong", "new_password": "An0ther!Passw0rd"},
            headers=bearer(bundle.access_token),
        )

        assert response.status_code == 401


class TestSessions:
    """Tests for session listing and selective revocation."""

    async def test_list_sessions(self, async_client, principal_factory, issue_tokens, trusted_device):
        principal = await principal_factory()
        await trusted_device(principal)
        current = await issue_tokens(principal)
        await issue_tokens(principal, device_id="tablet")

        response = await async_client.get(
            "/auth/sessions", headers={**device_headers(), **bearer(current.access_token)}
        )

        assert response.status_code == 200
        sessions = {s["device_id"]: s for s in response.json()["data"]}
        assert set(sessions) == {TEST_DEVICE_ID, "tablet"}
        assert sessions[TEST_DEVICE_ID]["is_current_device"] is True
        assert sessions[TEST_DEVICE_ID]["last_login_at"] is not None
        assert sessions["tablet"]["is_current_device"] is False
        assert sessions["tablet"]["status"] == "active"

    async def test_revoke_other_device(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        current = await issue_tokens(principal)
        other = await issue_tokens(principal, device_id="tablet")

        response = await async_client.post(
            "/auth/sessions/revoke",
            json={"device_id": "tablet"},
            headers={**device_headers(), **bearer(current.access_token)},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"revoked": 1}

        refresh = await async_client.post(
            "/auth/refresh-token", json={"refresh_token": other.refresh_token}
        )
        assert refresh.status_code == 401

        me = await async_client.get("/auth/me", headers=bearer(current.access_token))
        assert me.status_code == 200

    async def test_revoke_current_device(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        current = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/sessions/revoke",
            json={"device_id": TEST_DEVICE_ID, "revoke_current": True},
            headers={**device_headers(), **bearer(current.access_token)},
        )
        assert response.status_code == 200

        me = await async_client.get("/auth/me", headers=bearer(current.access_token))
        assert me.status_code == 401

    async def test_revoke_no_match(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        current = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/sessions/revoke",
            json={"device_id": "nothing-here"},
            headers=bearer(current.access_token),
        )

        assert response.status_code == 200
        assert response.json()["message"] == "No matching active session"
        assert response.json()["data"] == {"revoked": 0}

    async def test_revoke_requires_target(self, async_client, principal_factory, issue_tokens):
        principal = await principal_factory()
        current = await issue_tokens(principal)

        response = await async_client.post(
            "/auth/sessions/revoke", json={}, headers=bearer(current.access_token)
        )

        assert response.status_code == 422
