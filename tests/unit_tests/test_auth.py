"""Tests for the /api/auth endpoints."""

from tests.mocks.models import (
    LEARNER_EMAIL,
    OTHER_PASSWORD,
    STRONG_PASSWORD,
    WRONG_PASSWORD,
    register_body,
)


def _register_and_verify(client, outbox, **overrides) -> None:
    body = register_body(**overrides)
    resp = client.post("/api/auth/register", json=body)
    assert resp.status_code == 200, resp.text
    resp = client.post(
        "/api/auth/verify-registration",
        json={"email": body["email"], "otp": outbox.last_otp},
    )
    assert resp.status_code == 201, resp.text


def _login(client, email=LEARNER_EMAIL, password=STRONG_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_register_sends_otp(self, client, outbox):
        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Verify your email to continue"}
        assert outbox.messages[-1].to == LEARNER_EMAIL

    def test_register_invalid_email(self, client):
        resp = client.post("/api/auth/register", json=register_body(email="not-an-email"))
        assert resp.status_code == 422

    def test_register_weak_password(self, client):
        resp = client.post("/api/auth/register", json=register_body(password="alllowercase1!"))
        assert resp.status_code == 422

    def test_register_unknown_role(self, client):
        resp = client.post("/api/auth/register", json=register_body(role="ADMIN"))
        assert resp.status_code == 422

    def test_register_existing_email(self, client, outbox, fake_redis):
        _register_and_verify(client, outbox)
        fake_redis.advance(61)

        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 409
        body = resp.json()
        assert body == {"success": False, "error": "email_in_use", "message": "Email already in use"}

    def test_email_delivery_failure(self, client, outbox, fake_redis):
        outbox.fail = True
        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 502
        assert resp.json()["error"] == "email_delivery_failed"
        assert fake_redis._values.get(f"otp_data:{LEARNER_EMAIL}") is None


class TestVerifyRegistration:
    def test_sign_up_scenario(self, client, outbox):
        """Register, get refused during cooldown, miss once, then succeed."""
        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 200
        code = outbox.last_otp

        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 429
        assert resp.json() == {
            "success": False,
            "error": "cooldown_active",
            "message": "Please wait 1 minute before requesting again",
        }

        resp = client.post(
            "/api/auth/verify-registration",
            json={"email": LEARNER_EMAIL, "otp": "000000"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_otp"
        assert "1 attempts left" in resp.json()["message"]

        resp = client.post(
            "/api/auth/verify-registration",
            json={"email": LEARNER_EMAIL, "otp": code},
        )
        assert resp.status_code == 201
        assert resp.json()["message"] == "User registered successfully"

        resp = _login(client)
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "LEARNER"

    def test_otp_cannot_be_reused(self, client, outbox):
        client.post("/api/auth/register", json=register_body())
        code = outbox.last_otp

        resp1 = client.post("/api/auth/verify-registration", json={"email": LEARNER_EMAIL, "otp": code})
        assert resp1.status_code == 201

        resp2 = client.post("/api/auth/verify-registration", json={"email": LEARNER_EMAIL, "otp": code})
        assert resp2.status_code == 400
        assert resp2.json()["error"] == "invalid_or_expired_otp"

    def test_lockout_after_three_misses(self, client, outbox):
        client.post("/api/auth/register", json=register_body())
        code = outbox.last_otp

        statuses = [
            client.post(
                "/api/auth/verify-registration",
                json={"email": LEARNER_EMAIL, "otp": "000000"},
            ).status_code
            for _ in range(3)
        ]
        assert statuses == [400, 400, 423]

        resp = client.post("/api/auth/verify-registration", json={"email": LEARNER_EMAIL, "otp": code})
        assert resp.status_code == 423
        assert resp.json()["error"] == "account_locked"

        # Can't request a fresh code while locked either
        resp = client.post("/api/auth/register", json=register_body())
        assert resp.status_code == 423

    def test_verify_otp_wrong_length(self, client):
        resp = client.post(
            "/api/auth/verify-registration",
            json={"email": LEARNER_EMAIL, "otp": "12345"},
        )
        assert resp.status_code == 422


class TestLogin:
    def test_login_returns_token_and_cookie(self, client, outbox):
        _register_and_verify(client, outbox)

        resp = _login(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "login successful"
        assert data["token"]
        assert data["user"]["email"] == LEARNER_EMAIL
        assert "password" not in data["user"]
        assert "jwt" in resp.cookies

    def test_login_unknown_email(self, client):
        resp = _login(client, email="ghost@example.com")
        assert resp.status_code == 401

    def test_login_lockout(self, client, outbox):
        _register_and_verify(client, outbox)

        statuses = [_login(client, password=WRONG_PASSWORD).status_code for _ in range(5)]
        assert statuses == [401, 401, 401, 401, 423]

        assert _login(client).status_code == 423


class TestMe:
    def test_me_with_access_token(self, client, outbox):
        _register_and_verify(client, outbox)
        token = _login(client).json()["token"]

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == LEARNER_EMAIL

    def test_me_unauthenticated(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401

    def test_me_garbage_token(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestRefreshAndLogout:
    def test_refresh_rotates_token(self, client, outbox):
        _register_and_verify(client, outbox)
        _login(client)
        old = client.cookies.get("jwt")

        resp = client.get("/api/auth/refresh")
        assert resp.status_code == 200
        assert resp.json()["token"]
        new = client.cookies.get("jwt")
        assert new and new != old

        # The old refresh token was revoked
        client.cookies.clear()
        client.cookies.set("jwt", old)
        resp = client.get("/api/auth/refresh")
        assert resp.status_code == 401

    def test_refresh_without_cookie(self, client):
        resp = client.get("/api/auth/refresh")
        assert resp.status_code == 400
        assert resp.json()["error"] == "refresh_token_missing"
        assert resp.json()["message"] == "Refresh token missing"

    def test_logout(self, client, outbox):
        _register_and_verify(client, outbox)
        _login(client)
        token = client.cookies.get("jwt")

        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully!"

        client.cookies.clear()
        client.cookies.set("jwt", token)
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 401


class TestPasswordReset:
    def test_full_reset_flow(self, client, outbox, fake_redis):
        _register_and_verify(client, outbox)
        fake_redis.advance(61)

        resp = client.post("/api/auth/forgot-password", json={"email": LEARNER_EMAIL})
        assert resp.status_code == 200
        assert outbox.messages[-1].template == "forgot-password-mail"

        resp = client.post(
            "/api/auth/verify-forgot-password",
            json={"email": LEARNER_EMAIL, "otp": outbox.last_otp},
        )
        assert resp.status_code == 200
        reset_token = resp.json()["passwordResetToken"]

        resp = client.post(
            "/api/auth/reset-password",
            json={"email": LEARNER_EMAIL, "password": OTHER_PASSWORD},
            headers={"Authorization": f"Bearer {reset_token}"},
        )
        assert resp.status_code == 201
        assert resp.json()["message"] == "Password set successfully"

        assert _login(client, password=OTHER_PASSWORD).status_code == 200
        assert _login(client, password=STRONG_PASSWORD).status_code == 401

    def test_unregistered_email_touches_no_otp_keys(self, client, outbox, fake_redis):
        resp = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "user_not_found"
        assert not any("ghost@example.com" in key for key in fake_redis._values)
        assert outbox.messages == []

    def test_verify_with_nothing_pending_counts_as_failure(self, client, outbox):
        _register_and_verify(client, outbox)

        statuses = []
        for _ in range(3):
            resp = client.post(
                "/api/auth/verify-forgot-password",
                json={"email": LEARNER_EMAIL, "otp": "123456"},
            )
            statuses.append(resp.status_code)

        assert statuses == [400, 400, 423]
        assert resp.json() == {
            "success": False,
            "error": "account_locked_too_many_attempts",
            "message": "Too many failed attempts, your account is locked for 30 minutes",
        }

    def test_verify_for_unknown_user(self, client):
        resp = client.post(
            "/api/auth/verify-forgot-password",
            json={"email": "ghost@example.com", "otp": "123456"},
        )
        assert resp.status_code == 404

    def test_reset_requires_token(self, client):
        resp = client.post(
            "/api/auth/reset-password",
            json={"email": LEARNER_EMAIL, "password": OTHER_PASSWORD},
        )
        assert resp.status_code == 401

    def test_reset_email_must_match_token(self, client, outbox):
        _register_and_verify(client, outbox)
        token = _login(client).json()["token"]

        resp = client.post(
            "/api/auth/reset-password",
            json={"email": "someone-else@example.com", "password": OTHER_PASSWORD},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 404
