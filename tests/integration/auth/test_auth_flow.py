"""
End-to-end tests of the authentication API over HTTP.
"""

import pytest

from contest_auth.domain.value_objects import EmailTemplate

EMAIL = "a@b.com"
PASSWORD = "Password123!"


def _register(client, email: str = EMAIL, password: str = PASSWORD, **extra):
    return client.post("/api/auth/register", json={"email": email, "password": password, **extra})


def _cookie_headers(response) -> list[str]:
    return response.headers.get_list("set-cookie")


class TestRegisterLoginLogout:
    def test_full_session_lifecycle(self, client):
        registered = _register(client)
        assert registered.status_code == 201
        body = registered.json()
        assert body["status"] == "success"
        assert body["data"]["user"]["email"] == EMAIL
        assert body["data"]["accessToken"]
        assert body["data"]["refreshToken"]

        login = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert login.status_code == 200
        refresh_token = login.json()["data"]["refreshToken"]

        wrong = client.post("/api/auth/login", json={"email": EMAIL, "password": "wrong"})
        assert wrong.status_code == 401
        assert wrong.json() == {
            "status": "error",
            "message": "Invalid email or password",
            "code": "INVALID_CREDENTIALS",
        }

        logout = client.post("/api/auth/logout", json={"refreshToken": refresh_token})
        assert logout.status_code == 200
        assert logout.json()["message"] == "Logout successful"
        cleared = _cookie_headers(logout)
        assert any(header.startswith("accessToken=") for header in cleared)
        assert any(header.startswith("refreshToken=") for header in cleared)

        client.cookies.clear()
        after = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
        assert after.status_code == 401

    def test_auth_cookies_are_http_only(self, client):
        response = _register(client)

        headers = _cookie_headers(response)
        access = next(h for h in headers if h.startswith("accessToken="))
        refresh = next(h for h in headers if h.startswith("refreshToken="))
        assert "HttpOnly" in access
        assert "Path=/api" in access
        assert "Path=/api/auth" in refresh

    def test_signup_alias(self, client):
        response = client.post("/api/auth/signup", json={"email": EMAIL, "password": PASSWORD})

        assert response.status_code == 201

    def test_camel_case_names(self, client):
        response = _register(client, firstName="Ada", lastName="Lovelace")

        user = response.json()["data"]["user"]
        assert user["firstName"] == "Ada"
        assert user["lastName"] == "Lovelace"

    def test_duplicate_email_conflict(self, client):
        _register(client)

        response = _register(client, email="A@B.com")

        assert response.status_code == 409
        assert response.json()["code"] == "EMAIL_EXISTS"


class TestValidation:
    def test_errors_aggregated(self, client):
        response = client.post("/api/auth/register", json={"email": "nope", "password": "x"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert {error["field"] for error in body["errors"]} == {"email", "password"}

    def test_password_beyond_bcrypt_limit(self, client):
        response = _register(client, password="Aa1!" + "x" * 96)

        assert response.status_code == 400
        assert response.json()["errors"] == [
            {"field": "password", "message": "Password must be at most 72 bytes long"}
        ]

    def test_blank_name_rejected(self, client):
        response = _register(client, firstName="   ")

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "firstName"

    def test_malformed_body_uses_envelope(self, client):
        response = client.post(
            "/api/auth/login",
            content="not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["status"] == "error"
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestRefresh:
    def test_refresh_from_cookie(self, client):
        _register(client)

        response = client.post("/api/auth/refresh")

        assert response.status_code == 200
        assert response.json()["message"] == "Token refreshed successfully"

    def test_reuse_of_rotated_token_revokes_chain(self, client):
        original = _register(client).json()["data"]["refreshToken"]
        client.cookies.clear()
        rotated = client.post("/api/auth/refresh", json={"refreshToken": original})
        successor = rotated.json()["data"]["refreshToken"]
        client.cookies.clear()

        reuse = client.post("/api/auth/refresh", json={"refreshToken": original})
        after = client.post("/api/auth/refresh", json={"refreshToken": successor})

        assert reuse.status_code == 401
        assert reuse.json()["code"] == "TOKEN_REUSE_DETECTED"
        assert after.status_code == 401

    def test_missing_refresh_token(self, client):
        response = client.post("/api/auth/refresh")

        assert response.status_code == 401
        assert response.json()["message"] == "Refresh token is required"


class TestEmailFlows:
    def test_verify_email_single_use(self, client, email_dispatcher):
        _register(client)
        token = email_dispatcher.last_token(EMAIL, EmailTemplate.EMAIL_VERIFICATION)

        first = client.post("/api/auth/verify-email", json={"token": token})
        second = client.post("/api/auth/verify-email", json={"token": token})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["code"] == "TOKEN_ALREADY_USED"
        profile = client.get("/api/auth/me")
        assert profile.json()["data"]["user"]["emailVerified"] is True

    def test_forgot_and_reset_password(self, client, email_dispatcher):
        old_refresh = _register(client).json()["data"]["refreshToken"]
        client.cookies.clear()

        forgot = client.post("/api/auth/forgot-password", json={"email": EMAIL})
        unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@b.com"})
        assert forgot.status_code == unknown.status_code == 200
        assert forgot.json() == unknown.json()

        token = email_dispatcher.last_token(EMAIL, EmailTemplate.PASSWORD_RESET)
        reset = client.post(
            "/api/auth/reset-password", json={"token": token, "password": "NewPassword1!"}
        )
        assert reset.status_code == 200

        revoked = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
        assert revoked.status_code == 401
        login = client.post("/api/auth/login", json={"email": EMAIL, "password": "NewPassword1!"})
        assert login.status_code == 200

    def test_resend_verification_does_not_reveal_accounts(self, client):
        _register(client)

        known = client.post("/api/auth/resend-verification", json={"email": EMAIL})
        unknown = client.post("/api/auth/resend-verification", json={"email": "ghost@b.com"})

        assert known.json() == unknown.json()


class TestProtectedRoutes:
    def test_me_with_bearer_token(self, client):
        access = _register(client).json()["data"]["accessToken"]
        client.cookies.clear()

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {access}"})

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == EMAIL

    def test_me_without_token(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    @pytest.mark.parametrize("token", ["garbage", "a.b.c"])
    def test_me_with_bad_token(self, client, token):
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestThrottling:
    def test_login_throttled_with_retry_after(self, client):
        _register(client)
        for _ in range(5):
            client.post("/api/auth/login", json={"email": EMAIL, "password": "Wrong123!"})

        response = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})

        assert response.status_code == 429
        assert response.json()["code"] == "AUTH_RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) > 0


class TestOperationalEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_request_id_and_security_headers(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
