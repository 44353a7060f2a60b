"""Tests for API endpoints."""

from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mailcode.middleware.security import RateLimitMiddleware


def log_in(client, mailer, email="a@b.com", **extra):
    """Run the request/verify flow and return the verify response."""
    response = client.post("/auth/login", json={"email": email, "allow_registration": True})
    assert response.status_code == 200
    return client.post("/auth/code", json={"email": email, "code": mailer.last_code, **extra})


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check(self, client):
        """Test health check returns healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "environment" in data


class TestLoginEndpoints:
    """Test the code request and verification endpoints."""

    def test_login_page_sets_redirect_cookie(self, client):
        response = client.get("/auth/login", params={"redirect": "/account"})

        assert response.status_code == 200
        assert "login_from" in response.json()
        assert "redirect" in response.cookies

    def test_request_code(self, client, mailer):
        """Test requesting a code mails it and points at the code step."""
        response = client.post("/auth/login", json={"email": "New.User@Example.com"})

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "new.user@example.com"
        assert data["will_register"] is True
        assert parse_qs(urlsplit(data["next_url"]).query) == {
            "email": ["new.user@example.com"],
            "register": ["yes"],
        }
        assert mailer.sent[-1][0] == "new.user@example.com"

    def test_request_code_unknown_user(self, client):
        response = client.post("/auth/login", json={"email": "a@b.com", "allow_registration": False})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "user_not_found"

    def test_request_code_invalid_email(self, client):
        response = client.post("/auth/login", json={"email": "nope"})

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Invalid email"

    def test_request_code_missing_email(self, client):
        response = client.post("/auth/login", json={})
        assert response.status_code == 422  # Validation error

    def test_verify_sets_session(self, client, mailer):
        """Test a correct code logs the browser in."""
        response = log_in(client, mailer)

        assert response.status_code == 200
        data = response.json()
        assert data["redirect_to"] == "/"
        assert data["user"]["email"] == "a@b.com"
        assert "session" in response.cookies

        me = client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["id"] == data["user"]["id"]

    def test_verify_registers_with_profile(self, client, mailer):
        response = log_in(client, mailer, register_account=True, profile={"name": "Ann", "handle": "ann"})

        user = response.json()["user"]
        assert user["name"] == "Ann"
        assert user["handle"] == "ann"

    def test_verify_rejects_unknown_profile_field(self, client, mailer):
        response = log_in(client, mailer, register_account=True, profile={"roles": "admin"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_fields"

    def test_verify_follows_redirect_intent(self, client, mailer):
        """Test the redirect stored at the login page is used after verification."""
        client.get("/auth/login", params={"redirect": "/account?tab=2"})

        response = log_in(client, mailer)

        assert response.json()["redirect_to"] == "/account?tab=2"

    def test_abandoned_redirect_not_reused(self, client, mailer):
        """Test visiting the login page without a redirect clears an older one."""
        client.get("/auth/login", params={"redirect": "/account"})
        client.get("/auth/login")

        response = log_in(client, mailer)

        assert response.json()["redirect_to"] == "/"

    def test_wrong_code(self, client, mailer):
        client.post("/auth/login", json={"email": "a@b.com"})
        wrong = "".join(str((int(ch) + 1) % 10) for ch in mailer.last_code)

        response = client.post("/auth/code", json={"email": "a@b.com", "code": wrong})

        assert response.status_code == 400
        assert response.json()["detail"] == {"error": "invalid_code", "message": "Invalid code"}
        assert "session" not in response.cookies

    def test_expired_code(self, client, mailer, clock):
        client.post("/auth/login", json={"email": "a@b.com"})
        clock.advance(hours=25)

        response = client.post("/auth/code", json={"email": "a@b.com", "code": mailer.last_code})

        assert response.json()["detail"]["error"] == "code_expired"

    def test_empty_code(self, client):
        response = client.post("/auth/code", json={"email": "a@b.com"})

        assert response.json()["detail"]["message"] == "Please enter a code"

    def test_resend(self, client, mailer):
        client.post("/auth/login", json={"email": "a@b.com"})
        code = mailer.last_code

        response = client.post("/auth/code/resend", json={"email": "a@b.com"})

        assert response.status_code == 200
        assert response.json() == {"resent": True}
        assert mailer.last_code == code

    def test_resend_without_code(self, client):
        response = client.post("/auth/code/resend", json={"email": "a@b.com"})

        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "No code found"

    def test_auth_responses_not_cached(self, client):
        response = client.get("/auth/login")

        assert "no-store" in response.headers["cache-control"]
        assert response.headers["x-content-type-options"] == "nosniff"


class TestLogout:
    """Test the logout endpoint."""

    def test_logout(self, client, mailer):
        """Test logout clears the session and redirects."""
        log_in(client, mailer)

        response = client.get("/auth/logout", params={"redirect": "/bye"}, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/bye"
        assert client.get("/auth/me").status_code == 401

    def test_logout_without_session(self, client):
        response = client.get("/auth/logout", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/"

    def test_logout_ignores_foreign_redirect(self, client):
        response = client.get(
            "/auth/logout", params={"redirect": "https://evil.example/"}, follow_redirects=False
        )

        assert response.headers["location"] == "/"


class TestProtectedRoutes:
    """Test the login-required and API guards."""

    def test_account_redirects_to_login(self, client):
        """Test an anonymous page request is sent to the login page."""
        response = client.get("/account", params={"tab": "1"}, follow_redirects=False)

        assert response.status_code == 303
        location = urlsplit(response.headers["location"])
        assert location.path == "/auth/login"
        assert parse_qs(location.query)["redirect"] == ["https://testserver/account?tab=1"]

    def test_account_with_session(self, client, mailer):
        user_id = log_in(client, mailer).json()["user"]["id"]

        response = client.get("/account")

        assert response.status_code == 200
        assert response.json() == {"user_id": user_id}

    def test_me_anonymous(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_api_requires_bearer(self, client, mailer):
        """Test a session cookie alone does not open API routes."""
        log_in(client, mailer)

        response = client.get("/api/whoami")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_token_flow(self, client, mailer):
        """Test a logged-in session can mint a bearer token for API calls."""
        user_id = log_in(client, mailer).json()["user"]["id"]

        response = client.post("/auth/token", json={"client_id": "cli"})
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 3600

        client.cookies.clear()
        whoami = client.get("/api/whoami", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert whoami.status_code == 200
        assert whoami.json() == {"user_id": user_id, "client_id": "cli"}

    def test_token_requires_session(self, client):
        response = client.post("/auth/token", json={"client_id": "cli"})

        assert response.status_code == 401

    def test_token_cannot_mint_token(self, client, mailer):
        """Test a bearer token cannot be exchanged for another token."""
        log_in(client, mailer)
        token = client.post("/auth/token", json={"client_id": "cli"}).json()["access_token"]
        client.cookies.clear()

        response = client.post(
            "/auth/token", json={"client_id": "cli"}, headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_invalid_bearer(self, client):
        response = client.get("/api/whoami", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authorization token."


class TestRateLimit:
    """Test the login endpoint throttle."""

    @staticmethod
    def build_client(**options):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60, **options)

        @app.post("/auth/code")
        def code():
            return {"ok": True}

        @app.get("/auth/login")
        def login():
            return {"ok": True}

        return TestClient(app)

    @pytest.fixture
    def limited_client(self):
        return self.build_client()

    def test_blocks_after_limit(self, limited_client):
        assert limited_client.post("/auth/code").status_code == 200
        second = limited_client.post("/auth/code")
        assert second.headers["x-ratelimit-remaining"] == "0"

        response = limited_client.post("/auth/code")

        assert response.status_code == 429

    def test_get_not_limited(self, limited_client):
        for _ in range(5):
            assert limited_client.get("/auth/login").status_code == 200

    def test_forwarded_for_ignored_from_untrusted_peer(self, limited_client):
        """Test rotating X-Forwarded-For values do not escape the limit."""
        statuses = [
            limited_client.post("/auth/code", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
            for i in range(10)
        ]

        assert statuses[:2] == [200, 200]
        assert set(statuses[2:]) == {429}

    def test_forwarded_for_from_trusted_proxy(self):
        """Test a trusted proxy's X-Forwarded-For identifies the client."""
        client = self.build_client(trusted_proxies=["testclient"])

        for i in range(5):
            response = client.post("/auth/code", headers={"X-Forwarded-For": f"10.0.0.{i}, testclient"})
            assert response.status_code == 200

        client.post("/auth/code", headers={"X-Forwarded-For": "10.0.0.9"})
        client.post("/auth/code", headers={"X-Forwarded-For": "10.0.0.9"})
        assert client.post("/auth/code", headers={"X-Forwarded-For": "10.0.0.9"}).status_code == 429

    def test_idle_clients_are_dropped(self):
        """Test clients with no requests left in the window are forgotten."""
        limiter = RateLimitMiddleware(FastAPI(), max_requests=2, window_seconds=60)
        limiter.request_counts["10.0.0.1"] = [100.0]
        limiter.request_counts["10.0.0.2"] = [100.0, 150.0]

        assert limiter._recent_requests("10.0.0.1", 200.0) == []
        assert limiter._recent_requests("10.0.0.2", 200.0) == [150.0]
        assert limiter.request_counts == {"10.0.0.2": [150.0]}
