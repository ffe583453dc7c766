"""
tests/test_api_auth.py -- Integration tests for the account endpoints.

These tests exercise the full stack: FastAPI routing -> rate-limit dependency
-> auth dependency injection -> AccountService -> UserStore -> response model
serialization. Each test gets a fresh app (see conftest.client), so rate-limit
counters start at zero.

Coverage:
  - register: customer approved, supplier pending, duplicate email, admin refused
  - login: success, wrong password, unknown email (same message), pending supplier
  - 6th login in a window -> 429 even with correct credentials
  - passwords over 72 UTF-8 bytes refused, so a shared prefix never logs in
  - RateLimit-* headers report the login budget on success
  - 4th registration in a window -> 429
  - /me: 401 without header, 403 with junk token, 200 with valid token
  - logout revokes the presented token and every other token of that user
  - expired token -> 403 with the uniform invalid-token message
  - error bodies are {"message": ...}; no-store on token responses
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.models import Role
from tests.conftest import TEST_PASSWORD, bearer

REGISTER = "/api/v1/auth/register"
LOGIN = "/api/v1/auth/login"
ME = "/api/v1/auth/me"
LOGOUT = "/api/v1/auth/logout"


def _register(client: TestClient, email: str, role: str = "customer", password: str = TEST_PASSWORD):
    return client.post(REGISTER, json={"email": email, "password": password, "role": role, "first_name": "Test"})


class TestRegister:
    def test_customer_registration(self, client: TestClient) -> None:
        resp = _register(client, "buyer@marketplace.io")
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["email"] == "buyer@marketplace.io"
        assert data["user"]["role"] == "customer"
        assert data["user"]["is_approved"] is True
        assert data["requires_approval"] is False
        assert "password_hash" not in data["user"]
        assert "token_version" not in data["user"]
        assert resp.headers["cache-control"] == "no-store"

        me = client.get(ME, headers=bearer(data["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["email"] == "buyer@marketplace.io"

    def test_supplier_registration_is_pending(self, client: TestClient) -> None:
        resp = _register(client, "seller@marketplace.io", role="supplier")
        assert resp.status_code == 201
        data = resp.json()
        assert data["user"]["is_approved"] is False
        assert data["requires_approval"] is True

        me = client.get(ME, headers=bearer(data["token"]))
        assert me.status_code == 403
        assert me.json() == {"message": "Supplier account pending approval"}

    def test_duplicate_email_case_insensitive(self, client: TestClient) -> None:
        assert _register(client, "twice@marketplace.io").status_code == 201
        resp = _register(client, "TWICE@marketplace.io")
        assert resp.status_code == 400
        assert resp.json() == {"message": "User already exists with this email"}

    def test_admin_self_registration_refused(self, client: TestClient) -> None:
        resp = _register(client, "wannabe@marketplace.io", role="admin")
        assert resp.status_code == 422
        assert "message" in resp.json()

    def test_unknown_role_refused(self, client: TestClient) -> None:
        resp = _register(client, "odd@marketplace.io", role="superuser")
        assert resp.status_code == 422

    def test_short_password_refused(self, client: TestClient) -> None:
        resp = _register(client, "short@marketplace.io", password="abc")
        assert resp.status_code == 422

    def test_fourth_registration_rate_limited(self, client: TestClient) -> None:
        for i in range(3):
            assert _register(client, f"user{i}@marketplace.io").status_code == 201
        resp = _register(client, "user3@marketplace.io")
        assert resp.status_code == 429
        assert resp.json() == {"message": "Too many registration attempts, try again later"}
        assert int(resp.headers["retry-after"]) > 0
        assert "x-ratelimit-reset" in resp.headers
        assert resp.headers["ratelimit-limit"] == "3"
        assert resp.headers["ratelimit-remaining"] == "0"

    def test_password_over_72_bytes_refused(self, client: TestClient) -> None:
        # 40 characters but 80 bytes: bcrypt would only see the first 72.
        resp = _register(client, "accent@marketplace.io", password="\u00e9" * 40)
        assert resp.status_code == 422
        assert "72 bytes" in resp.json()["message"]


class TestLogin:
    def test_login_success(self, client: TestClient) -> None:
        _register(client, "login@marketplace.io")
        resp = client.post(LOGIN, json={"email": "Login@Marketplace.io", "password": TEST_PASSWORD})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["message"] == "Login successful"
        assert data["user"]["last_login"]
        assert resp.headers["cache-control"] == "no-store"
        assert client.get(ME, headers=bearer(data["token"])).status_code == 200

    def test_wrong_password_and_unknown_email_look_the_same(self, client: TestClient) -> None:
        _register(client, "known@marketplace.io")
        wrong = client.post(LOGIN, json={"email": "known@marketplace.io", "password": "not-the-password"})
        unknown = client.post(LOGIN, json={"email": "unknown@marketplace.io", "password": "not-the-password"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"message": "Invalid email or password"}

    def test_pending_supplier_cannot_log_in(self, client: TestClient) -> None:
        _register(client, "wait@marketplace.io", role="supplier")
        resp = client.post(LOGIN, json={"email": "wait@marketplace.io", "password": TEST_PASSWORD})
        assert resp.status_code == 403
        assert resp.json() == {"message": "Supplier account pending approval"}

    def test_deactivated_cannot_log_in(self, client: TestClient, seed_user) -> None:
        seed_user("inactive@marketplace.io", Role.customer, is_active=False)
        resp = client.post(LOGIN, json={"email": "inactive@marketplace.io", "password": TEST_PASSWORD})
        assert resp.status_code == 403
        assert resp.json() == {"message": "Account has been deactivated"}

    def test_sixth_attempt_rate_limited_regardless_of_credentials(self, client: TestClient, seed_user) -> None:
        seed_user("brute@marketplace.io")
        statuses = []
        for i in range(5):
            password = TEST_PASSWORD if i % 2 == 0 else "wrong-password"
            statuses.append(
                client.post(LOGIN, json={"email": "brute@marketplace.io", "password": password}).status_code
            )
        assert statuses == [200, 401, 200, 401, 200]

        sixth = client.post(LOGIN, json={"email": "brute@marketplace.io", "password": TEST_PASSWORD})
        assert sixth.status_code == 429
        assert sixth.json() == {"message": "Too many authentication attempts, try again later"}
        assert "retry-after" in sixth.headers

    def test_shared_72_byte_prefix_does_not_log_in(self, client: TestClient) -> None:
        password = "\u00e9" * 36  # exactly 72 bytes
        assert _register(client, "prefix@marketplace.io", password=password).status_code == 201

        longer = client.post(LOGIN, json={"email": "prefix@marketplace.io", "password": password + "zz"})
        assert longer.status_code == 422
        different = client.post(LOGIN, json={"email": "prefix@marketplace.io", "password": "\u00e9" * 35 + "zz"})
        assert different.status_code == 401
        exact = client.post(LOGIN, json={"email": "prefix@marketplace.io", "password": password})
        assert exact.status_code == 200

    def test_login_success_reports_login_budget(self, client: TestClient, seed_user) -> None:
        seed_user("budget@marketplace.io")
        resp = client.post(LOGIN, json={"email": "budget@marketplace.io", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["ratelimit-limit"] == "5"
        assert resp.headers["ratelimit-remaining"] == "4"
        assert int(resp.headers["ratelimit-reset"]) > 0

    def test_login_limit_does_not_block_other_routes(self, client: TestClient, seed_user) -> None:
        user = seed_user("other@marketplace.io")
        token = client.app.state.tokens.issue(user, user.token_version)
        for _ in range(6):
            client.post(LOGIN, json={"email": "other@marketplace.io", "password": "wrong-password"})
        assert client.get(ME, headers=bearer(token)).status_code == 200


class TestAuthenticatedRoutes:
    def test_me_without_header(self, client: TestClient) -> None:
        resp = client.get(ME)
        assert resp.status_code == 401
        assert resp.json() == {"message": "Access token required"}

    def test_me_with_wrong_scheme(self, client: TestClient) -> None:
        resp = client.get(ME, headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401

    def test_me_with_garbage_token(self, client: TestClient) -> None:
        resp = client.get(ME, headers=bearer("not.a.token"))
        assert resp.status_code == 403
        assert resp.json() == {"message": "Invalid or expired token"}

    def test_expired_token_gets_uniform_message(self, client: TestClient, seed_user) -> None:
        user = seed_user("expired@marketplace.io")
        token = client.app.state.tokens.issue(user, user.token_version, ttl_seconds=0)
        resp = client.get(ME, headers=bearer(token))
        assert resp.status_code == 403
        assert resp.json() == {"message": "Invalid or expired token"}

    def test_logout_revokes_all_tokens(self, client: TestClient) -> None:
        _register(client, "leaving@marketplace.io")
        first = client.post(LOGIN, json={"email": "leaving@marketplace.io", "password": TEST_PASSWORD}).json()["token"]
        second = client.post(LOGIN, json={"email": "leaving@marketplace.io", "password": TEST_PASSWORD}).json()["token"]

        resp = client.post(LOGOUT, headers=bearer(first))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logout successful"}

        for token in (first, second):
            after = client.get(ME, headers=bearer(token))
            assert after.status_code == 403
            assert after.json() == {"message": "Token has been invalidated"}

    def test_login_after_logout_works(self, client: TestClient) -> None:
        _register(client, "back@marketplace.io")
        token = client.post(LOGIN, json={"email": "back@marketplace.io", "password": TEST_PASSWORD}).json()["token"]
        client.post(LOGOUT, headers=bearer(token))
        fresh = client.post(LOGIN, json={"email": "back@marketplace.io", "password": TEST_PASSWORD}).json()["token"]
        assert client.get(ME, headers=bearer(fresh)).status_code == 200
