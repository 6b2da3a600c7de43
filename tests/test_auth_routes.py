"""
Authentication route tests
"""

import asyncio
from datetime import datetime, timedelta, timezone

from authapi.models.user import UserRole


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def sign_up(client, email="ann@example.com", password="secret1", full_name="Ann Smith"):
    return client.post("/auth/signup", json={
        "email": email,
        "password": password,
        "full_name": full_name
    })


class TestSignUp:
    def test_sign_up_creates_user_with_tokens(self, client, store):
        response = sign_up(client)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Account created successfully"
        user = body["data"]["user"]
        assert user["email"] == "ann@example.com"
        assert user["role"] == "user"
        assert user["full_name"] == "Ann Smith"
        assert body["data"]["tokens"]["accessToken"]
        assert body["data"]["tokens"]["refreshToken"]
        assert asyncio.run(store.find_by_email("ann@example.com")) is not None

    def test_sign_up_cannot_choose_role(self, client):
        response = client.post("/auth/signup", json={
            "email": "eve@example.com",
            "password": "secret1",
            "full_name": "Eve",
            "role": "admin"
        })
        assert response.status_code == 201
        assert response.json()["data"]["user"]["role"] == "user"

    def test_sign_up_pending_confirmation_returns_no_tokens(self, client, provider):
        provider.confirm_email = True
        response = sign_up(client)
        assert response.status_code == 201
        body = response.json()
        assert "check your email" in body["message"]
        assert "tokens" not in body["data"]
        assert body["data"]["user"]["email"] == "ann@example.com"

    def test_sign_up_invalid_email(self, client):
        response = sign_up(client, email="not-an-email")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert [e["field"] for e in body["errors"]] == ["email"]

    def test_sign_up_short_password(self, client):
        response = sign_up(client, password="123")
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "password"

    def test_sign_up_missing_fields(self, client):
        response = client.post("/auth/signup", json={})
        assert response.status_code == 400
        fields = {e["field"] for e in response.json()["errors"]}
        assert fields == {"email", "password", "full_name"}

    def test_sign_up_provider_error_passes_message(self, client):
        sign_up(client)
        response = sign_up(client)
        assert response.status_code == 400
        assert response.json()["message"] == "User already registered"


class TestSignIn:
    def test_sign_in_returns_same_user_as_sign_up(self, client):
        created = sign_up(client).json()["data"]["user"]
        response = client.post("/auth/signin", json={
            "email": "ann@example.com",
            "password": "secret1"
        })
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["user"]["id"] == created["id"]
        assert body["data"]["tokens"]["accessToken"]

    def test_sign_in_wrong_password(self, client):
        sign_up(client)
        response = client.post("/auth/signin", json={
            "email": "ann@example.com",
            "password": "wrong-password"
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid login credentials"

    def test_sign_in_creates_missing_local_user(self, client, provider, store):
        # Account exists at the provider but not locally
        asyncio.run(provider.sign_up("bob@example.com", "secret1", "Bob"))
        response = client.post("/auth/signin", json={
            "email": "bob@example.com",
            "password": "secret1"
        })
        assert response.status_code == 200
        user = asyncio.run(store.find_by_email("bob@example.com"))
        assert user.role == UserRole.USER


class TestGoogleOAuth:
    def test_google_url(self, client):
        response = client.get("/auth/google")
        assert response.status_code == 200
        assert response.json()["data"]["url"].startswith("https://auth.example.com/authorize")

    def test_google_signin_alias(self, client):
        response = client.get("/auth/google/signin")
        assert response.status_code == 200
        assert "url" in response.json()["data"]

    def test_callback_creates_google_user(self, client, provider):
        provider.add_google_user("google-token", "gina@example.com", "Gina")
        response = client.post("/auth/callback", json={"access_token": "google-token"})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Authentication successful"
        user = body["data"]["user"]
        assert user["provider"] == "google"
        assert user["role"] == "user"
        assert user["full_name"] == "Gina"
        assert body["data"]["tokens"]["accessToken"]

    def test_callback_reuses_existing_email_account(self, client, provider):
        created = sign_up(client).json()["data"]["user"]
        provider.add_google_user("google-token", "ann@example.com")
        response = client.post("/auth/callback", json={"access_token": "google-token"})
        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == created["id"]

    def test_callback_is_idempotent(self, client, provider):
        provider.add_google_user("google-token", "gina@example.com")
        first = client.post("/auth/callback", json={"access_token": "google-token"})
        second = client.post("/auth/callback", json={"access_token": "google-token"})
        assert first.json()["data"]["user"]["id"] == second.json()["data"]["user"]["id"]

    def test_callback_invalid_token(self, client):
        response = client.post("/auth/callback", json={"access_token": "bogus"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid access token"

    def test_callback_requires_access_token(self, client):
        response = client.post("/auth/callback", json={})
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "access_token"


class TestTokens:
    def test_refresh_issues_new_pair(self, client):
        tokens = sign_up(client).json()["data"]["tokens"]
        response = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert response.status_code == 200
        new_tokens = response.json()["data"]["tokens"]
        assert new_tokens["accessToken"]
        assert new_tokens["refreshToken"]

    def test_refresh_rejects_access_token(self, client):
        tokens = sign_up(client).json()["data"]["tokens"]
        response = client.post("/auth/refresh", json={"refreshToken": tokens["accessToken"]})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired refresh token"

    def test_refresh_rejects_garbage(self, client):
        response = client.post("/auth/refresh", json={"refreshToken": "not-a-token"})
        assert response.status_code == 401

    def test_refresh_for_deleted_user(self, client, store):
        body = sign_up(client).json()["data"]
        asyncio.run(store.delete(body["user"]["id"]))
        response = client.post("/auth/refresh", json={"refreshToken": body["tokens"]["refreshToken"]})
        assert response.status_code == 404

    def test_refresh_picks_up_role_change(self, client, store, admin):
        """Role changes reach the token only after a refresh"""
        body = sign_up(client).json()["data"]
        tokens = body["tokens"]
        _, admin_token = admin

        promote = client.patch(
            f"/users/{body['user']['id']}/role",
            json={"role": "admin"},
            headers=bearer(admin_token)
        )
        assert promote.status_code == 200

        stale = client.get("/users", headers=bearer(tokens["accessToken"]))
        assert stale.status_code == 403

        refreshed = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        new_access = refreshed.json()["data"]["tokens"]["accessToken"]
        assert client.get("/users", headers=bearer(new_access)).status_code == 200


class TestProfile:
    def test_profile_requires_token(self, client):
        response = client.get("/auth/profile")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Access token is required"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_profile_with_token(self, client):
        tokens = sign_up(client).json()["data"]["tokens"]
        response = client.get("/auth/profile", headers=bearer(tokens["accessToken"]))
        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "ann@example.com"

    def test_profile_rejects_refresh_token(self, client):
        tokens = sign_up(client).json()["data"]["tokens"]
        response = client.get("/auth/profile", headers=bearer(tokens["refreshToken"]))
        assert response.status_code == 401

    def test_profile_rejects_expired_token(self, client, seed_user, token_service):
        user, _ = seed_user("old@example.com")
        past = datetime.now(timezone.utc) - timedelta(days=30)
        expired = token_service.issue(user, now=past).accessToken
        response = client.get("/auth/profile", headers=bearer(expired))
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_sign_out(self, client):
        tokens = sign_up(client).json()["data"]["tokens"]
        response = client.post("/auth/signout", headers=bearer(tokens["accessToken"]))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Signed out successfully"}

    def test_sign_out_requires_token(self, client):
        assert client.post("/auth/signout").status_code == 401
