"""
Authentication API tests: register, login, refresh rotation, logout.
"""
import pytest


REGISTER = {"email": "Reader@Example.com", "password": "correct-horse", "first_name": "Sam"}


class TestRegisterAndLogin:

    @pytest.mark.asyncio
    async def test_register_returns_tokens(self, client):
        response = await client.post("/api/auth/register", json=REGISTER)

        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "reader@example.com"
        assert data["user"]["role"] == "member"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client):
        await client.post("/api/auth/register", json=REGISTER)
        response = await client.post("/api/auth/register", json=REGISTER)

        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, client):
        response = await client.post(
            "/api/auth/register", json={"email": "a@example.com", "password": "short"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_login_and_me(self, client, make_user):
        await make_user(email="login@example.com", password="password123")

        response = await client.post(
            "/api/auth/login", json={"email": "login@example.com", "password": "password123"}
        )
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "login@example.com"
        assert me.json()["last_login_at"] is not None

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, make_user):
        await make_user(email="login@example.com", password="password123")

        response = await client.post(
            "/api/auth/login", json={"email": "login@example.com", "password": "nope-nope"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_disabled_account(self, client, make_user):
        await make_user(email="off@example.com", password="password123", is_active=False)

        response = await client.post(
            "/api/auth/login", json={"email": "off@example.com", "password": "password123"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is disabled"

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401


class TestRefreshTokens:

    @pytest.mark.asyncio
    async def test_refresh_rotates(self, client):
        tokens = (await client.post("/api/auth/register", json=REGISTER)).json()

        response = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        rotated = response.json()
        assert rotated["refresh_token"] != tokens["refresh_token"]

        reused = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, client):
        tokens = (await client.post("/api/auth/register", json=REGISTER)).json()

        response = await client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_logout_revokes(self, client):
        tokens = (await client.post("/api/auth/register", json=REGISTER)).json()

        response = await client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 204

        refreshed = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401


class TestLoginCartMerge:

    @pytest.mark.asyncio
    async def test_guest_cart_follows_login(self, client, make_user, make_product):
        await make_user(email="shopper@example.com", password="password123")
        product = await make_product()
        guest = {"x-session-id": "guest-abc"}

        added = await client.post(
            "/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=guest
        )
        assert added.status_code == 201

        login = await client.post(
            "/api/auth/login",
            json={"email": "shopper@example.com", "password": "password123"},
            headers=guest,
        )
        token = login.json()["access_token"]

        cart = await client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})
        assert cart.json()["item_count"] == 2

        guest_cart = await client.get("/api/cart", headers=guest)
        assert guest_cart.json()["items"] == []
