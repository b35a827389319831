"""
Tests for core helpers: webhook event claims, tokens, limiter storage and
engine options.
"""
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core import redis_client
from app.core.database import engine_options
from app.core.rate_limit import MEMORY_STORAGE, limiter_storage_uri
from app.core.redis_client import claim_webhook_event, release_webhook_event
from app.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    hash_token,
    verify_password,
)


class TestWebhookClaims:

    @pytest.mark.asyncio
    async def test_claim_is_a_single_set_nx(self):
        client = AsyncMock()
        client.set.return_value = True

        with patch.object(redis_client, "get_redis", new=AsyncMock(return_value=client)):
            assert await claim_webhook_event("stripe:evt_1") is True

        client.set.assert_awaited_once_with("webhook:event:stripe:evt_1", "1", nx=True, ex=24 * 3600)
        client.exists.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_claim_loses(self):
        client = AsyncMock()
        client.set.return_value = None

        with patch.object(redis_client, "get_redis", new=AsyncMock(return_value=client)):
            assert await claim_webhook_event("stripe:evt_1") is False

    @pytest.mark.asyncio
    async def test_claim_without_redis_processes(self):
        with patch.object(redis_client, "get_redis", new=AsyncMock(return_value=None)):
            assert await claim_webhook_event("paypal:WH-1") is True
            assert await release_webhook_event("paypal:WH-1") is False

    @pytest.mark.asyncio
    async def test_claim_survives_redis_error(self):
        client = AsyncMock()
        client.set.side_effect = ConnectionError("redis down")

        with patch.object(redis_client, "get_redis", new=AsyncMock(return_value=client)):
            assert await claim_webhook_event("stripe:evt_2") is True

    @pytest.mark.asyncio
    async def test_release_deletes_key(self):
        client = AsyncMock()

        with patch.object(redis_client, "get_redis", new=AsyncMock(return_value=client)):
            assert await release_webhook_event("amazon_pay:N-1") is True

        client.delete.assert_awaited_once_with("webhook:event:amazon_pay:N-1")


class TestTokens:

    def test_access_token_round_trip(self):
        assert decode_token(create_access_token(7)) == 7

    def test_refresh_token_needs_refresh_type(self):
        token = create_refresh_token(7)

        assert decode_token(token) is None
        assert decode_token(token, REFRESH_TOKEN) == 7

    def test_expired_token(self):
        assert decode_token(create_access_token(7, expires_delta=timedelta(seconds=-5))) is None

    def test_tokens_are_unique(self):
        assert create_refresh_token(7) != create_refresh_token(7)

    def test_password_hash(self):
        hashed = get_password_hash("hunter22")

        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)

    def test_token_digest_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != "abc"


class TestLimiterStorage:

    def test_redis_url_shares_counters(self):
        assert limiter_storage_uri("redis://cache:6379/0") == "redis://cache:6379/0"

    def test_no_redis_uses_memory(self):
        assert limiter_storage_uri("") == MEMORY_STORAGE


class TestEngineOptions:

    def test_sqlite_uses_driver_defaults(self):
        assert engine_options("sqlite+aiosqlite:///:memory:", "production") == {}

    def test_production_pool(self):
        options = engine_options("postgresql+asyncpg://db/quill", "production")

        assert options["pool_pre_ping"] is True
        assert options["pool_recycle"] == 3600

    def test_development_pool_is_small(self):
        assert engine_options("postgresql+asyncpg://db/quill", "development")["pool_size"] == 2
