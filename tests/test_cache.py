"""Tests for the catalog cache."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from scoop.core.cache import CatalogCache

DAY = date(2025, 10, 17)


class TestCatalogCache:
    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        cache = CatalogCache(ttl_seconds=60)
        fetcher = AsyncMock(return_value={"events": [1, 2]})

        assert await cache.get_or_fetch("events", DAY, fetcher) == {"events": [1, 2]}
        assert await cache.get_or_fetch("events", DAY, fetcher) == {"events": [1, 2]}
        assert fetcher.await_count == 1

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        cache = CatalogCache(ttl_seconds=60)
        with patch("scoop.core.cache.time.monotonic", return_value=1000.0):
            await cache.set("weather", DAY, [1])
        with patch("scoop.core.cache.time.monotonic", return_value=1059.0):
            assert await cache.get("weather", DAY) == [1]
        with patch("scoop.core.cache.time.monotonic", return_value=1060.0):
            assert await cache.get("weather", DAY) is None

    @pytest.mark.asyncio
    async def test_keys_are_per_namespace_and_date(self):
        cache = CatalogCache(ttl_seconds=60)
        await cache.set("weather", DAY, "a")
        assert await cache.get("events", DAY) is None
        assert await cache.get("weather", date(2025, 10, 18)) is None

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_cache(self):
        cache = CatalogCache(ttl_seconds=0)
        fetcher = AsyncMock(return_value=[1])

        await cache.get_or_fetch("events", DAY, fetcher)
        await cache.get_or_fetch("events", DAY, fetcher)

        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self):
        cache = CatalogCache(ttl_seconds=60)
        fetcher = AsyncMock(return_value=None)

        await cache.get_or_fetch("weather", DAY, fetcher)
        await cache.get_or_fetch("weather", DAY, fetcher)

        assert fetcher.await_count == 2
