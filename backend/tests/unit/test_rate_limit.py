import pytest

from biodata.infra import rate_limit
from biodata.settings import settings

NOW = 1_700_000_010.0


@pytest.mark.asyncio
async def test_quota_counts_down_within_window(fake_redis):
    first = await rate_limit.consume("search", "u5", limit=2, window_seconds=60, now=NOW)
    second = await rate_limit.consume("search", "u5", limit=2, window_seconds=60, now=NOW + 1)
    third = await rate_limit.consume("search", "u5", limit=2, window_seconds=60, now=NOW + 2)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert (third.allowed, third.remaining) == (False, 0)
    assert third.retry_after == 28


@pytest.mark.asyncio
async def test_quota_resets_in_next_window(fake_redis):
    await rate_limit.consume("metadata", "u6", limit=1, window_seconds=60, now=NOW)
    assert not (await rate_limit.consume("metadata", "u6", limit=1, window_seconds=60, now=NOW)).allowed

    later = await rate_limit.consume("metadata", "u6", limit=1, window_seconds=60, now=NOW + 60)
    assert later.allowed


@pytest.mark.asyncio
async def test_quota_kinds_are_counted_separately(fake_redis):
    await rate_limit.consume("search", "u7", limit=1, now=NOW)
    assert (await rate_limit.consume("metadata", "u7", limit=1, now=NOW)).allowed


@pytest.mark.asyncio
async def test_window_defaults_to_settings(fake_redis, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_window_seconds", 10)
    decision = await rate_limit.consume("search", "u8", limit=5, now=NOW + 3)

    assert decision.retry_after == 7
    assert await fake_redis.ttl("biodata:quota:search:10:u8:170000001") == 10


@pytest.mark.asyncio
async def test_zero_limit_is_always_refused(fake_redis):
    decision = await rate_limit.consume("search", "u9", limit=0, now=NOW)
    assert not decision.allowed
    assert await fake_redis.keys("biodata:quota:*") == []
