"""Unit tests for the Redis dispatch lock."""

from uuid import UUID

import pytest

from sepa_billing.services.dispatch_lock import RedisDispatchLock, dispatch_lock_key, new_lock_token


def test_lock_key_is_per_batch():
    batch_id = UUID("0b7d7a3e-9f5c-4f7a-9d57-6d3f4f1f2a10")
    assert dispatch_lock_key(batch_id) == "billing_sync_0b7d7a3e-9f5c-4f7a-9d57-6d3f4f1f2a10"


def test_tokens_are_unique():
    assert new_lock_token() != new_lock_token()


@pytest.mark.asyncio
async def test_second_acquire_fails_until_release(fake_redis):
    lock = RedisDispatchLock(fake_redis)

    assert await lock.try_acquire("billing_sync_x", 300, "t1") is True
    assert await lock.try_acquire("billing_sync_x", 300, "t2") is False
    assert await lock.is_held("billing_sync_x")

    assert await lock.release("billing_sync_x", "t1") is True
    assert not await lock.is_held("billing_sync_x")
    assert await lock.try_acquire("billing_sync_x", 300, "t2") is True


@pytest.mark.asyncio
async def test_acquire_sets_ttl_and_token(fake_redis):
    lock = RedisDispatchLock(fake_redis)
    await lock.try_acquire("billing_sync_y", 300, "token-y")
    assert fake_redis.ttl_of("billing_sync_y") == 300
    assert await fake_redis.get("billing_sync_y") == "token-y"


@pytest.mark.asyncio
async def test_expired_lock_can_be_taken_again(fake_redis):
    lock = RedisDispatchLock(fake_redis)
    await lock.try_acquire("billing_sync_z", 300, "t1")
    fake_redis.expire_now("billing_sync_z")
    assert await lock.try_acquire("billing_sync_z", 300, "t2") is True


@pytest.mark.asyncio
async def test_stale_owner_cannot_release_next_dispatch(fake_redis):
    lock = RedisDispatchLock(fake_redis)
    await lock.try_acquire("billing_sync_s", 300, "first")
    # First run outlives the TTL; a second dispatch takes the lock
    fake_redis.expire_now("billing_sync_s")
    await lock.try_acquire("billing_sync_s", 300, "second")

    assert await lock.release("billing_sync_s", "first") is False
    assert await lock.is_held("billing_sync_s")
    assert await fake_redis.get("billing_sync_s") == "second"


@pytest.mark.asyncio
async def test_release_of_missing_key_is_a_no_op(fake_redis):
    lock = RedisDispatchLock(fake_redis)
    assert await lock.release("billing_sync_none", "t") is False


@pytest.mark.asyncio
async def test_locks_are_independent_per_key(fake_redis):
    lock = RedisDispatchLock(fake_redis)
    assert await lock.try_acquire("billing_sync_a", 300, "t")
    assert await lock.try_acquire("billing_sync_b", 300, "t")
