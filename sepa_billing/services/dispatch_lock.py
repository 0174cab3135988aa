"""TTL-bounded, non-blocking mutual exclusion for billing dispatch."""

from uuid import UUID, uuid4

from sepa_billing.core.logging import get_logger

logger = get_logger(__name__)

# Delete the key only while it still holds the caller's token
RELEASE_SCRIPT = (
    "if redis.call('GET', KEYS[1]) == ARGV[1] then \n"
    "  return redis.call('DEL', KEYS[1]) \n"
    "end \n"
    "return 0"
)


def dispatch_lock_key(batch_id: UUID) -> str:
    return f"billing_sync_{batch_id}"


def new_lock_token() -> str:
    return uuid4().hex


class RedisDispatchLock:
    """
    Atomic "set if absent, with expiry" on a Redis key.

    The key lives in Redis rather than process memory because sync requests
    for one batch can land on different API processes, and the worker that
    runs the billing job is the one that releases it. The stored value is a
    per-dispatch token: a job that outlived the TTL cannot release the lock
    of the dispatch that followed it.
    """

    def __init__(self, client):
        self.client = client

    async def try_acquire(self, key: str, ttl_seconds: int, token: str) -> bool:
        acquired = await self.client.set(key, token, ex=ttl_seconds, nx=True)
        if acquired:
            logger.debug("Dispatch lock acquired", extra={"lock_key": key, "ttl": ttl_seconds})
        return bool(acquired)

    async def release(self, key: str, token: str) -> bool:
        """Compare-and-delete; False when the key expired or belongs to another dispatch."""
        released = bool(await self.client.eval(RELEASE_SCRIPT, 1, key, token))
        if released:
            logger.debug("Dispatch lock released", extra={"lock_key": key})
        else:
            logger.warning("Dispatch lock no longer owned, left in place", extra={"lock_key": key})
        return released

    async def is_held(self, key: str) -> bool:
        return bool(await self.client.exists(key))
