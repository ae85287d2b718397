from __future__ import annotations
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

LOCK_PREFIX = "reseller_ledger:lock:"


def lock_key(name: str) -> str:
    return name if name.startswith(LOCK_PREFIX) else f"{LOCK_PREFIX}{name}"


def _client() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=5)


@contextmanager
def redis_lock(name: str, ttl_seconds: int = 120) -> Iterator[bool]:
    """SET NX EX lock around periodic jobs.

    Yields False when another worker holds the lock or redis cannot be
    reached; the caller skips its run in both cases.
    """
    key = lock_key(name)
    token = uuid.uuid4().hex
    c = _client()
    try:
        acquired = bool(c.set(key, token, nx=True, ex=max(1, int(ttl_seconds))))
    except redis.RedisError as e:
        logger.warning("lock acquire failed key=%s err=%s", key, str(e)[:200])
        acquired = False
    try:
        yield acquired
    finally:
        if acquired:
            # the key may have expired and been taken by another worker
            try:
                if c.get(key) == token:
                    c.delete(key)
            except redis.RedisError as e:
                logger.warning("lock release failed key=%s err=%s", key, str(e)[:200])
