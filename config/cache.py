# config/cache.py
import logging
from typing import Optional
from redis.asyncio import Redis, from_url
from config.settings import settings

_client: Optional[Redis] = None
_log = logging.getLogger(__name__)


async def get_redis(url: Optional[str] = None) -> Redis:
    """Process-wide ledger connection, created once in the app lifespan."""
    global _client
    if _client is None:
        client = from_url(
            url or settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=False,  # the ledger decodes its own hashes
            socket_keepalive=True,
            health_check_interval=30,
        )
        # Fail fast on startup if Redis is unreachable.
        await client.ping()
        _client = client
        _log.info("redis.connected")
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
