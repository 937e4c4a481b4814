"""Redis pub/sub broadcaster for bus marker updates."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from transit_tracker.config import settings

logger = logging.getLogger(__name__)

CHANNEL = "transit:buses"
STATE_KEY = "transit:buses:state"


class Broadcaster:
    """Publishes bus snapshots to Redis and fans them out to WebSocket subscribers."""

    def __init__(self, redis_url: str | None = None) -> None:
        self._redis_url = settings.redis_url if redis_url is None else redis_url
        self._redis: aioredis.Redis | None = None
        self._subscribers: set[asyncio.Queue] = set()
        # Last payload, served when Redis is down or not configured
        self._last_payload: bytes | None = None

    async def connect(self) -> None:
        """Attach to Redis; without it snapshots are served from memory only."""
        if not self._redis_url:
            logger.info("No Redis URL configured; broadcasting in-process only")
            return
        client = aioredis.from_url(self._redis_url, decode_responses=False)
        try:
            await client.ping()
        except (aioredis.ConnectionError, aioredis.TimeoutError, OSError) as e:
            logger.warning(
                "Redis at %s unreachable (%s); broadcasting in-process only",
                self._redis_url, e,
            )
            await client.aclose()
            return
        self._redis = client

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, snapshot: dict) -> None:
        """Store the snapshot and push it to every subscriber."""
        payload = orjson.dumps(snapshot)
        self._last_payload = payload

        if self._redis:
            try:
                await self._redis.set(STATE_KEY, payload)
                await self._redis.publish(CHANNEL, payload)
            except Exception:
                logger.exception("Failed to publish to Redis")

        # Drop subscribers that stopped draining their queue
        dead = set()
        for q in self._subscribers:
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                dead.add(q)
        if dead:
            logger.info("Dropping %d stalled subscribers", len(dead))
        self._subscribers -= dead

    async def get_current_state(self) -> bytes | None:
        """Latest published snapshot, from Redis when available."""
        if self._redis:
            try:
                data = await self._redis.get(STATE_KEY)
                if data:
                    return data
            except Exception:
                logger.exception("Failed to get state from Redis")
        return self._last_payload

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
