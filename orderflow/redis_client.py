import json

import redis.asyncio as redis

from orderflow.config import settings

_redis: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


class RedisConnectionRegistry:
    """
    Live channel publisher. The connection layer subscribes each login session to
    <prefix><user_id>; this side only PUBLISHes and never looks at subscribers.
    """

    def __init__(self, client: redis.Redis, prefix: str | None = None):
        self._client = client
        self._prefix = settings.notification_channel_prefix if prefix is None else prefix

    def channel_for(self, recipient_id: str) -> str:
        return f"{self._prefix}{recipient_id}"

    async def publish(self, recipient_id: str, payload: dict) -> None:
        # PUBLISH returns the subscriber count; zero just means the recipient is offline
        await self._client.publish(self.channel_for(recipient_id), json.dumps(payload, default=str))
