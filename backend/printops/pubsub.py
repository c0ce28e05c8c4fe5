from __future__ import annotations

import json
import os
from contextlib import suppress
from datetime import date, datetime
from typing import Any, AsyncIterator
from uuid import UUID

import redis.asyncio as redis

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None

async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis


def organization_channel(organization_id: str | UUID) -> str:
    return f"organization:{organization_id}"


def _json_default(value: Any) -> Any:
    # purpose: convert datetimes and identifiers to strings for event payloads
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, default=_json_default)


async def publish_organization_event(organization_id: str | UUID, event: dict[str, Any]) -> None:
    # purpose: broadcast task and printer changes to everyone in the organization
    r = await get_redis()
    await r.publish(organization_channel(organization_id), _serialize_event(event))


async def iter_organization_events(organization_id: str | UUID) -> AsyncIterator[str]:
    """Yield organization pub/sub messages as a stream."""

    r = await get_redis()
    channel = organization_channel(organization_id)
    pubsub = r.pubsub()
    await pubsub.subscribe(channel)
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                yield data.decode()
            else:
                yield str(data)
    finally:
        with suppress(Exception):
            await pubsub.unsubscribe(channel)
        with suppress(AttributeError):
            await pubsub.close()
