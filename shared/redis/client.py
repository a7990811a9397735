from dataclasses import dataclass
import json
import os
from typing import Any

import redis.asyncio as redis
import structlog

from shared.contracts.base import BaseMessage, BaseResult

logger = structlog.get_logger(__name__)


@dataclass
class StreamMessage:
    """A message read from a Redis Stream (payload decoded from the ``data`` field)."""

    message_id: str
    data: dict[str, Any]


class RedisStreamClient:
    """Redis Streams transport for the provisioning queue."""

    def __init__(self, redis_url: str | None = None):
        """Initialize Redis client.

        Args:
            redis_url: Redis connection URL. Falls back to REDIS_URL env var.
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        if not self.redis_url:
            raise RuntimeError(
                "Redis URL not provided. Pass redis_url argument or set REDIS_URL env var."
            )
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("redis_connected")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_connection_closed")

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, ensuring connection."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def publish(self, stream: str, data: dict[str, Any]) -> str:
        """Publish a dict to a Redis Stream as a JSON ``data`` field."""
        message_id = await self.redis.xadd(stream, {"data": json.dumps(data)})
        logger.debug("message_published", stream=stream, message_id=message_id)
        return message_id

    async def publish_message(self, stream: str, message: BaseMessage) -> str:
        """Publish a Pydantic DTO to a Redis Stream."""
        return await self.publish(stream, message.model_dump(mode="json"))

    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info("consumer_group_created", stream=stream, group=group)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug("consumer_group_exists", stream=stream, group=group)
            else:
                raise

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        count: int = 1,
    ) -> list[StreamMessage]:
        """Read new messages for a consumer. Messages stay pending until ``ack``."""
        response = await self.redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={stream: ">"},
            count=count,
            block=block_ms,
        )
        messages: list[StreamMessage] = []
        for _stream_name, entries in response or []:
            for message_id, fields in entries:
                try:
                    data = json.loads(fields.get("data", "{}"))
                except json.JSONDecodeError as e:
                    logger.error("message_parse_failed", message_id=message_id, error=str(e))
                    await self.ack(stream, group, message_id)
                    continue
                messages.append(StreamMessage(message_id=message_id, data=data))
        return messages

    async def ack(self, stream: str, group: str, message_id: str) -> None:
        await self.redis.xack(stream, group, message_id)
        logger.debug("message_acked", stream=stream, message_id=message_id)

    async def set_result(self, key: str, result: BaseResult, ttl_seconds: int) -> None:
        """Store a job result under ``key`` with an expiry."""
        await self.redis.set(key, result.model_dump_json(), ex=ttl_seconds)

    async def get_result(self, key: str) -> dict[str, Any] | None:
        raw = await self.redis.get(key)
        return json.loads(raw) if raw else None
