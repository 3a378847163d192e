"""Redis client configuration and the reminder dispatch queue."""

import json
from datetime import datetime
from typing import Any

import redis
import structlog

from clinic_scheduler.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class RedisReminderQueue:
    """
    Reminder dispatch queue stored in a Redis sorted set.

    Members are JSON documents scored by the epoch seconds of their send
    time, so a dispatcher can pop everything due with ``ZRANGEBYSCORE``.
    Delivery itself (email/SMS) belongs to the dispatcher.
    """

    def __init__(self, redis_client: redis.Redis, key: str | None = None):
        """Initialize queue with Redis client and sorted set key."""
        self.redis = redis_client
        self.key = key or settings.reminder_queue_key

    def enqueue(
        self,
        recipient: str,
        channel: str,
        scheduled_for: datetime,
        payload: dict[str, Any],
    ) -> None:
        """
        Add a reminder to the queue.

        Args:
            recipient: Email address or phone number
            channel: Delivery channel (email, sms)
            scheduled_for: When the reminder should be sent
            payload: Reminder details (ids, kind)

        Raises:
            redis.RedisError: If the queue is unreachable
        """
        member = json.dumps(
            {
                "recipient": recipient,
                "channel": channel,
                "scheduled_for": scheduled_for.isoformat(),
                "payload": payload,
            },
            default=str,
            sort_keys=True,
        )
        self.redis.zadd(self.key, {member: scheduled_for.timestamp()})
        logger.debug(
            "reminder_enqueued",
            channel=channel,
            scheduled_for=scheduled_for.isoformat(),
        )

    def due(self, until: datetime) -> list[dict[str, Any]]:
        """
        Return queued reminders whose send time is at or before ``until``.

        Args:
            until: Upper bound on send time

        Returns:
            Decoded queue entries, earliest first
        """
        members = self.redis.zrangebyscore(self.key, "-inf", until.timestamp())
        return [json.loads(member) for member in members]
