"""
Redis client utilities for basecore.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools

import redis

from basecore.settings import get_settings


@functools.lru_cache()
def get_redis_url() -> str:
    """Get Redis URL from settings."""
    return get_settings().REDIS_URL


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    This function lazily initializes the Redis client to avoid import-time connections.
    """
    url = get_redis_url()
    return redis.from_url(url, decode_responses=True)


def publish_to_channel(channel: str, message: str, client: redis.Redis | None = None) -> int:
    """
    Publish a message on a Redis pub/sub channel.

    Pub/sub is fire-and-forget: subscribers that are not connected
    at publish time never see the message.

    Args:
        channel: Channel name
        message: Message payload
        client: Redis client (defaults to the cached client)

    Returns:
        Number of subscribers that received the message
    """
    client = client or get_redis_client()
    return client.publish(channel, message)


def subscribe(channel: str, client: redis.Redis | None = None) -> redis.client.PubSub:
    """
    Open a pub/sub subscription on a channel.

    Args:
        channel: Channel name
        client: Redis client (defaults to the cached client)

    Returns:
        PubSub object already subscribed to the channel
    """
    client = client or get_redis_client()
    pubsub = client.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(channel)
    return pubsub
