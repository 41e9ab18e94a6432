from redis.asyncio import Redis


def create_redis(redis_url: str) -> Redis:
    """Client for the secondary store. Owned by the caller, closed on shutdown."""
    return Redis.from_url(redis_url, decode_responses=True)


async def close_redis(client: Redis) -> None:
    await client.aclose()
