"""Shared Redis client.

Every module imports the same ``redis_client`` proxy. Tests swap the client
behind it for ``fakeredis`` with :func:`set_redis_client`, and references
imported earlier keep working.
"""

from __future__ import annotations

import redis.asyncio as redis

from floc.settings import settings


class RedisProxy:
	"""Forwards attribute access to the current underlying client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def __getattr__(self, item):
		return getattr(self._client, item)


redis_client: RedisProxy = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
