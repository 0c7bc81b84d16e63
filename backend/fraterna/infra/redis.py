"""Redis connection shared by presence, rate limiting and the change feed.

Modules import the `redis_client` proxy once; tests swap the client behind
it for fakeredis with `set_redis_client`.
"""

from __future__ import annotations

import redis.asyncio as redis

from fraterna.settings import settings


def _connect() -> redis.Redis:
	return redis.from_url(settings.redis_url, decode_responses=True)


class RedisProxy:
	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		# everything not defined here goes to the live client
		return getattr(self._client, item)


redis_client: RedisProxy = RedisProxy(_connect())


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
