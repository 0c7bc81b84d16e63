"""Fixed-window Redis rate limiting.

One counter per (kind, actor, window slot). The counter expires with its
window so an idle actor costs nothing.
"""

from __future__ import annotations

import time
from typing import Optional

from fraterna.infra.redis import redis_client


class RateLimitExceeded(Exception):
	"""Raised when an actor has spent its budget for the current window."""

	reason = "rate_limited"


def window_key(kind: str, actor_id: str, window_seconds: int, now: float) -> str:
	window = max(1, int(window_seconds))
	return f"rl:{kind}:{actor_id}:{int(now // window)}:{window}"


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Count one hit and report whether it fits in the budget."""
	if limit <= 0:
		return False
	key = window_key(kind, actor_id, window_seconds, time.time() if now is None else now)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, max(1, int(window_seconds)))
		count, _ = await pipe.execute()
	return int(count) <= limit


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> None:
	if not await allow(kind, actor_id, limit=limit, window_seconds=window_seconds):
		raise RateLimitExceeded(kind)
