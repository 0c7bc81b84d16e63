"""Liveness, readiness and startup probes.

Readiness covers what the member map needs to work end to end: Redis for the
change channel and rate limits, Postgres with an up-to-date schema, and a
subscribed change listener.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from fraterna.infra import postgres
from fraterna.infra.redis import redis_client
from fraterna.obs import metrics
from fraterna.settings import settings

LOGGER = logging.getLogger(__name__)

Probe = Dict[str, Any]


async def _timed(check: Callable[[], Awaitable[Any]], timeout: float) -> Tuple[bool, float, Optional[str]]:
	start = perf_counter()
	try:
		await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:
		return False, perf_counter() - start, type(exc).__name__
	return True, perf_counter() - start, None


def _probe(ok: bool, elapsed: float, error: Optional[str]) -> Probe:
	if not ok:
		return {"ok": False, "error": error}
	return {"ok": True, "latency_ms": round(elapsed * 1000, 2)}


async def check_redis(timeout: float = 0.2) -> Probe:
	ok, elapsed, error = await _timed(redis_client.ping, timeout)
	metrics.mark_redis(ok, latency_seconds=elapsed if ok else None)
	if not ok:
		LOGGER.warning("health_redis_failed", extra={"error": error})
	return _probe(ok, elapsed, error)


async def check_postgres(timeout: float = 0.3) -> Probe:
	"""Ping Postgres and compare the newest applied migration with the minimum."""
	latest: Dict[str, Optional[str]] = {"version": None}

	async def _query() -> None:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await conn.execute("SELECT 1")
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
			latest["version"] = str(version) if version is not None else None

	ok, elapsed, error = await _timed(_query, timeout)
	metrics.mark_postgres(ok, latency_seconds=elapsed if ok else None)
	if not ok:
		LOGGER.warning("health_postgres_failed", extra={"error": error})
		return _probe(ok, elapsed, error)
	probe = _probe(ok, elapsed, None)
	current = latest["version"]
	required = settings.health_min_migration
	probe["schema"] = {
		"ok": current is not None and current >= required,
		"version": current,
		"required": required,
	}
	return probe


def check_change_listener(listener: Any) -> Probe:
	if listener is None:
		return {"ok": False, "error": "not_started"}
	return {"ok": listener.subscribed.is_set()}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(listener: Any = None) -> Tuple[int, Dict[str, Any]]:
	redis_state, postgres_state = await asyncio.gather(check_redis(), check_postgres())
	listener_state = check_change_listener(listener)
	ok = bool(
		redis_state["ok"]
		and postgres_state["ok"]
		and postgres_state.get("schema", {}).get("ok")
		and listener_state["ok"]
	)
	checks = {"redis": redis_state, "postgres": postgres_state, "change_listener": listener_state}
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}


async def startup() -> Tuple[int, Dict[str, Any]]:
	if settings.obs_tracing_enabled and not settings.otel_exporter_otlp_endpoint:
		return 503, {"status": "error", "error": "missing_otlp_endpoint"}
	return 200, {"status": "ok"}
