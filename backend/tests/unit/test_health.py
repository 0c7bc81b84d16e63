import asyncio
from contextlib import asynccontextmanager

import pytest

from fraterna.infra import postgres
from fraterna.obs import health


class FakeConnection:
	def __init__(self, version):
		self.version = version

	async def execute(self, query):
		return "SELECT 1"

	async def fetchval(self, query):
		return self.version


class FakePool:
	def __init__(self, version="0001"):
		self.conn = FakeConnection(version)

	@asynccontextmanager
	async def acquire(self):
		yield self.conn


class Listener:
	def __init__(self, subscribed: bool):
		self.subscribed = asyncio.Event()
		if subscribed:
			self.subscribed.set()


def _use_pool(monkeypatch, pool):
	async def _get_pool():
		return pool

	monkeypatch.setattr(postgres, "get_pool", _get_pool)


@pytest.mark.asyncio
async def test_readiness_ok_when_everything_is_up(monkeypatch):
	_use_pool(monkeypatch, FakePool("0001"))
	code, payload = await health.readiness(Listener(subscribed=True))
	assert code == 200
	assert payload["status"] == "ok"
	assert payload["checks"]["postgres"]["schema"] == {"ok": True, "version": "0001", "required": "0001"}


@pytest.mark.asyncio
async def test_readiness_degraded_without_listener(monkeypatch):
	_use_pool(monkeypatch, FakePool("0001"))
	code, payload = await health.readiness(None)
	assert code == 503
	assert payload["checks"]["change_listener"] == {"ok": False, "error": "not_started"}


@pytest.mark.asyncio
async def test_readiness_degraded_when_listener_not_subscribed(monkeypatch):
	_use_pool(monkeypatch, FakePool("0001"))
	code, _ = await health.readiness(Listener(subscribed=False))
	assert code == 503


@pytest.mark.asyncio
async def test_readiness_flags_missing_schema(monkeypatch):
	_use_pool(monkeypatch, FakePool(None))
	code, payload = await health.readiness(Listener(subscribed=True))
	assert code == 503
	assert payload["checks"]["postgres"]["schema"]["ok"] is False


@pytest.mark.asyncio
async def test_postgres_failure_is_reported(monkeypatch):
	async def _broken():
		raise ConnectionRefusedError("down")

	monkeypatch.setattr(postgres, "get_pool", _broken)
	probe = await health.check_postgres()
	assert probe == {"ok": False, "error": "ConnectionRefusedError"}


@pytest.mark.asyncio
async def test_liveness():
	assert await health.liveness() == {"status": "ok"}
