import asyncio
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("ENV", "dev")

from fraterna.domain.proximity import sockets as map_sockets
from fraterna.infra import postgres
from fraterna.main import app
from fraterna.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from fraterna.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id headers, which are only accepted in dev mode.
	"""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env
		map_sockets.set_namespace(None)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


MEMBER_ID = "11111111-1111-1111-1111-111111111111"


@pytest.fixture
def member_profile():
	from fraterna.domain.members.models import MemberProfile, VerificationStatus

	return MemberProfile(
		id=MEMBER_ID,
		email="h.juan@example.org",
		full_name="Juan Pérez",
		city="Madrid",
		country="ES",
		lodge="Logia Minerva",
		is_verified=True,
		verification_status=VerificationStatus.VERIFIED,
	)


@pytest.fixture
def signed_in(monkeypatch, member_profile):
	"""Serve ``member_profile`` for every member lookup. Returns the auth headers."""
	from fraterna.domain.members import service as members_service

	async def fake_get_member(user_id):
		return member_profile if user_id == member_profile.id else None

	monkeypatch.setattr(members_service, "get_member", fake_get_member)
	return {"X-User-Id": member_profile.id}
