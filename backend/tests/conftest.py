import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from floc.domain.users import service as users_service
from floc.infra.auth import AuthenticatedUser
from floc.main import app
from floc.settings import settings

PAYMENT_SECRET = "test_secret"


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from floc.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the settings the engines read at call time."""
	overrides = {
		"environment": "test",
		"connection_write_mode": "transaction",
		"self_heal_edges": True,
		"default_currency": "INR",
		"payment_key_id": "rzp_test_key",
		"payment_key_secret": PAYMENT_SECRET,
		"payment_order_ttl_seconds": 3600,
		"feed_page_size": 20,
		"feed_page_size_max": 100,
	}
	original = {key: getattr(settings, key) for key in overrides}
	for key, value in overrides.items():
		setattr(settings, key, value)
	try:
		yield
	finally:
		for key, value in original.items():
			setattr(settings, key, value)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


@pytest.fixture
def make_user():
	"""Create (or sync) a user document and return the matching actor."""

	async def _make(user_id: str, username: str | None = None) -> AuthenticatedUser:
		actor = AuthenticatedUser(id=user_id, email=f"{user_id}@example.com", username=username)
		await users_service.ensure_user(actor)
		return actor

	return _make


@pytest.fixture
def auth_headers():
	def _headers(actor: AuthenticatedUser) -> dict[str, str]:
		headers = {"X-User-Id": actor.id, "X-User-Email": actor.email}
		if actor.username:
			headers["X-User-Name"] = actor.username
		return headers

	return _headers
