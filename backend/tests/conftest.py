import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from biodata.api import search as search_api
from biodata.domain.search import models
from biodata.domain.search.service import reset_memory_state
from biodata.infra import postgres
from biodata.main import app
from biodata.settings import settings

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(idx: int, **overrides) -> models.MemoryProfile:
	"""Profile whose updated_at decreases with idx, so idx order is result order."""
	values = {
		"id": f"p{idx:03d}",
		"updated_at": BASE_TIME - timedelta(minutes=idx),
		"full_name": f"Profile {idx}",
		"gender": "FEMALE",
		"age": 28,
		"height_inches": 64,
		"profession": "Software Engineer",
		"workplace": "Acme",
		"education_level": "Bachelor's",
		"resident_country": "India",
		"marital_status": "Never Married",
		"kovil": "Nemam",
		"pirivu": None,
		"native_place": "Karaikudi",
		"interests": ["Music"],
		"about": "Enjoys travel",
	}
	values.update(overrides)
	return models.MemoryProfile(**values)


@pytest.fixture
def profile_factory():
	return make_profile


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from biodata.infra.redis import redis_client, set_redis_client
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
	"""Dev mode (X-User-* headers accepted) on the in-memory candidate source."""
	original_env = settings.environment
	original_backend = settings.search_backend
	settings.environment = "dev"
	settings.search_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.search_backend = original_backend


@pytest_asyncio.fixture(autouse=True)
async def clear_search_state():
	await reset_memory_state()
	search_api.get_service().metadata_cache.invalidate()
	yield
	await reset_memory_state()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
