import asyncio
import json
from datetime import datetime, timezone

import pytest

from biodata.domain.search import models, policy, schemas
from biodata.domain.search import service as search_service
from biodata.domain.search.filters import normalize_filters
from biodata.domain.search.policy import CallerContext
from biodata.domain.search.service import (
	SearchService,
	decode_cursor,
	encode_cursor,
	memory_source,
	seed_memory_store,
)
from biodata.domain.search.source import (
	CandidateQuery,
	CandidateSourceError,
	MemoryCandidateSource,
	PostgresCandidateSource,
	SourceCapabilities,
)
from biodata.settings import settings

CALLER = CallerContext.from_identity(user_id="u1", role="USER", gender="MALE", kovil="Mathur")


class _FakeConn:
	def __init__(self, records=None, error=None, value=None):
		self.records = records or []
		self.error = error
		self.value = value
		self.sql = None
		self.args = ()

	async def fetch(self, sql, *args):
		self.sql = sql
		self.args = args
		if self.error is not None:
			raise self.error
		return self.records

	async def fetchval(self, sql):
		self.sql = sql
		if self.error is not None:
			raise self.error
		return self.value


class _Acquire:
	def __init__(self, conn):
		self._conn = conn

	async def __aenter__(self):
		return self._conn

	async def __aexit__(self, *exc):
		return False


class _FakePool:
	def __init__(self, conn):
		self.conn = conn

	def acquire(self):
		return _Acquire(self.conn)


def _record(idx, **overrides):
	values = {
		"id": f"r{idx}",
		"updated_at": datetime(2024, 5, 1, 12, idx, tzinfo=timezone.utc),
		"full_name": f"Row {idx}",
		"gender": "female",
		"age": 29,
		"height_inches": 63,
		"education_level": "Master's",
		"interests": ["Music"],
	}
	values.update(overrides)
	return values


@pytest.mark.asyncio
async def test_default_filters_never_reach_the_source(profile_factory):
	await seed_memory_store([profile_factory(0)])
	service = SearchService()

	result = await service.search({}, 0, 20, None, CALLER)

	assert result.profiles == []
	assert not result.has_next_page
	assert not result.failed
	assert memory_source().calls == 0


@pytest.mark.asyncio
async def test_page_size_is_clamped(profile_factory):
	await seed_memory_store([profile_factory(0)])
	service = SearchService()

	await service.search({"query": "engineer"}, 0, 500, None, CALLER)
	await service.search({"query": "engineer"}, 0, 0, None, CALLER)

	assert memory_source().queries[0].batch_size == settings.search_max_page_size + 1
	assert memory_source().queries[1].batch_size == 2


@pytest.mark.asyncio
async def test_worked_example_through_service(profile_factory):
	await seed_memory_store(
		[profile_factory(idx, age=27) for idx in range(21)]
		+ [profile_factory(50, gender="MALE"), profile_factory(51, kovil="Mathur")]
	)
	service = SearchService()

	result = await service.search({"minAge": 25, "maxAge": 35, "query": "engineer"}, 0, 20, None, CALLER)

	assert len(result.profiles) == 20
	assert result.has_next_page
	assert {row.gender for row in result.profiles} == {"FEMALE"}
	assert "p051" not in [row.id for row in result.profiles]


def test_cursor_tokens_round_trip_and_reject_garbage():
	cursor = models.Cursor(updated_at=datetime(2024, 5, 1, tzinfo=timezone.utc), id="p001")
	assert decode_cursor(encode_cursor(cursor)) == cursor

	for bad in ("not-base64!", "e30=", "W10="):
		with pytest.raises(policy.SearchPolicyError) as excinfo:
			decode_cursor(bad)
		assert excinfo.value.status_code == 400
		assert excinfo.value.detail == "bad_cursor"


@pytest.mark.asyncio
async def test_search_profiles_pages_with_opaque_cursor(profile_factory):
	await seed_memory_store(profile_factory(idx) for idx in range(5))
	service = SearchService()

	first = await service.search_profiles(
		CALLER, schemas.SearchProfilesRequest(filters={"query": "engineer"}, page_size=3)
	)
	assert [card.id for card in first.profiles] == ["p000", "p001", "p002"]
	assert first.has_next_page
	assert first.total_count == 4
	assert first.filters["query"] == "engineer"

	second = await service.search_profiles(
		CALLER,
		schemas.SearchProfilesRequest(filters={"query": "engineer"}, page=1, page_size=3, cursor=first.next_cursor),
	)
	assert [card.id for card in second.profiles] == ["p003", "p004"]
	assert second.next_cursor is None
	assert second.total_count == 5


@pytest.mark.asyncio
async def test_search_profiles_reports_source_failure(profile_factory):
	await seed_memory_store([profile_factory(0)])
	memory_source().set_failure(asyncio.TimeoutError())
	service = SearchService()

	with pytest.raises(policy.SearchPolicyError) as excinfo:
		await service.search_profiles(CALLER, schemas.SearchProfilesRequest(filters={"query": "x"}))

	assert excinfo.value.status_code == 503
	assert excinfo.value.detail == "search_failed"


@pytest.mark.asyncio
async def test_search_profiles_is_rate_limited(monkeypatch, profile_factory):
	await seed_memory_store([profile_factory(0)])
	monkeypatch.setattr(settings, "search_per_minute", 1)
	service = SearchService()
	request = schemas.SearchProfilesRequest(filters={"query": "engineer"})

	await service.search_profiles(CALLER, request)
	with pytest.raises(policy.SearchRateLimitError):
		await service.search_profiles(CALLER, request)


@pytest.mark.asyncio
async def test_unreachable_database_is_a_search_failure(monkeypatch, profile_factory):
	await seed_memory_store([profile_factory(0)])
	monkeypatch.setattr(settings, "search_backend", "postgres")
	attempts = 0

	async def _refused():
		nonlocal attempts
		attempts += 1
		raise OSError("connection refused")

	monkeypatch.setattr(search_service, "get_pool", _refused)
	service = SearchService()

	first = await service.search({"query": "engineer"}, 0, 20, None, CALLER)
	second = await service.search({"query": "engineer"}, 0, 20, None, CALLER)

	assert first.failed and second.failed
	assert first.profiles == []
	assert first.error == "search_failed"
	assert attempts == 2
	assert memory_source().calls == 0
	with pytest.raises(CandidateSourceError):
		await service.resolve_source()

	metadata = await service.filter_metadata()
	assert not metadata.from_source

	with pytest.raises(policy.SearchPolicyError) as excinfo:
		await service.search_profiles(CALLER, schemas.SearchProfilesRequest(filters={"query": "engineer"}))
	assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_open_session_is_bound_to_the_service(profile_factory):
	await seed_memory_store(profile_factory(idx) for idx in range(2))
	session = SearchService().open_session(CALLER, initial_filters={"query": "engineer"})

	await session.search_on_mount()

	assert [row.id for row in session.profiles] == ["p000", "p001"]
	assert session.page_size == settings.search_page_size


@pytest.mark.asyncio
async def test_postgres_source_calls_the_procedure_with_named_params():
	conn = _FakeConn(records=[_record(2), _record(1)])
	source = PostgresCandidateSource(_FakePool(conn))
	cursor = models.Cursor(updated_at=datetime(2024, 5, 1, 13, tzinfo=timezone.utc), id="r9")
	query = CandidateQuery(
		filters=normalize_filters({"query": "doc", "countries": ["India"], "education": ["Master's"]}),
		exclusions=("Mathur||*",),
		forced_gender="FEMALE",
		exclude_user_id="u1",
		batch_size=21,
		cursor=cursor,
	)

	rows = await source.fetch_batch(query)

	assert [row.id for row in rows] == ["r2", "r1"]
	assert rows[0].gender == "FEMALE"
	assert conn.sql.startswith("SELECT * FROM search_profile_cards_v1(p_query => $1, p_min_age => $2")
	assert "p_educations" not in conn.sql
	params = query.to_rpc_params(source.capabilities)
	assert list(conn.args) == list(params.values())
	assert params["p_countries"] == ["India"]
	assert params["p_cursor_id"] == "r9"
	assert params["p_page_size"] == 21


def test_rpc_params_include_optional_filters_when_supported():
	query = CandidateQuery(filters=normalize_filters({"interests": ["Chess"]}))
	params = query.to_rpc_params(SourceCapabilities(education=True, interests=True))
	assert params["p_interests"] == ["Chess"]
	assert params["p_educations"] is None
	assert params["p_query"] is None
	assert params["p_exclude_kovil_pirivu"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [OSError("refused"), asyncio.TimeoutError()])
async def test_postgres_source_wraps_transport_errors(error):
	source = PostgresCandidateSource(_FakePool(_FakeConn(error=error)))

	with pytest.raises(CandidateSourceError):
		await source.fetch_batch(CandidateQuery(filters=normalize_filters({"query": "x"})))


@pytest.mark.asyncio
async def test_postgres_source_rejects_malformed_rows():
	source = PostgresCandidateSource(_FakePool(_FakeConn(records=[_record(1), {"id": None}])))

	with pytest.raises(CandidateSourceError) as excinfo:
		await source.fetch_batch(CandidateQuery(filters=normalize_filters({"query": "x"})))
	assert excinfo.value.reason == "malformed_row"


@pytest.mark.asyncio
async def test_postgres_source_decodes_metadata_json():
	payload = {"countries": ["India"], "education": ["Master's"]}
	source = PostgresCandidateSource(_FakePool(_FakeConn(value=json.dumps(payload))))

	assert await source.fetch_filter_metadata() == payload


@pytest.mark.asyncio
async def test_memory_upsert_moves_profile_to_the_front(profile_factory):
	source = MemoryCandidateSource()
	await source.seed(profile_factory(idx) for idx in range(3))
	await source.upsert(profile_factory(2), touched_at=datetime(2030, 1, 1, tzinfo=timezone.utc))

	rows = await source.fetch_batch(CandidateQuery(filters=normalize_filters({"query": "acme"}), batch_size=3))

	assert [row.id for row in rows] == ["p002", "p000", "p001"]
