import pytest

from biodata.domain.search.service import memory_source, seed_memory_store
from biodata.infra import jwt as jwt_helper
from biodata.settings import settings

USER_HEADERS = {
	"X-User-Id": "u1",
	"X-User-Role": "USER",
	"X-User-Gender": "MALE",
	"X-User-Kovil": "Mathur",
}


@pytest.mark.asyncio
async def test_search_profiles_endpoint(api_client, profile_factory):
	await seed_memory_store(
		[profile_factory(idx, age=30) for idx in range(21)]
		+ [profile_factory(40, gender="MALE"), profile_factory(41, kovil="Mathur"), profile_factory(42, id="u1")]
	)

	response = await api_client.post(
		"/search/profiles",
		json={"filters": {"minAge": 25, "maxAge": 35, "query": "engineer"}, "page_size": 20},
		headers=USER_HEADERS,
	)
	payload = response.json()

	assert response.status_code == 200
	assert len(payload["profiles"]) == 20
	assert payload["has_next_page"] is True
	assert payload["next_cursor"]
	assert payload["total_count"] == 21
	assert payload["duration_ms"] >= 0
	assert {card["gender"] for card in payload["profiles"]} == {"FEMALE"}
	assert "Mathur||*" not in payload["filters"]["exclude_kovil_pirivu"]
	assert response.headers["X-Request-Id"]

	follow = await api_client.post(
		"/search/profiles",
		json={
			"filters": {"minAge": 25, "maxAge": 35, "query": "engineer"},
			"page": 1,
			"page_size": 20,
			"cursor": payload["next_cursor"],
		},
		headers=USER_HEADERS,
	)
	assert follow.status_code == 200
	assert [card["id"] for card in follow.json()["profiles"]] == ["p020"]


@pytest.mark.asyncio
async def test_default_filters_return_empty_page(api_client, profile_factory):
	await seed_memory_store([profile_factory(0)])

	response = await api_client.post("/search/profiles", json={"filters": {}}, headers=USER_HEADERS)

	assert response.status_code == 200
	assert response.json()["profiles"] == []
	assert memory_source().calls == 0


@pytest.mark.asyncio
async def test_bad_cursor_is_rejected(api_client):
	response = await api_client.post(
		"/search/profiles",
		json={"filters": {"query": "x"}, "cursor": "garbage"},
		headers=USER_HEADERS,
	)

	assert response.status_code == 400
	assert response.json()["detail"] == "bad_cursor"
	assert "request_id" in response.json()


@pytest.mark.asyncio
async def test_source_failure_maps_to_503(api_client, profile_factory):
	await seed_memory_store([profile_factory(0)])
	memory_source().set_failure(OSError("down"))

	response = await api_client.post("/search/profiles", json={"filters": {"query": "x"}}, headers=USER_HEADERS)

	assert response.status_code == 503
	assert response.json()["detail"] == "search_failed"


@pytest.mark.asyncio
async def test_headers_are_ignored_outside_dev(api_client):
	settings.environment = "production"

	response = await api_client.post("/search/profiles", json={"filters": {"query": "x"}}, headers=USER_HEADERS)

	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_bearer_token_carries_the_caller(api_client, profile_factory):
	settings.environment = "production"
	await seed_memory_store(
		[profile_factory(0, gender="MALE", kovil="Mathur"), profile_factory(1, gender="MALE"), profile_factory(2)]
	)
	token = jwt_helper.encode_access("f1", role="USER", gender="FEMALE", kovil="Mathur")

	response = await api_client.post(
		"/search/profiles",
		json={"filters": {"query": "engineer"}},
		headers={"Authorization": f"Bearer {token}"},
	)

	assert response.status_code == 200
	assert [card["id"] for card in response.json()["profiles"]] == ["p001"]


@pytest.mark.asyncio
async def test_invalid_bearer_token_is_rejected(api_client):
	response = await api_client.post(
		"/search/profiles",
		json={"filters": {"query": "x"}},
		headers={"Authorization": "Bearer not-a-jwt"},
	)

	assert response.status_code == 401


@pytest.mark.asyncio
async def test_search_rate_limit(api_client, monkeypatch, profile_factory):
	await seed_memory_store([profile_factory(0)])
	monkeypatch.setattr(settings, "search_per_minute", 2)

	statuses = []
	for _ in range(3):
		response = await api_client.post(
			"/search/profiles", json={"filters": {"query": "engineer"}}, headers=USER_HEADERS
		)
		statuses.append(response.status_code)

	assert statuses == [200, 200, 429]
	assert 1 <= int(response.headers["Retry-After"]) <= settings.rate_limit_window_seconds


@pytest.mark.asyncio
async def test_filter_metadata_endpoint(api_client, profile_factory):
	await seed_memory_store(
		[profile_factory(0, resident_country="India"), profile_factory(1, resident_country="Sri Lanka")]
	)

	response = await api_client.get("/search/filters/metadata", headers=USER_HEADERS)
	payload = response.json()

	assert response.status_code == 200
	assert payload["countries"] == ["India", "Sri Lanka"]
	assert "Never Married" in payload["marital_status"]
	assert len(payload["interests"]) >= 30
	mathur = next(item for item in payload["kovils"] if item["name"] == "Mathur")
	assert "Kannur udaiyar" in mathur["pirivus"]


@pytest.mark.asyncio
async def test_validation_errors_carry_request_id(api_client):
	response = await api_client.post("/search/profiles", json={"page": -1}, headers=USER_HEADERS)

	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"
	assert "request_id" in response.json()


@pytest.mark.asyncio
async def test_health_and_metrics(api_client, monkeypatch):
	live = await api_client.get("/health/live")
	assert live.json() == {"status": "ok"}

	ready = await api_client.get("/health/ready")
	assert ready.status_code == 200

	denied = await api_client.get("/metrics")
	assert denied.status_code == 403

	monkeypatch.setattr(settings, "obs_metrics_public", True)
	metrics = await api_client.get("/metrics")
	assert metrics.status_code == 200
	assert "biodata_search_queries_total" in metrics.text
