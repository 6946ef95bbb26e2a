"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"biodata_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"biodata_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SEARCH_QUERIES = Counter(
	"biodata_search_queries_total",
	"Search queries executed",
	["kind"],
)

SEARCH_LATENCY = Histogram(
	"biodata_search_latency_seconds",
	"Search latency in seconds",
	["kind"],
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)

SEARCH_FAILURES = Counter(
	"biodata_search_failures_total",
	"Searches that ended in a candidate source failure",
	["reason"],
)

SEARCH_UPSTREAM_BATCHES = Counter(
	"biodata_search_upstream_batches_total",
	"Candidate batches requested from the source",
)

SEARCH_BACKFILL_BATCHES = Histogram(
	"biodata_search_backfill_batches",
	"Extra batches needed to fill one page after post-filtering",
	buckets=(0, 1, 2, 3, 4, 5, 6),
)

SEARCH_RESULTS = Gauge(
	"biodata_search_results_last",
	"Rows returned by the most recent page",
)

METADATA_CACHE = Counter(
	"biodata_filter_metadata_cache_total",
	"Filter metadata cache lookups",
	["result"],
)

RATE_LIMITED = Counter(
	"biodata_rate_limited_total",
	"Requests rejected by the rate limiter",
	["kind"],
)

REDIS_UP = Gauge(
	"biodata_redis_up",
	"Redis availability as seen by the API",
)

POSTGRES_UP = Gauge(
	"biodata_postgres_up",
	"Postgres availability as seen by the API",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_search_query(kind: str) -> None:
	SEARCH_QUERIES.labels(kind=kind).inc()


def observe_search_latency(kind: str, latency_seconds: float) -> None:
	SEARCH_LATENCY.labels(kind=kind).observe(latency_seconds)


def inc_search_failure(reason: str) -> None:
	SEARCH_FAILURES.labels(reason=reason).inc()


def record_page(*, batches: int, returned: int) -> None:
	SEARCH_UPSTREAM_BATCHES.inc(batches)
	SEARCH_BACKFILL_BATCHES.observe(max(0, batches - 1))
	SEARCH_RESULTS.set(returned)


def inc_metadata_cache(result: str) -> None:
	METADATA_CACHE.labels(result=result).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED.labels(kind=kind).inc()


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
