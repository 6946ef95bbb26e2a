"""Profile search service: source resolution, pagination and HTTP payloads."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from typing import Any, Iterable, Optional

import asyncpg

from biodata.domain.search import filters as search_filters
from biodata.domain.search import models, policy, schemas
from biodata.domain.search.metadata import FilterMetadata, FilterMetadataService, TTLCache, static_metadata
from biodata.domain.search.pagination import PageResult, PaginationController
from biodata.domain.search.session import SearchSession
from biodata.domain.search.source import (
	CandidateSource,
	CandidateSourceError,
	MemoryCandidateSource,
	PostgresCandidateSource,
)
from biodata.infra.postgres import get_pool
from biodata.obs import metrics as obs_metrics
from biodata.settings import settings

logger = logging.getLogger(__name__)

_MEMORY = MemoryCandidateSource()


def encode_cursor(cursor: models.Cursor) -> str:
	payload = json.dumps({"u": cursor.updated_at.isoformat(), "i": cursor.id}, separators=(",", ":"))
	return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(value: str) -> models.Cursor:
	try:
		data = json.loads(base64.urlsafe_b64decode(value.encode("ascii")).decode("utf-8"))
		return models.Cursor(updated_at=data["u"], id=data["i"])
	except (ValueError, KeyError, TypeError) as exc:
		raise policy.SearchPolicyError("bad_cursor", status_code=400) from exc


def clamp_page_size(value: Optional[int]) -> int:
	if value is None:
		value = settings.search_page_size
	return max(1, min(int(value), settings.search_max_page_size))


class SearchService:
	def __init__(self, source: Optional[CandidateSource] = None) -> None:
		self._source = source
		self._metadata_cache: TTLCache[FilterMetadata] = TTLCache(settings.filter_metadata_ttl_seconds)

	@property
	def metadata_cache(self) -> TTLCache[FilterMetadata]:
		return self._metadata_cache

	async def _acquire_pool(self) -> asyncpg.Pool:
		try:
			return await get_pool()
		except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
			logger.warning("search.pool.unavailable error=%s", type(exc).__name__)
			raise CandidateSourceError("pool_unavailable") from exc

	async def resolve_source(self) -> CandidateSource:
		"""Return the configured source; raises CandidateSourceError while Postgres is unreachable."""

		if self._source is not None:
			return self._source
		if settings.search_backend == "memory":
			return _MEMORY
		pool = await self._acquire_pool()
		self._source = PostgresCandidateSource(pool)
		return self._source

	async def search(
		self,
		filters: Any,
		page: int = 0,
		page_size: Optional[int] = None,
		cursor: Optional[models.Cursor] = None,
		context: Optional[policy.CallerContext] = None,
	) -> PageResult:
		"""Run one page of a profile search for ``context``.

		Default filters never reach the source: they mean "no search performed"
		and come back as an empty page.
		"""
		start = time.perf_counter()
		try:
			normalized = search_filters.normalize_filters(filters)
			if search_filters.is_default(normalized):
				obs_metrics.inc_search_query("default")
				return PageResult()
			caller = context or policy.CallerContext()
			eligibility = policy.derive_eligibility(caller)
			size = clamp_page_size(page_size)
			try:
				source = await self.resolve_source()
			except CandidateSourceError as exc:
				obs_metrics.inc_search_failure(exc.reason)
				return PageResult.failure(duration_ms=(time.perf_counter() - start) * 1000.0)
			controller = PaginationController(source, max_backfill_batches=settings.search_max_backfill_batches)
			result = await controller.fetch_page(normalized, eligibility, cursor, size, page=max(0, int(page)))
			obs_metrics.inc_search_query("profiles")
			logger.info(
				"search.profiles page=%d filters=%d returned=%d has_next=%s failed=%s",
				page,
				search_filters.active_filter_count(normalized),
				len(result.profiles),
				result.has_next_page,
				result.failed,
			)
			return result
		finally:
			obs_metrics.observe_search_latency("profiles", time.perf_counter() - start)

	async def search_profiles(
		self,
		caller: policy.CallerContext,
		request: schemas.SearchProfilesRequest,
	) -> schemas.SearchProfilesResponse:
		if caller.user_id:
			await policy.enforce_rate_limit(caller.user_id, kind="search", limit=settings.search_per_minute)
		cursor = decode_cursor(request.cursor) if request.cursor else None
		normalized = search_filters.normalize_filters(request.filters)
		size = clamp_page_size(request.page_size)
		result = await self.search(normalized, request.page, size, cursor, caller)
		if result.failed:
			raise policy.SearchPolicyError(result.error or "search_failed", status_code=503)
		return schemas.SearchProfilesResponse(
			profiles=[schemas.ProfileCard(**row.as_payload()) for row in result.profiles],
			next_cursor=encode_cursor(result.next_cursor) if result.next_cursor else None,
			has_next_page=result.has_next_page,
			duration_ms=result.duration_ms,
			total_count=result.total_count,
			page=request.page,
			page_size=size,
			filters=normalized.as_payload(),
		)

	async def filter_metadata(self) -> FilterMetadata:
		try:
			source = await self.resolve_source()
		except CandidateSourceError:
			return static_metadata()
		return await FilterMetadataService(source, self._metadata_cache).get()

	async def filter_metadata_response(self, caller: policy.CallerContext) -> schemas.FilterMetadataResponse:
		if caller.user_id:
			await policy.enforce_rate_limit(caller.user_id, kind="metadata", limit=settings.metadata_per_minute)
		metadata = await self.filter_metadata()
		return schemas.FilterMetadataResponse(**metadata.as_payload())

	def open_session(
		self,
		context: policy.CallerContext,
		*,
		page_size: Optional[int] = None,
		enabled: bool = True,
		initial_filters: Any = None,
	) -> SearchSession:
		return SearchSession(
			self.search,
			context,
			page_size=clamp_page_size(page_size),
			enabled=enabled,
			initial_filters=initial_filters,
		)


def memory_source() -> MemoryCandidateSource:
	return _MEMORY


async def seed_memory_store(profiles: Iterable[models.MemoryProfile] | None = None) -> None:
	await _MEMORY.seed(profiles or ())


async def reset_memory_state() -> None:
	await _MEMORY.reset()
