"""Filter facet metadata with a process-wide TTL cache."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from biodata.domain.search import catalog
from biodata.domain.search.source import CandidateSource, CandidateSourceError
from biodata.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class CacheEntry(Generic[T]):
	value: T
	fetched_at: float


class TTLCache(Generic[T]):
	"""Single-value cache with expiry and single-flight rebuilds."""

	def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
		self.ttl_seconds = float(ttl_seconds)
		self._clock = clock
		self._entry: Optional[CacheEntry[T]] = None
		self._lock = asyncio.Lock()

	def get(self) -> Optional[T]:
		entry = self._entry
		if entry is None:
			return None
		if self._clock() - entry.fetched_at >= self.ttl_seconds:
			self._entry = None
			return None
		return entry.value

	def set(self, value: T) -> None:
		self._entry = CacheEntry(value=value, fetched_at=self._clock())

	def invalidate(self) -> None:
		self._entry = None

	async def get_or_build(self, builder: Callable[[], Awaitable[T]]) -> T:
		cached = self.get()
		if cached is not None:
			obs_metrics.inc_metadata_cache("hit")
			return cached
		async with self._lock:
			cached = self.get()
			if cached is not None:
				obs_metrics.inc_metadata_cache("hit")
				return cached
			obs_metrics.inc_metadata_cache("miss")
			value = await builder()
			self.set(value)
			return value


@dataclass(frozen=True, slots=True)
class FilterMetadata:
	countries: tuple[str, ...] = ()
	education: tuple[str, ...] = ()
	marital_status: tuple[str, ...] = ()
	interests: tuple[str, ...] = ()
	kovils: dict[str, tuple[str, ...]] = field(default_factory=dict)
	from_source: bool = False

	def as_payload(self) -> dict[str, Any]:
		return {
			"countries": list(self.countries),
			"education": list(self.education),
			"marital_status": list(self.marital_status),
			"interests": list(self.interests),
			"kovils": [{"name": name, "pirivus": list(pirivus)} for name, pirivus in self.kovils.items()],
		}


def _merge(static: Iterable[str], dynamic: Any) -> tuple[str, ...]:
	"""Static catalog order first, then any extra values the source knows about."""

	seen: dict[str, None] = dict.fromkeys(static)
	if isinstance(dynamic, (list, tuple)):
		for item in dynamic:
			text = str(item).strip() if item is not None else ""
			if text:
				seen.setdefault(text, None)
	return tuple(seen)


def static_metadata() -> FilterMetadata:
	return FilterMetadata(
		countries=(),
		education=catalog.EDUCATION_LEVELS,
		marital_status=catalog.MARITAL_STATUSES,
		interests=catalog.INTERESTS,
		kovils=dict(catalog.KOVILS),
	)


def merge_metadata(raw: dict[str, Any]) -> FilterMetadata:
	kovils = dict(catalog.KOVILS)
	for name in _merge((), raw.get("kovils")):
		kovils.setdefault(name, ())
	return FilterMetadata(
		countries=tuple(sorted(_merge((), raw.get("countries")))),
		education=_merge(catalog.EDUCATION_LEVELS, raw.get("education")),
		marital_status=_merge(catalog.MARITAL_STATUSES, raw.get("marital_status")),
		interests=_merge(catalog.INTERESTS, raw.get("interests")),
		kovils=kovils,
		from_source=True,
	)


class FilterMetadataService:
	def __init__(self, source: CandidateSource, cache: TTLCache[FilterMetadata]) -> None:
		self._source = source
		self._cache = cache

	@property
	def cache(self) -> TTLCache[FilterMetadata]:
		return self._cache

	async def _build(self) -> FilterMetadata:
		raw = await self._source.fetch_filter_metadata()
		return merge_metadata(raw)

	async def get(self) -> FilterMetadata:
		try:
			return await self._cache.get_or_build(self._build)
		except CandidateSourceError as exc:
			logger.warning("search.metadata.fallback reason=%s", exc.reason)
			return static_metadata()
