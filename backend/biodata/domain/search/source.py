"""Candidate sources: the upstream query that returns ordered profile rows.

Every source returns rows strictly ordered by (updated_at DESC, id DESC) and,
given a cursor, only rows strictly after it in that order. Whatever a source
cannot filter itself is advertised through ``SourceCapabilities`` and finished
client-side by the pagination controller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

import asyncpg

from biodata.domain.search import filters as search_filters
from biodata.domain.search import models

logger = logging.getLogger(__name__)

SEARCH_PROCEDURE = "search_profile_cards_v1"
METADATA_PROCEDURE = "get_filter_metadata"


class CandidateSourceError(Exception):
	"""Single typed failure for anything that goes wrong upstream."""

	def __init__(self, reason: str = "candidate_source_failed") -> None:
		super().__init__(reason)
		self.reason = reason


@dataclass(frozen=True, slots=True)
class SourceCapabilities:
	"""Optional filters a source applies itself."""

	education: bool = True
	interests: bool = True


@dataclass(frozen=True, slots=True)
class CandidateQuery:
	filters: search_filters.Filters
	exclusions: tuple[str, ...] = ()
	forced_gender: Optional[str] = None
	exclude_user_id: Optional[str] = None
	batch_size: int = 21
	cursor: Optional[models.Cursor] = None

	def with_cursor(self, cursor: Optional[models.Cursor]) -> "CandidateQuery":
		return replace(self, cursor=cursor)

	def to_rpc_params(self, capabilities: SourceCapabilities = SourceCapabilities()) -> dict[str, Any]:
		f = self.filters
		params: dict[str, Any] = {
			"p_query": f.query or None,
			"p_min_age": f.min_age,
			"p_max_age": f.max_age,
			"p_min_height": f.min_height,
			"p_max_height": f.max_height,
			"p_countries": sorted(f.countries) or None,
			"p_marital_statuses": sorted(f.marital_status) or None,
		}
		if capabilities.education:
			params["p_educations"] = sorted(f.education) or None
		if capabilities.interests:
			params["p_interests"] = sorted(f.interests) or None
		params.update(
			{
				"p_exclude_kovil_pirivu": list(self.exclusions) or None,
				"p_forced_gender": self.forced_gender,
				"p_exclude_user_id": self.exclude_user_id,
				"p_page_size": self.batch_size,
				"p_cursor_updated_at": self.cursor.updated_at if self.cursor else None,
				"p_cursor_id": self.cursor.id if self.cursor else None,
			}
		)
		return params


class CandidateSource(Protocol):
	capabilities: SourceCapabilities

	async def fetch_batch(self, query: CandidateQuery) -> list[models.ProfileRow]:
		...

	async def fetch_filter_metadata(self) -> dict[str, Any]:
		...


def profile_matches_query(profile: models.ProfileRow, tokens: Iterable[str]) -> bool:
	"""AND semantics: every token must appear somewhere in the profile text."""

	text = profile.search_text()
	return all(token in text for token in tokens)


class PostgresCandidateSource:
	"""Calls the database-side search procedure through an asyncpg pool."""

	def __init__(
		self,
		pool: asyncpg.Pool,
		*,
		capabilities: SourceCapabilities = SourceCapabilities(education=False, interests=False),
	) -> None:
		self._pool = pool
		self.capabilities = capabilities

	async def fetch_batch(self, query: CandidateQuery) -> list[models.ProfileRow]:
		params = query.to_rpc_params(self.capabilities)
		arguments = ", ".join(f"{name} => ${idx}" for idx, name in enumerate(params, start=1))
		sql = f"SELECT * FROM {SEARCH_PROCEDURE}({arguments})"
		try:
			async with self._pool.acquire() as conn:
				records = await conn.fetch(sql, *params.values())
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
			logger.warning("search.source.failed procedure=%s error=%s", SEARCH_PROCEDURE, type(exc).__name__)
			raise CandidateSourceError() from exc
		try:
			return [models.ProfileRow.from_record(dict(record)) for record in records]
		except (KeyError, TypeError, ValueError) as exc:
			raise CandidateSourceError("malformed_row") from exc

	async def fetch_filter_metadata(self) -> dict[str, Any]:
		try:
			async with self._pool.acquire() as conn:
				raw = await conn.fetchval(f"SELECT {METADATA_PROCEDURE}()")
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
			raise CandidateSourceError() from exc
		if isinstance(raw, str):
			try:
				raw = json.loads(raw)
			except json.JSONDecodeError as exc:
				raise CandidateSourceError("malformed_metadata") from exc
		return dict(raw) if isinstance(raw, dict) else {}


class MemoryCandidateSource:
	"""In-process candidate store honouring the full source contract."""

	def __init__(self, *, capabilities: SourceCapabilities = SourceCapabilities()) -> None:
		self._lock = asyncio.Lock()
		self._profiles: dict[str, models.MemoryProfile] = {}
		self._failure: Optional[BaseException] = None
		self.capabilities = capabilities
		self.queries: list[CandidateQuery] = []

	@property
	def calls(self) -> int:
		return len(self.queries)

	async def reset(self) -> None:
		async with self._lock:
			self._profiles.clear()
			self._failure = None
			self.queries.clear()
			self.capabilities = SourceCapabilities()

	async def seed(self, profiles: Iterable[models.MemoryProfile]) -> None:
		async with self._lock:
			self._profiles = {profile.id: profile for profile in profiles}

	async def upsert(self, profile: models.MemoryProfile, *, touched_at: Optional[datetime] = None) -> None:
		"""Insert or update a profile, bumping updated_at like a real write."""

		async with self._lock:
			profile.updated_at = touched_at or datetime.now(timezone.utc)
			self._profiles[profile.id] = profile

	def set_failure(self, failure: Optional[BaseException]) -> None:
		self._failure = failure

	def _matches(self, profile: models.MemoryProfile, query: CandidateQuery, tokens: list[str]) -> bool:
		f = query.filters
		if not profile.approved:
			return False
		if query.exclude_user_id is not None and profile.id == query.exclude_user_id:
			return False
		if query.forced_gender is not None and (profile.gender or "").upper() != query.forced_gender:
			return False
		if profile.age is None or not f.min_age <= profile.age <= f.max_age:
			return False
		if profile.height_inches is None or not f.min_height <= profile.height_inches <= f.max_height:
			return False
		if f.countries and profile.resident_country not in f.countries:
			return False
		if f.marital_status and profile.marital_status not in f.marital_status:
			return False
		if self.capabilities.education and f.education and profile.education_level not in f.education:
			return False
		if self.capabilities.interests and f.interests and not f.interests.intersection(profile.interests):
			return False
		for encoded in query.exclusions:
			pair = search_filters.ExclusionPair.decode(encoded)
			if pair is not None and pair.covers(profile.kovil, profile.pirivu):
				return False
		return profile_matches_query(profile, tokens)

	async def fetch_batch(self, query: CandidateQuery) -> list[models.ProfileRow]:
		async with self._lock:
			self.queries.append(query)
			if self._failure is not None:
				raise CandidateSourceError() from self._failure
			tokens = query.filters.query_tokens()
			rows = [profile for profile in self._profiles.values() if self._matches(profile, query, tokens)]
			rows.sort(key=lambda profile: (profile.updated_at, profile.id), reverse=True)
			if query.cursor is not None:
				boundary = (query.cursor.updated_at, query.cursor.id)
				rows = [profile for profile in rows if (profile.updated_at, profile.id) < boundary]
			return [profile.to_row() for profile in rows[: query.batch_size]]

	async def fetch_filter_metadata(self) -> dict[str, Any]:
		async with self._lock:
			if self._failure is not None:
				raise CandidateSourceError() from self._failure
			approved = [profile for profile in self._profiles.values() if profile.approved]
			return {
				"countries": sorted({p.resident_country for p in approved if p.resident_country}),
				"education": sorted({p.education_level for p in approved if p.education_level}),
				"marital_status": sorted({p.marital_status for p in approved if p.marital_status}),
				"kovils": sorted({p.kovil for p in approved if p.kovil}),
			}
