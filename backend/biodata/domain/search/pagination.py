"""Keyset pagination over a candidate source with bounded client-side backfill."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from biodata.domain.search import filters as search_filters
from biodata.domain.search import models, policy
from biodata.domain.search.source import CandidateQuery, CandidateSource, CandidateSourceError
from biodata.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MAX_BACKFILL_BATCHES = 6
SEARCH_FAILED = "search_failed"


@dataclass(slots=True)
class PageResult:
	"""One page of search results as handed to callers."""

	profiles: list[models.ProfileRow] = field(default_factory=list)
	next_cursor: Optional[models.Cursor] = None
	has_next_page: bool = False
	duration_ms: float = 0.0
	total_count: int = 0
	batches: int = 0
	failed: bool = False
	error: Optional[str] = None

	@classmethod
	def failure(cls, *, duration_ms: float, error: str = SEARCH_FAILED, batches: int = 0) -> "PageResult":
		return cls(duration_ms=duration_ms, batches=batches, failed=True, error=error)


def synthetic_total_count(page: int, page_size: int, returned: int, has_next_page: bool) -> int:
	"""Cheap "looks truncated" hint used instead of an exact count."""

	if has_next_page:
		return (page + 1) * page_size + 1
	return page * page_size + returned


def _elapsed_ms(start: float) -> float:
	return max(0.0, (time.perf_counter() - start) * 1000.0)


class PaginationController:
	def __init__(self, source: CandidateSource, *, max_backfill_batches: int = MAX_BACKFILL_BATCHES) -> None:
		self._source = source
		self._max_backfill_batches = max(0, int(max_backfill_batches))

	@property
	def source(self) -> CandidateSource:
		return self._source

	def build_query(
		self,
		filters: search_filters.Filters,
		eligibility: policy.Eligibility,
		cursor: Optional[models.Cursor],
		page_size: int,
	) -> CandidateQuery:
		exclusions = search_filters.encode_exclusions(policy.merged_exclusions(filters, eligibility))
		forced = eligibility.forced_gender.value if eligibility.forced_gender is not None else None
		return CandidateQuery(
			filters=filters,
			exclusions=tuple(exclusions),
			forced_gender=forced,
			exclude_user_id=eligibility.exclude_user_id,
			batch_size=page_size + 1,
			cursor=cursor,
		)

	def _keep(
		self,
		row: models.ProfileRow,
		filters: search_filters.Filters,
		eligibility: policy.Eligibility,
	) -> bool:
		if not policy.is_eligible(row, eligibility):
			return False
		capabilities = self._source.capabilities
		if not capabilities.education and filters.education and row.education_level not in filters.education:
			return False
		if not capabilities.interests and filters.interests and not filters.interests.intersection(row.interests):
			return False
		return True

	async def fetch_page(
		self,
		filters: search_filters.Filters,
		eligibility: policy.Eligibility,
		cursor: Optional[models.Cursor],
		page_size: int,
		*,
		page: int = 0,
	) -> PageResult:
		"""Fetch one page starting strictly after ``cursor``.

		Rows are post-filtered for whatever the source cannot apply itself. Extra
		batches resume from the last raw row seen, while the returned
		``next_cursor`` is anchored on the last row actually handed out.
		"""

		page_size = max(1, int(page_size))
		start = time.perf_counter()
		query = self.build_query(filters, eligibility, cursor, page_size)
		kept: list[models.ProfileRow] = []
		batches = 0
		try:
			while True:
				batch = await self._source.fetch_batch(query)
				batches += 1
				kept.extend(row for row in batch if self._keep(row, filters, eligibility))
				if len(kept) > page_size or len(batch) < query.batch_size:
					break
				if batches > self._max_backfill_batches:
					break
				query = query.with_cursor(batch[-1].cursor())
		except CandidateSourceError as exc:
			duration_ms = _elapsed_ms(start)
			obs_metrics.inc_search_failure(exc.reason)
			logger.warning(
				"search.page.failed page=%d batches=%d reason=%s duration_ms=%.1f",
				page,
				batches,
				exc.reason,
				duration_ms,
			)
			return PageResult.failure(duration_ms=duration_ms, batches=batches)

		has_next_page = len(kept) > page_size
		profiles = kept[:page_size]
		next_cursor = profiles[-1].cursor() if has_next_page else None
		duration_ms = _elapsed_ms(start)
		obs_metrics.record_page(batches=batches, returned=len(profiles))
		logger.info(
			"search.page page=%d size=%d returned=%d batches=%d has_next=%s duration_ms=%.1f",
			page,
			page_size,
			len(profiles),
			batches,
			has_next_page,
			duration_ms,
		)
		return PageResult(
			profiles=profiles,
			next_cursor=next_cursor,
			has_next_page=has_next_page,
			duration_ms=duration_ms,
			total_count=synthetic_total_count(page, page_size, len(profiles), has_next_page),
			batches=batches,
		)
