"""Per-caller search session: draft vs applied filters, paging and navigation.

A session is a single-owner object. Every fetch takes a fresh request id; a
response whose id is no longer the latest is dropped without touching state, so
a newer ``apply`` or page navigation always wins over an older in-flight call.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from biodata.domain.search import filters as search_filters
from biodata.domain.search import models, policy
from biodata.domain.search.pagination import PageResult

logger = logging.getLogger(__name__)

SearchFn = Callable[
	[search_filters.Filters, int, int, Optional[models.Cursor], policy.CallerContext],
	Awaitable[PageResult],
]

DEFAULT_PAGE_SIZE = 20


class SessionState(str, enum.Enum):
	IDLE = "IDLE"
	SEARCHED = "SEARCHED"


class SearchSession:
	def __init__(
		self,
		search_fn: SearchFn,
		caller: policy.CallerContext,
		*,
		page_size: int = DEFAULT_PAGE_SIZE,
		enabled: bool = True,
		initial_filters: Any = None,
	) -> None:
		self._search_fn = search_fn
		self.caller = caller
		self.page_size = max(1, int(page_size))
		self.enabled = enabled
		initial = search_filters.normalize_filters(initial_filters)
		self.draft = initial
		self.applied = initial
		self.loading = False
		self.last_error: Optional[str] = None
		self._request_id = 0
		self._clear_results()

	def _clear_results(self) -> None:
		self.profiles: list[models.ProfileRow] = []
		self.index = 0
		self.page = 0
		self.has_next_page = False
		self.cursor_stack: list[Optional[models.Cursor]] = [None]
		self.duration_ms: Optional[float] = None
		self.total_count = 0
		self.has_searched = False

	@property
	def request_id(self) -> int:
		return self._request_id

	@property
	def state(self) -> SessionState:
		return SessionState.SEARCHED if self.has_searched else SessionState.IDLE

	@property
	def current_profile(self) -> Optional[models.ProfileRow]:
		if 0 <= self.index < len(self.profiles):
			return self.profiles[self.index]
		return None

	@property
	def global_position(self) -> int:
		if not self.profiles:
			return 0
		return self.page * self.page_size + self.index + 1

	@property
	def applied_is_default(self) -> bool:
		return search_filters.is_default(self.applied)

	@property
	def active_filter_count(self) -> int:
		return search_filters.active_filter_count(self.draft)

	# draft editing -------------------------------------------------------

	def _set_draft(self, draft: search_filters.Filters) -> None:
		self.draft = draft
		if search_filters.is_default(draft):
			# going back to "no filters" clears stale results right away
			self._request_id += 1
			self.loading = False
			self._clear_results()

	def change_draft(self, patch: Mapping[str, Any]) -> None:
		self._set_draft(search_filters.apply_patch(self.draft, patch))

	def toggle_draft_value(self, field_name: str, value: Any) -> search_filters.ToggleResult:
		result = search_filters.toggle_value(self.draft, field_name, value)
		if not result.limit_reached:
			self._set_draft(result.filters)
		return result

	def toggle_draft_exclude_kovil(self, kovil: str) -> None:
		self._set_draft(search_filters.toggle_exclude_whole_kovil(self.draft, kovil))

	def toggle_draft_exclude_pirivu(self, kovil: str, pirivu: str) -> None:
		self._set_draft(search_filters.toggle_exclude_pirivu(self.draft, kovil, pirivu))

	def clear_draft_exclude_kovil(self, kovil: str) -> None:
		self._set_draft(search_filters.clear_exclude_for_kovil(self.draft, kovil))

	def reset_draft(self) -> None:
		self._set_draft(search_filters.DEFAULT_FILTERS)

	# fetching ------------------------------------------------------------

	async def _fetch(self, page: int, cursor: Optional[models.Cursor], *, land_on_last: bool = False) -> bool:
		self._request_id += 1
		request_id = self._request_id
		self.loading = True
		filters = self.applied
		try:
			try:
				result = await self._search_fn(filters, page, self.page_size, cursor, self.caller)
			except policy.SearchPolicyError as exc:
				result = PageResult.failure(duration_ms=0.0, error=exc.detail)
		finally:
			if request_id == self._request_id:
				self.loading = False

		if request_id != self._request_id:
			logger.debug("search.session.stale request_id=%d latest=%d", request_id, self._request_id)
			return False
		if result.failed:
			# previous results stay on screen
			self.last_error = result.error or "search_failed"
			return False

		self.last_error = None
		self.profiles = list(result.profiles)
		self.page = page
		self.has_next_page = result.has_next_page
		self.duration_ms = result.duration_ms
		self.total_count = result.total_count
		self.has_searched = True

		del self.cursor_stack[page + 1 :]
		while len(self.cursor_stack) <= page:
			self.cursor_stack.append(None)
		self.cursor_stack[page] = cursor
		if result.has_next_page and result.next_cursor is not None:
			self.cursor_stack.append(result.next_cursor)

		if land_on_last:
			self.index = max(0, min(len(self.profiles), self.page_size) - 1)
		else:
			self.index = 0
		return True

	async def apply(self) -> None:
		"""Commit the draft and load page 0 of the new result set."""

		if not self.enabled:
			return
		previous = self.applied
		self.applied = self.draft
		if search_filters.is_default(self.applied):
			self._request_id += 1
			self.loading = False
			self.last_error = None
			self._clear_results()
			return
		request_id = self._request_id + 1
		loaded = await self._fetch(0, None)
		if not loaded and request_id == self._request_id:
			# failed: the previous result set and its paging stay current
			self.applied = previous

	async def search_on_mount(self) -> None:
		if not self.enabled or search_filters.is_default(self.applied):
			return
		await self._fetch(0, None)

	async def next(self) -> None:
		if not self.enabled or self.loading:
			return
		if self.index + 1 < len(self.profiles):
			self.index += 1
			return
		target = self.page + 1
		if not self.has_next_page or target >= len(self.cursor_stack):
			return
		await self._fetch(target, self.cursor_stack[target])

	async def prev(self) -> None:
		if not self.enabled or self.loading:
			return
		if self.index > 0:
			self.index -= 1
			return
		if self.page <= 0:
			return
		target = self.page - 1
		await self._fetch(target, self.cursor_stack[target], land_on_last=True)

	async def goto_page(self, page: int) -> None:
		"""Jump to a page whose starting cursor is already known."""

		if not self.enabled or self.loading or search_filters.is_default(self.applied):
			return
		target = min(max(0, int(page)), len(self.cursor_stack) - 1)
		await self._fetch(target, self.cursor_stack[target])

	def disable(self) -> None:
		self.enabled = False
		self._request_id += 1
		self.loading = False
		self.last_error = None
		self._clear_results()

	def enable(self) -> None:
		self.enabled = True
