"""Eligibility walls, rate limits and policy errors for profile search."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from biodata.domain.search import filters as search_filters
from biodata.domain.search import models
from biodata.infra import rate_limit
from biodata.obs import metrics as obs_metrics


@dataclass(slots=True)
class SearchPolicyError(Exception):
	detail: str
	status_code: int = 400

	def __str__(self) -> str:  # pragma: no cover - debugging aid
		return self.detail


class SearchRateLimitError(SearchPolicyError):
	def __init__(self, retry_after: int = 60) -> None:
		super().__init__(detail="rate_limit", status_code=429)
		self.retry_after = retry_after


async def enforce_rate_limit(user_id: str, *, kind: str, limit: int) -> rate_limit.QuotaDecision:
	"""Count one ``kind`` request for ``user_id``; raise once the window quota is spent."""

	decision = await rate_limit.consume(kind, user_id, limit=limit)
	if not decision.allowed:
		obs_metrics.inc_rate_limited(kind)
		raise SearchRateLimitError(retry_after=decision.retry_after)
	return decision


def _clean(value: object) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


class Role(str, enum.Enum):
	ADMIN = "ADMIN"
	MODERATOR = "MODERATOR"
	USER = "USER"

	@classmethod
	def parse(cls, raw: object) -> "Role":
		value = (_clean(raw) or "").upper()
		try:
			return cls(value)
		except ValueError:
			return cls.USER

	@property
	def is_staff(self) -> bool:
		return self is not Role.USER


class Gender(str, enum.Enum):
	MALE = "MALE"
	FEMALE = "FEMALE"

	@classmethod
	def parse(cls, raw: object) -> Optional["Gender"]:
		value = (_clean(raw) or "").upper()
		try:
			return cls(value)
		except ValueError:
			return None

	def opposite(self) -> "Gender":
		return Gender.FEMALE if self is Gender.MALE else Gender.MALE


@dataclass(frozen=True, slots=True)
class CallerContext:
	"""Identity of whoever is searching, parsed once at the boundary."""

	user_id: Optional[str] = None
	role: Role = Role.USER
	gender: Optional[Gender] = None
	kovil: Optional[str] = None
	pirivu: Optional[str] = None

	@classmethod
	def from_identity(
		cls,
		*,
		user_id: object = None,
		role: object = None,
		gender: object = None,
		kovil: object = None,
		pirivu: object = None,
	) -> "CallerContext":
		return cls(
			user_id=_clean(user_id),
			role=Role.parse(role),
			gender=Gender.parse(gender),
			kovil=_clean(kovil),
			pirivu=_clean(pirivu),
		)


@dataclass(frozen=True, slots=True)
class Eligibility:
	"""Mandatory constraints layered onto every search for a caller."""

	exclude_user_id: Optional[str] = None
	forced_gender: Optional[Gender] = None
	hard_exclusion: Optional[search_filters.ExclusionPair] = None

	@property
	def is_empty(self) -> bool:
		return self.exclude_user_id is None and self.forced_gender is None and self.hard_exclusion is None


def derive_eligibility(caller: CallerContext) -> Eligibility:
	forced_gender = None
	if caller.role is Role.USER and caller.gender is not None:
		forced_gender = caller.gender.opposite()
	hard_exclusion = None
	if caller.kovil:
		hard_exclusion = search_filters.ExclusionPair(caller.kovil, caller.pirivu or search_filters.WILDCARD)
	return Eligibility(
		exclude_user_id=caller.user_id,
		forced_gender=forced_gender,
		hard_exclusion=hard_exclusion,
	)


def merged_exclusions(
	filters: search_filters.Filters,
	eligibility: Eligibility,
) -> frozenset[search_filters.ExclusionPair]:
	pairs = set(filters.exclude_kovil_pirivu)
	if eligibility.hard_exclusion is not None:
		pairs.add(eligibility.hard_exclusion)
	return search_filters.collapse_wildcards(pairs)


def is_eligible(row: models.ProfileRow, eligibility: Eligibility) -> bool:
	"""Client-side re-check of the mandatory walls for one candidate row."""

	if eligibility.exclude_user_id is not None and row.id == eligibility.exclude_user_id:
		return False
	if eligibility.forced_gender is not None and (row.gender or "").upper() != eligibility.forced_gender.value:
		return False
	if eligibility.hard_exclusion is not None and eligibility.hard_exclusion.covers(row.kovil, row.pirivu):
		return False
	return True
