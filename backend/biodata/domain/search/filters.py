"""Canonical search filters and the lenient normalizer that produces them."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

AGE_MIN = 18
AGE_MAX = 60
HEIGHT_MIN = 48  # 4'0"
HEIGHT_MAX = 84  # 7'0"
MAX_INTERESTS = 3

WILDCARD = "*"
PAIR_SEPARATOR = "||"

_FT_IN_RE = re.compile(r"(\d{1,6})\s*'\s*(\d{0,6})")
_CM_RE = re.compile(r"(\d{1,6}(?:\.\d{1,6})?)\s*cm", re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d{1,6})")

# canonical field -> accepted input keys
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
	"min_age": ("min_age", "minAge"),
	"max_age": ("max_age", "maxAge"),
	"min_height": ("min_height", "minHeight"),
	"max_height": ("max_height", "maxHeight"),
	"query": ("query", "q"),
	"countries": ("countries",),
	"education": ("education", "educations"),
	"marital_status": ("marital_status", "maritalStatus", "marital_statuses", "maritalStatuses"),
	"interests": ("interests",),
	"exclude_kovil_pirivu": ("exclude_kovil_pirivu", "excludeKovilPirivu"),
}
_ALIAS_TO_FIELD = {alias: name for name, aliases in _FIELD_ALIASES.items() for alias in aliases}

TOGGLE_FIELDS = ("countries", "education", "marital_status", "interests")


@dataclass(frozen=True, slots=True, order=True)
class ExclusionPair:
	"""A kovil/pirivu exclusion; a wildcard pirivu excludes the whole kovil."""

	kovil: str
	pirivu: str = WILDCARD

	@classmethod
	def whole(cls, kovil: str) -> "ExclusionPair":
		return cls(kovil=kovil, pirivu=WILDCARD)

	@property
	def is_whole_kovil(self) -> bool:
		return self.pirivu == WILDCARD

	def covers(self, kovil: Optional[str], pirivu: Optional[str]) -> bool:
		"""Return True when a profile with this affiliation is excluded."""

		if not kovil or kovil != self.kovil:
			return False
		if self.is_whole_kovil:
			return True
		return pirivu == self.pirivu

	def encode(self) -> str:
		return f"{self.kovil}{PAIR_SEPARATOR}{self.pirivu}"

	@classmethod
	def decode(cls, value: str) -> Optional["ExclusionPair"]:
		kovil, _, pirivu = str(value or "").partition(PAIR_SEPARATOR)
		kovil = kovil.strip()
		if not kovil:
			return None
		return cls(kovil=kovil, pirivu=pirivu.strip() or WILDCARD)


@dataclass(frozen=True, slots=True)
class Filters:
	"""Immutable, normalized filter set for one search request."""

	min_age: int = AGE_MIN
	max_age: int = AGE_MAX
	min_height: int = HEIGHT_MIN
	max_height: int = HEIGHT_MAX
	query: str = ""
	countries: frozenset[str] = field(default_factory=frozenset)
	education: frozenset[str] = field(default_factory=frozenset)
	marital_status: frozenset[str] = field(default_factory=frozenset)
	interests: frozenset[str] = field(default_factory=frozenset)
	exclude_kovil_pirivu: frozenset[ExclusionPair] = field(default_factory=frozenset)

	def query_tokens(self) -> list[str]:
		return [token.lower() for token in self.query.split()]

	def as_mapping(self) -> dict[str, Any]:
		return {
			"min_age": self.min_age,
			"max_age": self.max_age,
			"min_height": self.min_height,
			"max_height": self.max_height,
			"query": self.query,
			"countries": set(self.countries),
			"education": set(self.education),
			"marital_status": set(self.marital_status),
			"interests": set(self.interests),
			"exclude_kovil_pirivu": set(self.exclude_kovil_pirivu),
		}

	def as_payload(self) -> dict[str, Any]:
		"""JSON friendly view with sorted lists and encoded exclusion pairs."""

		return {
			"min_age": self.min_age,
			"max_age": self.max_age,
			"min_height": self.min_height,
			"max_height": self.max_height,
			"query": self.query,
			"countries": sorted(self.countries),
			"education": sorted(self.education),
			"marital_status": sorted(self.marital_status),
			"interests": sorted(self.interests),
			"exclude_kovil_pirivu": encode_exclusions(self.exclude_kovil_pirivu),
		}


DEFAULT_FILTERS = Filters()


@dataclass(frozen=True, slots=True)
class ToggleResult:
	filters: Filters
	limit_reached: bool = False


def _clamp(value: int, lower: int, upper: int) -> int:
	return max(lower, min(upper, value))


def _coerce_int(value: Any, fallback: int) -> int:
	if isinstance(value, bool) or value is None:
		return fallback
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return int(value) if math.isfinite(value) else fallback
	match = _LEADING_INT_RE.match(str(value))
	if match is None:
		return fallback
	return int(match.group(1))


def _round_half_up(value: float, fallback: int) -> int:
	if not math.isfinite(value):
		return fallback
	return int(math.floor(value + 0.5))


def parse_height_inches(value: Any, fallback: int) -> int:
	"""Convert a feet/inches, centimetre or bare integer height to inches."""

	if isinstance(value, bool) or value is None:
		return fallback
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return _round_half_up(value, fallback)
	raw = str(value).strip()
	if not raw:
		return fallback
	ft_in = _FT_IN_RE.search(raw)
	if ft_in:
		inches = int(ft_in.group(2)) if ft_in.group(2) else 0
		return int(ft_in.group(1)) * 12 + inches
	cm = _CM_RE.search(raw)
	if cm:
		return _round_half_up(float(cm.group(1)) / 2.54, fallback)
	return _coerce_int(raw, fallback)


def format_height(inches: int) -> str:
	if inches < 12:
		return f'{inches}"'
	return f"{inches // 12}'{inches % 12}\""


def _ordered_range(low: int, high: int) -> tuple[int, int]:
	return (high, low) if low > high else (low, high)


def _as_list(value: Any) -> list[Any]:
	if value is None:
		return []
	if isinstance(value, (str, ExclusionPair)):
		return [value]
	if isinstance(value, Mapping):
		return []
	if isinstance(value, Iterable):
		return list(value)
	return []


def _string_values(value: Any) -> list[str]:
	"""Stringify, trim, drop empties and deduplicate, keeping first-seen order."""

	seen: dict[str, None] = {}
	for item in _as_list(value):
		text = "" if item is None else str(item).strip()
		if text:
			seen.setdefault(text, None)
	return list(seen)


def _exclusion_pair(item: Any) -> Optional[ExclusionPair]:
	if isinstance(item, ExclusionPair):
		return item
	if isinstance(item, str):
		return ExclusionPair.decode(item)
	if isinstance(item, Mapping):
		kovil = str(item.get("kovil") or "").strip()
		pirivu = str(item.get("pirivu") or "").strip()
		return ExclusionPair(kovil, pirivu or WILDCARD) if kovil else None
	if isinstance(item, (tuple, list)) and len(item) == 2:
		kovil = str(item[0] or "").strip()
		pirivu = str(item[1] or "").strip()
		return ExclusionPair(kovil, pirivu or WILDCARD) if kovil else None
	return None


def collapse_wildcards(pairs: Iterable[ExclusionPair]) -> frozenset[ExclusionPair]:
	"""Drop pirivu-specific pairs for every kovil that is excluded wholesale."""

	pairs = set(pairs)
	whole = {pair.kovil for pair in pairs if pair.is_whole_kovil}
	return frozenset(pair for pair in pairs if pair.is_whole_kovil or pair.kovil not in whole)


def _exclusion_pairs(value: Any) -> frozenset[ExclusionPair]:
	pairs = (_exclusion_pair(item) for item in _as_list(value))
	return collapse_wildcards(pair for pair in pairs if pair is not None)


def _canonical_mapping(raw: Any) -> dict[str, Any]:
	if isinstance(raw, Filters):
		return raw.as_mapping()
	if not isinstance(raw, Mapping):
		return {}
	values: dict[str, Any] = {}
	for key, value in raw.items():
		name = _ALIAS_TO_FIELD.get(str(key))
		if name is not None and name not in values:
			values[name] = value
	return values


def normalize_filters(raw: Any = None) -> Filters:
	"""Produce a canonical Filters object from arbitrary input. Never raises."""

	values = _canonical_mapping(raw)
	min_age = _clamp(_coerce_int(values.get("min_age"), AGE_MIN), AGE_MIN, AGE_MAX)
	max_age = _clamp(_coerce_int(values.get("max_age"), AGE_MAX), AGE_MIN, AGE_MAX)
	min_height = _clamp(parse_height_inches(values.get("min_height"), HEIGHT_MIN), HEIGHT_MIN, HEIGHT_MAX)
	max_height = _clamp(parse_height_inches(values.get("max_height"), HEIGHT_MAX), HEIGHT_MIN, HEIGHT_MAX)
	min_age, max_age = _ordered_range(min_age, max_age)
	min_height, max_height = _ordered_range(min_height, max_height)
	query = values.get("query")
	return Filters(
		min_age=min_age,
		max_age=max_age,
		min_height=min_height,
		max_height=max_height,
		query=str(query).strip() if query is not None else "",
		countries=frozenset(_string_values(values.get("countries"))),
		education=frozenset(_string_values(values.get("education"))),
		marital_status=frozenset(_string_values(values.get("marital_status"))),
		interests=frozenset(_string_values(values.get("interests"))[:MAX_INTERESTS]),
		exclude_kovil_pirivu=_exclusion_pairs(values.get("exclude_kovil_pirivu")),
	)


def is_default(filters: Any) -> bool:
	return normalize_filters(filters) == DEFAULT_FILTERS


def active_filter_count(filters: Filters) -> int:
	groups = (
		bool(filters.query),
		(filters.min_age, filters.max_age) != (AGE_MIN, AGE_MAX),
		(filters.min_height, filters.max_height) != (HEIGHT_MIN, HEIGHT_MAX),
		bool(filters.countries),
		bool(filters.education),
		bool(filters.marital_status),
		bool(filters.interests),
		bool(filters.exclude_kovil_pirivu),
	)
	return sum(1 for active in groups if active)


def apply_patch(filters: Filters, patch: Mapping[str, Any]) -> Filters:
	merged = filters.as_mapping()
	merged.update(_canonical_mapping(patch))
	return normalize_filters(merged)


def toggle_value(filters: Filters, field_name: str, value: Any) -> ToggleResult:
	"""Add or remove one facet value; a 4th interest is refused, not truncated."""

	name = _ALIAS_TO_FIELD.get(field_name, field_name)
	if name not in TOGGLE_FIELDS:
		raise ValueError(f"not a toggleable filter: {field_name}")
	text = "" if value is None else str(value).strip()
	if not text:
		return ToggleResult(filters)
	current: frozenset[str] = getattr(filters, name)
	if text in current:
		return ToggleResult(replace(filters, **{name: current - {text}}))
	if name == "interests" and len(current) >= MAX_INTERESTS:
		return ToggleResult(filters, limit_reached=True)
	return ToggleResult(replace(filters, **{name: current | {text}}))


def toggle_exclude_whole_kovil(filters: Filters, kovil: str) -> Filters:
	whole = ExclusionPair.whole(kovil)
	pairs = filters.exclude_kovil_pirivu
	if whole in pairs:
		return replace(filters, exclude_kovil_pirivu=pairs - {whole})
	kept = {pair for pair in pairs if pair.kovil != kovil}
	return replace(filters, exclude_kovil_pirivu=frozenset(kept | {whole}))


def toggle_exclude_pirivu(filters: Filters, kovil: str, pirivu: str) -> Filters:
	base = filters.exclude_kovil_pirivu - {ExclusionPair.whole(kovil)}
	key = ExclusionPair(kovil, pirivu)
	pairs = base - {key} if key in base else base | {key}
	return replace(filters, exclude_kovil_pirivu=frozenset(pairs))


def clear_exclude_for_kovil(filters: Filters, kovil: str) -> Filters:
	kept = frozenset(pair for pair in filters.exclude_kovil_pirivu if pair.kovil != kovil)
	return replace(filters, exclude_kovil_pirivu=kept)


def is_whole_kovil_excluded(filters: Filters, kovil: str) -> bool:
	return ExclusionPair.whole(kovil) in filters.exclude_kovil_pirivu


def encode_exclusions(pairs: Iterable[ExclusionPair]) -> list[str]:
	return sorted(pair.encode() for pair in pairs)
