"""Domain models backing profile search results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


def _as_utc(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
	if isinstance(value, datetime):
		return _as_utc(value)
	if isinstance(value, str) and value:
		return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
	raise ValueError(f"bad timestamp: {value!r}")


@dataclass(frozen=True, slots=True, order=True)
class Cursor:
	"""Keyset position: the (updated_at, id) of the last row handed out."""

	updated_at: datetime
	id: str

	def __post_init__(self) -> None:
		object.__setattr__(self, "updated_at", _parse_timestamp(self.updated_at))
		object.__setattr__(self, "id", str(self.id))


@dataclass(slots=True)
class ProfileRow:
	"""Normalized representation of a profile card returned by a candidate source."""

	id: str
	updated_at: datetime
	full_name: str = ""
	gender: Optional[str] = None
	age: Optional[int] = None
	height_inches: Optional[int] = None
	profession: Optional[str] = None
	workplace: Optional[str] = None
	education_level: Optional[str] = None
	resident_country: Optional[str] = None
	marital_status: Optional[str] = None
	kovil: Optional[str] = None
	pirivu: Optional[str] = None
	native_place: Optional[str] = None
	interests: list[str] = field(default_factory=list)
	about: Optional[str] = None
	photo_url: Optional[str] = None

	def __post_init__(self) -> None:
		self.id = str(self.id)
		self.updated_at = _parse_timestamp(self.updated_at)

	def cursor(self) -> Cursor:
		return Cursor(updated_at=self.updated_at, id=self.id)

	def search_text(self) -> str:
		"""Lower-cased text of every field the keyword query is matched against."""

		parts = (
			self.full_name,
			self.profession,
			self.workplace,
			self.education_level,
			self.resident_country,
			self.native_place,
			self.kovil,
			self.pirivu,
			self.about,
			" ".join(self.interests),
		)
		return " ".join(part for part in parts if part).lower()

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "ProfileRow":
		"""Build a row from a stored-procedure record; raises ValueError when malformed."""

		row_id = record.get("id")
		if row_id is None or str(row_id) == "":
			raise ValueError("candidate row without id")
		interests = record.get("interests") or []
		height = record.get("height_inches")
		age = record.get("age")
		return cls(
			id=str(row_id),
			updated_at=_parse_timestamp(record.get("updated_at")),
			full_name=str(record.get("full_name") or ""),
			gender=str(record["gender"]).upper() if record.get("gender") else None,
			age=int(age) if age is not None else None,
			height_inches=int(height) if height is not None else None,
			profession=record.get("profession"),
			workplace=record.get("workplace"),
			education_level=record.get("education_level"),
			resident_country=record.get("resident_country"),
			marital_status=record.get("marital_status"),
			kovil=record.get("kovil"),
			pirivu=record.get("pirivu"),
			native_place=record.get("native_place"),
			interests=[str(item) for item in interests] if isinstance(interests, (list, tuple)) else [],
			about=record.get("about"),
			photo_url=record.get("photo_url"),
		)

	def as_payload(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"updated_at": self.updated_at.isoformat(),
			"full_name": self.full_name,
			"gender": self.gender,
			"age": self.age,
			"height_inches": self.height_inches,
			"profession": self.profession,
			"workplace": self.workplace,
			"education_level": self.education_level,
			"resident_country": self.resident_country,
			"marital_status": self.marital_status,
			"kovil": self.kovil,
			"pirivu": self.pirivu,
			"native_place": self.native_place,
			"interests": list(self.interests),
			"about": self.about,
			"photo_url": self.photo_url,
		}


@dataclass(slots=True)
class MemoryProfile(ProfileRow):
	"""In-memory seed structure used by the memory source and tests."""

	approved: bool = True

	def to_row(self) -> ProfileRow:
		return ProfileRow(
			id=self.id,
			updated_at=self.updated_at,
			full_name=self.full_name,
			gender=self.gender,
			age=self.age,
			height_inches=self.height_inches,
			profession=self.profession,
			workplace=self.workplace,
			education_level=self.education_level,
			resident_country=self.resident_country,
			marital_status=self.marital_status,
			kovil=self.kovil,
			pirivu=self.pirivu,
			native_place=self.native_place,
			interests=list(self.interests),
			about=self.about,
			photo_url=self.photo_url,
		)
