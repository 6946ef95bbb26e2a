"""Pydantic schemas for the profile search APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class SearchProfilesRequest(BaseModel):
	filters: dict[str, Any] = Field(default_factory=dict, description="Raw filter values; normalized server-side")
	page: int = Field(default=0, ge=0)
	page_size: Optional[int] = Field(default=None, ge=1)
	cursor: Optional[str] = Field(default=None, description="Opaque cursor for the requested page")


class ProfileCard(BaseModel):
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
	interests: list[str] = Field(default_factory=list)
	about: Optional[str] = None
	photo_url: Optional[str] = None


class SearchProfilesResponse(BaseModel):
	profiles: list[ProfileCard]
	next_cursor: Optional[str] = None
	has_next_page: bool = False
	duration_ms: float = Field(default=0.0, ge=0.0)
	total_count: int = Field(default=0, ge=0)
	page: int = 0
	page_size: int
	filters: dict[str, Any]


class KovilOption(BaseModel):
	name: str
	pirivus: list[str] = Field(default_factory=list)


class FilterMetadataResponse(BaseModel):
	countries: list[str]
	education: list[str]
	marital_status: list[str]
	interests: list[str]
	kovils: list[KovilOption]
