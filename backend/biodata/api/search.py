"""REST endpoints for profile search."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from biodata.domain.search import policy, schemas
from biodata.domain.search.service import SearchService
from biodata.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["search"])

_service = SearchService()


def get_service() -> SearchService:
	return _service


def _as_http_error(exc: policy.SearchPolicyError) -> HTTPException:
	headers = None
	if isinstance(exc, policy.SearchRateLimitError):
		headers = {"Retry-After": str(exc.retry_after)}
	return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=headers)


@router.post("/search/profiles", response_model=schemas.SearchProfilesResponse)
async def search_profiles_endpoint(
	payload: schemas.SearchProfilesRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: SearchService = Depends(get_service),
) -> schemas.SearchProfilesResponse:
	try:
		return await service.search_profiles(auth_user.caller_context(), payload)
	except policy.SearchPolicyError as exc:
		raise _as_http_error(exc) from exc


@router.get("/search/filters/metadata", response_model=schemas.FilterMetadataResponse)
async def filter_metadata_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: SearchService = Depends(get_service),
) -> schemas.FilterMetadataResponse:
	try:
		return await service.filter_metadata_response(auth_user.caller_context())
	except policy.SearchPolicyError as exc:
		raise _as_http_error(exc) from exc
