"""Authentication helpers for FastAPI endpoints.

Bearer JWTs (HS256, settings.secret_key) are always accepted. The X-User-*
headers are only honoured in development for local tools and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from biodata.domain.search.policy import CallerContext
from biodata.infra import jwt as jwt_helper
from biodata.obs import logging as obs_logging
from biodata.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	role: Optional[str] = None
	gender: Optional[str] = None
	kovil: Optional[str] = None
	pirivu: Optional[str] = None

	def caller_context(self) -> CallerContext:
		return CallerContext.from_identity(
			user_id=self.id,
			role=self.role,
			gender=self.gender,
			kovil=self.kovil,
			pirivu=self.pirivu,
		)


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode an access JWT into the identity the search policy needs.

	Required claims: sub, exp, iat, iss, aud. ``role``, ``gender``, ``kovil``
	and ``pirivu`` are optional profile claims.
	"""
	try:
		identity = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return AuthenticatedUser(
		id=identity["sub"],
		role=identity["role"],
		gender=identity["gender"],
		kovil=identity["kovil"],
		pirivu=identity["pirivu"],
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
	x_user_gender: Optional[str] = Header(default=None, alias="X-User-Gender"),
	x_user_kovil: Optional[str] = Header(default=None, alias="X-User-Kovil"),
	x_user_pirivu: Optional[str] = Header(default=None, alias="X-User-Pirivu"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user."""
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
		obs_logging.bind_user(user.id)
		return user

	if settings.is_dev() and x_user_id:
		user = AuthenticatedUser(
			id=x_user_id,
			role=x_user_role,
			gender=x_user_gender,
			kovil=x_user_kovil,
			pirivu=x_user_pirivu,
		)
		obs_logging.bind_user(user.id)
		return user

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
