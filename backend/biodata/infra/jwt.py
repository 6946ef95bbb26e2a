"""HS256 access tokens carrying the caller identity used by profile search.

Besides the standard claims a token may hold ``role``, ``gender``, ``kovil``
and ``pirivu``; those drive the eligibility walls applied to every search.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from biodata.settings import settings


ISSUER = "biodata-api"
AUDIENCE = "biodata-app"
CALLER_CLAIMS = ("role", "gender", "kovil", "pirivu")
# older tokens name the role claim differently
_CLAIM_ALIASES = {"role": ("role", "user_role")}


def encode_access(
    subject: str,
    *,
    role: Optional[str] = None,
    gender: Optional[str] = None,
    kovil: Optional[str] = None,
    pirivu: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> str:
    """Issue an access token for ``subject`` with its caller claims."""
    now = int(time.time())
    ttl = ttl_seconds if ttl_seconds is not None else settings.access_token_ttl_seconds
    body: Dict[str, Any] = {"sub": subject, "iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + ttl}
    claims = {"role": role, "gender": gender, "kovil": kovil, "pirivu": pirivu}
    body.update({name: value for name, value in claims.items() if value is not None})
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def _text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decode_access(token: str) -> Dict[str, Optional[str]]:
    """Validate ``token`` and return ``sub`` plus the caller claims, trimmed.

    Raises jwt.InvalidTokenError subclasses on failure, including a blank ``sub``.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=5,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    subject = _text(payload.get("sub"))
    if subject is None:
        raise InvalidTokenError("missing_claim:sub")
    identity: Dict[str, Optional[str]] = {"sub": subject}
    for name in CALLER_CLAIMS:
        identity[name] = None
        for alias in _CLAIM_ALIASES.get(name, (name,)):
            identity[name] = _text(payload.get(alias))
            if identity[name]:
                break
    return identity
