"""Request ID helper for endpoints and error handlers.

The observability middleware binds the request id into the logging context;
``request.state.request_id`` covers the case where that middleware is off.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from biodata.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
	"""Return the current request id if bound, else a default."""
	rid: Optional[str] = obs_logging._REQUEST_ID.get()
	if not rid and request is not None:
		rid = getattr(request.state, "request_id", None)
	return rid or default
