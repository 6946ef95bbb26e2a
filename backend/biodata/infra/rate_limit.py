"""Fixed-window request quotas for search callers, counted in Redis."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from biodata.infra.redis import redis_client
from biodata.settings import settings


@dataclass(frozen=True, slots=True)
class QuotaDecision:
	allowed: bool
	limit: int
	remaining: int
	# seconds until the current window rolls over
	retry_after: int


def _window_key(kind: str, actor_id: str, window: int, slot: int) -> str:
	return f"biodata:quota:{kind}:{window}:{actor_id}:{slot}"


async def consume(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: Optional[int] = None,
	now: Optional[float] = None,
) -> QuotaDecision:
	"""Count one request against ``actor_id``'s quota for ``kind``."""

	window = max(1, int(window_seconds or settings.rate_limit_window_seconds))
	now = time.time() if now is None else now
	slot = int(math.floor(now / window))
	retry_after = max(1, int(math.ceil((slot + 1) * window - now)))
	if limit <= 0:
		return QuotaDecision(allowed=False, limit=0, remaining=0, retry_after=retry_after)
	key = _window_key(kind, actor_id, window, slot)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	used = int(count)
	return QuotaDecision(
		allowed=used <= limit,
		limit=limit,
		remaining=max(0, limit - used),
		retry_after=retry_after,
	)
