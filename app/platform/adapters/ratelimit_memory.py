import uuid
import logging
from app.core.base import utcnow
from app.platform.ports.rate_limit import RecipientRateLimiterPort, RateDecision

log = logging.getLogger("ratelimit.memory")

class InMemoryRecipientRateLimiter(RecipientRateLimiterPort):
    """Per-process daily counters; buckets roll over at UTC midnight."""

    def __init__(self, clock=utcnow):
        self.clock = clock
        self._counts: dict[tuple[str, str, str], int] = {}

    def _key(self, org_id: uuid.UUID, recipient: str) -> tuple[str, str, str]:
        return (str(org_id), recipient, self.clock().date().isoformat())

    async def check(self, org_id: uuid.UUID, recipient: str, limit: int) -> RateDecision:
        used = self._counts.get(self._key(org_id, recipient), 0)
        return RateDecision(allowed=used < limit, limit=limit, used=used)

    async def record(self, org_id: uuid.UUID, recipient: str) -> None:
        key = self._key(org_id, recipient)
        # drop buckets from previous days
        for stale in [k for k in self._counts if k[2] != key[2]]:
            del self._counts[stale]
        self._counts[key] = self._counts.get(key, 0) + 1
