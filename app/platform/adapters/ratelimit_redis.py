import uuid
import logging
from redis.asyncio import from_url as redis_from_url
from app.core.base import utcnow
from app.core.config import settings
from app.platform.ports.rate_limit import RecipientRateLimiterPort, RateDecision

log = logging.getLogger("ratelimit.redis")

BUCKET_TTL_SECONDS = 2 * 24 * 3600

class RedisRecipientRateLimiter(RecipientRateLimiterPort):
    def __init__(self, clock=utcnow):
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        self.clock = clock

    def _key(self, org_id: uuid.UUID, recipient: str) -> str:
        return f"mms:rate:{org_id}:{recipient}:{self.clock():%Y%m%d}"

    async def check(self, org_id: uuid.UUID, recipient: str, limit: int) -> RateDecision:
        used = int(await self.redis.get(self._key(org_id, recipient)) or 0)
        return RateDecision(allowed=used < limit, limit=limit, used=used)

    async def record(self, org_id: uuid.UUID, recipient: str) -> None:
        key = self._key(org_id, recipient)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, BUCKET_TTL_SECONDS)
            await pipe.execute()
        log.debug(f"recorded send for {key}")
