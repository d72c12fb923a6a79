import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

@runtime_checkable
class RecipientRateLimiterPort(Protocol):
    async def check(self, org_id: uuid.UUID, recipient: str, limit: int) -> RateDecision: ...

    async def record(self, org_id: uuid.UUID, recipient: str) -> None: ...
