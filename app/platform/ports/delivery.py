from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable
from app.core.errors import ProviderMisconfigured

@dataclass(frozen=True)
class OutboundMms:
    """Provider-neutral send request; `to` is already E.164-normalized."""
    message_id: str
    to: str
    text: str
    media_urls: list[str] = field(default_factory=list)

@dataclass(frozen=True)
class SendReceipt:
    provider: str
    provider_message_id: str
    raw_response: dict

@dataclass(frozen=True)
class StatusReport:
    status: str  # pending | sent | delivered | failed
    raw_status: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime | str | None = None
    updated_at: datetime | str | None = None

@runtime_checkable
class DeliveryProviderPort(Protocol):
    name: str

    async def send(self, message: OutboundMms) -> SendReceipt: ...

    async def fetch_status(self, provider_message_id: str) -> StatusReport: ...

def required_credentials(provider: str, credentials: dict[str, str] | None, *names: str) -> dict[str, str]:
    """Pick `names` out of tenant credentials; any blank or absent field is a misconfiguration."""
    creds = credentials or {}
    missing = [n for n in names if not creds.get(n)]
    if missing:
        raise ProviderMisconfigured(provider, missing)
    return {n: creds[n] for n in names}
