import logging
import httpx
from app.core.config import settings
from app.core.errors import ProviderSendFailed, ProviderStatusFailed
from app.platform.ports.delivery import (
    DeliveryProviderPort, OutboundMms, SendReceipt, StatusReport, required_credentials,
)

log = logging.getLogger("delivery.messagebird")

STATUS_MAP = {
    "scheduled": "sent", "sent": "sent", "buffered": "sent",
    "delivered": "delivered",
    "expired": "failed", "delivery_failed": "failed",
}

def _error_detail(resp: httpx.Response) -> str:
    try:
        errors = resp.json().get("errors") or []
    except ValueError:
        errors = []
    if errors:
        return errors[0].get("description") or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"

class MessageBirdProvider(DeliveryProviderPort):
    name = "messagebird"

    def __init__(self, credentials: dict[str, str], transport: httpx.AsyncBaseTransport | None = None):
        creds = required_credentials(self.name, credentials, "api_key", "from_number")
        self.headers = {"Authorization": f"AccessKey {creds['api_key']}"}
        self.from_number = creds["from_number"]
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.MESSAGEBIRD_API_BASE, headers=self.headers,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS, transport=self.transport,
        )

    async def send(self, message: OutboundMms) -> SendReceipt:
        payload = {
            "originator": self.from_number,
            "recipients": [message.to],
            "body": message.text,
            "mediaUrls": list(message.media_urls),
            "reference": message.message_id,
        }
        try:
            async with self._client() as client:
                resp = await client.post("/messages", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderSendFailed(self.name, _error_detail(e.response)) from e
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"MessageBird send failed for message {message.message_id}: {e}")
            raise ProviderSendFailed(self.name, str(e)) from e
        return SendReceipt(provider=self.name, provider_message_id=str(data["id"]), raw_response=data)

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        try:
            async with self._client() as client:
                resp = await client.get(f"/messages/{provider_message_id}")
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderStatusFailed(self.name, _error_detail(e.response)) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderStatusFailed(self.name, str(e)) from e
        recipients = (data.get("recipients") or {}).get("items") or []
        raw = (recipients[0].get("status") if recipients else data.get("status")) or ""
        errors = data.get("errors") or []
        return StatusReport(
            status=STATUS_MAP.get(raw.lower(), "pending"),
            raw_status=raw or None,
            error_code=str(errors[0].get("code")) if errors else None,
            error_message=errors[0].get("description") if errors else None,
            created_at=data.get("createdDatetime"),
            updated_at=data.get("updatedDatetime"),
        )
