import logging
import httpx
from app.core.config import settings
from app.core.errors import ProviderSendFailed, ProviderStatusFailed
from app.platform.ports.delivery import (
    DeliveryProviderPort, OutboundMms, SendReceipt, StatusReport, required_credentials,
)

log = logging.getLogger("delivery.bandwidth")

STATUS_MAP = {
    "received": "sent", "queued": "sent", "sending": "sent", "sent": "sent",
    "delivered": "delivered",
    "failed": "failed", "undelivered": "failed",
}

def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    return body.get("description") or body.get("message") or f"HTTP {resp.status_code}"

class BandwidthProvider(DeliveryProviderPort):
    name = "bandwidth"

    def __init__(self, credentials: dict[str, str], transport: httpx.AsyncBaseTransport | None = None):
        creds = required_credentials(self.name, credentials, "account_id", "username", "password", "from_number")
        self.account_id = creds["account_id"]
        self.auth = (creds["username"], creds["password"])
        self.from_number = creds["from_number"]
        self.application_id = (credentials or {}).get("application_id")
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.BANDWIDTH_API_BASE, auth=self.auth,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS, transport=self.transport,
        )

    async def send(self, message: OutboundMms) -> SendReceipt:
        payload = {
            "from": self.from_number,
            "to": [message.to],
            "text": message.text,
            "media": list(message.media_urls),
            "tag": message.message_id,
        }
        if self.application_id:
            payload["applicationId"] = self.application_id
        try:
            async with self._client() as client:
                resp = await client.post(f"/users/{self.account_id}/messages", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderSendFailed(self.name, _error_detail(e.response)) from e
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Bandwidth send failed for message {message.message_id}: {e}")
            raise ProviderSendFailed(self.name, str(e)) from e
        return SendReceipt(provider=self.name, provider_message_id=str(data["id"]), raw_response=data)

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        try:
            async with self._client() as client:
                resp = await client.get(f"/users/{self.account_id}/messages", params={"messageId": provider_message_id})
                resp.raise_for_status()
                items = resp.json().get("messages") or []
        except httpx.HTTPStatusError as e:
            raise ProviderStatusFailed(self.name, _error_detail(e.response)) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderStatusFailed(self.name, str(e)) from e
        if not items:
            return StatusReport(status="pending")
        item = items[0]
        raw = (item.get("messageStatus") or "").lower()
        return StatusReport(
            status=STATUS_MAP.get(raw, "pending"),
            raw_status=raw or None,
            error_code=str(item["errorCode"]) if item.get("errorCode") else None,
            created_at=item.get("receiveTime"),
            updated_at=item.get("receiveTime"),
        )
