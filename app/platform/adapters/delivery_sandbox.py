import uuid
import logging
from app.core.base import utcnow
from app.platform.ports.delivery import (
    DeliveryProviderPort, OutboundMms, SendReceipt, StatusReport, required_credentials,
)

log = logging.getLogger("delivery.sandbox")

class SandboxProvider(DeliveryProviderPort):
    """Accepts everything and transmits nothing. For local development."""
    name = "sandbox"

    def __init__(self, credentials: dict[str, str]):
        self.from_number = required_credentials(self.name, credentials, "from_number")["from_number"]

    async def send(self, message: OutboundMms) -> SendReceipt:
        sid = f"SBX{uuid.uuid4().hex}"
        log.info(f"[SANDBOX] {self.from_number} -> {message.to}: {len(message.text)} chars, {len(message.media_urls)} media")
        return SendReceipt(
            provider=self.name,
            provider_message_id=sid,
            raw_response={"id": sid, "status": "queued", "to": message.to, "from": self.from_number},
        )

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        now = utcnow()
        return StatusReport(status="delivered", raw_status="delivered", created_at=now, updated_at=now)
