import asyncio
import logging
from twilio.rest import Client
from twilio.base.exceptions import TwilioException
from app.core.errors import ProviderSendFailed, ProviderStatusFailed
from app.platform.ports.delivery import (
    DeliveryProviderPort, OutboundMms, SendReceipt, StatusReport, required_credentials,
)

log = logging.getLogger("delivery.twilio")

STATUS_MAP = {
    "accepted": "sent", "scheduled": "sent", "queued": "sent", "sending": "sent", "sent": "sent",
    "receiving": "sent", "received": "sent",
    "delivered": "delivered", "read": "delivered",
    "failed": "failed", "undelivered": "failed", "canceled": "failed",
}

class TwilioProvider(DeliveryProviderPort):
    name = "twilio"

    def __init__(self, credentials: dict[str, str], client: Client | None = None):
        creds = required_credentials(self.name, credentials, "account_sid", "auth_token", "from_number")
        self.from_number = creds["from_number"]
        self.client = client or Client(creds["account_sid"], creds["auth_token"])

    async def send(self, message: OutboundMms) -> SendReceipt:
        data = {"from_": self.from_number, "to": message.to, "body": message.text}
        if message.media_urls:
            data["media_url"] = list(message.media_urls)
        try:
            # the SDK is blocking; keep it off the event loop
            result = await asyncio.to_thread(self.client.messages.create, **data)
        except (TwilioException, OSError) as e:
            log.warning(f"Twilio send failed for message {message.message_id}: {e}")
            raise ProviderSendFailed(self.name, str(e)) from e
        return SendReceipt(
            provider=self.name,
            provider_message_id=result.sid,
            raw_response={
                "sid": result.sid,
                "status": result.status,
                "num_media": result.num_media,
                "error_code": result.error_code,
                "date_created": result.date_created.isoformat() if result.date_created else None,
            },
        )

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        try:
            m = await asyncio.to_thread(self.client.messages(provider_message_id).fetch)
        except (TwilioException, OSError) as e:
            raise ProviderStatusFailed(self.name, str(e)) from e
        return StatusReport(
            status=STATUS_MAP.get((m.status or "").lower(), "pending"),
            raw_status=m.status,
            error_code=str(m.error_code) if m.error_code else None,
            error_message=m.error_message,
            created_at=m.date_created,
            updated_at=m.date_updated,
        )
