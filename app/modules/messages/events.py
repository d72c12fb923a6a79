import uuid
import logging
from app.platform.ports.event_bus import EventBusPort

log = logging.getLogger("messages.events")

MESSAGE_SENT = "message-sent"
MESSAGE_FAILED = "message-failed"
MESSAGE_STATUS_UPDATE = "message-status-update"

class MessageEvents:
    """Tenant-facing notifications. Fire-and-forget: a bus failure never fails the caller."""

    def __init__(self, bus: EventBusPort):
        self.bus = bus

    async def publish(self, org_id: uuid.UUID, event: str, message_id: uuid.UUID, status: str, recipient: str, **extra) -> None:
        value = {"message_id": str(message_id), "status": status, "recipient": recipient, **extra}
        try:
            await self.bus.publish(topic=event, key=f"client-{org_id}", value=value)
        except Exception as e:
            log.warning(f"publishing {event} for message {message_id} failed: {e}")
