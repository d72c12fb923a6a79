import logging
from typing import Callable
from app.core.errors import ProviderError, ProviderSendFailed, ProviderStatusFailed
from app.modules.delivery.phone import normalize_phone
from app.modules.tenants.schemas import DeliverySettings
from app.platform.ports.delivery import DeliveryProviderPort, OutboundMms, SendReceipt, StatusReport
from app.platform.provider_registry import ProviderRegistry

log = logging.getLogger("delivery")

ProviderFactory = Callable[[DeliverySettings], DeliveryProviderPort]

class DeliveryService:
    """Provider-neutral front for the tenant's configured backend.

    Every error leaving send/fetch_status is a ProviderError; backend
    exception types never reach the caller.
    """

    def __init__(self, delivery: DeliverySettings, factory: ProviderFactory = ProviderRegistry.delivery_provider):
        self.delivery = delivery
        self.factory = factory
        self._provider: DeliveryProviderPort | None = None

    @property
    def provider(self) -> DeliveryProviderPort:
        if self._provider is None:
            # UnsupportedProvider / ProviderMisconfigured surface here, before any network attempt
            self._provider = self.factory(self.delivery)
        return self._provider

    async def send(self, message_id: str, to: str, text: str, media_urls: list[str]) -> SendReceipt:
        provider = self.provider
        outbound = OutboundMms(message_id=message_id, to=normalize_phone(to), text=text, media_urls=list(media_urls))
        try:
            receipt = await provider.send(outbound)
        except ProviderError:
            raise
        except Exception as e:
            log.warning(f"{provider.name} send raised {type(e).__name__} for message {message_id}")
            raise ProviderSendFailed(provider.name, str(e)) from e
        log.info(f"message {message_id} accepted by {provider.name} as {receipt.provider_message_id}")
        return receipt

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        provider = self.provider
        try:
            return await provider.fetch_status(provider_message_id)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderStatusFailed(provider.name, str(e)) from e
