from enum import Enum
from app.core.config import settings
from app.core.errors import UnsupportedProvider
from app.platform.ports.event_bus import EventBusPort
from app.platform.adapters.bus_noop import NoopEventBus
from app.platform.adapters.bus_redis import RedisEventBus
from app.platform.ports.rate_limit import RecipientRateLimiterPort
from app.platform.adapters.ratelimit_memory import InMemoryRecipientRateLimiter
from app.platform.adapters.ratelimit_redis import RedisRecipientRateLimiter
from app.platform.ports.delivery import DeliveryProviderPort
from app.platform.adapters.delivery_twilio import TwilioProvider
from app.platform.adapters.delivery_bandwidth import BandwidthProvider
from app.platform.adapters.delivery_messagebird import MessageBirdProvider
from app.platform.adapters.delivery_sandbox import SandboxProvider
from app.modules.tenants.schemas import DeliverySettings

class ProviderName(str, Enum):
    twilio = "twilio"
    bandwidth = "bandwidth"
    messagebird = "messagebird"
    sandbox = "sandbox"

    @classmethod
    def parse(cls, name: str | None) -> "ProviderName":
        try:
            return cls((name or "").lower())
        except ValueError:
            raise UnsupportedProvider(name)

class ProviderRegistry:
    _event_bus: EventBusPort | None = None
    _rate_limiter: RecipientRateLimiterPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def rate_limiter(cls) -> RecipientRateLimiterPort:
        if cls._rate_limiter is None:
            if settings.RATE_LIMIT_PROVIDER == "redis":
                cls._rate_limiter = RedisRecipientRateLimiter()
            else:
                cls._rate_limiter = InMemoryRecipientRateLimiter()
        return cls._rate_limiter

    @classmethod
    def delivery_provider(cls, delivery: DeliverySettings) -> DeliveryProviderPort:
        # Built per call: credentials are tenant-specific.
        name = ProviderName.parse(delivery.provider)
        if name is ProviderName.twilio:
            return TwilioProvider(delivery.credentials)
        elif name is ProviderName.bandwidth:
            return BandwidthProvider(delivery.credentials)
        elif name is ProviderName.messagebird:
            return MessageBirdProvider(delivery.credentials)
        else:
            return SandboxProvider(delivery.credentials)
