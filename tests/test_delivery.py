"""
Tests for provider selection, phone normalization, cost estimation and
the HTTP-backed provider adapters (over httpx.MockTransport, no network).
"""

import json

import httpx
import pytest

from app.core.errors import (
    InvalidPhoneNumber, ProviderMisconfigured, ProviderSendFailed, ProviderStatusFailed, UnsupportedProvider,
)
from app.modules.delivery.phone import normalize_phone
from app.modules.delivery.pricing import estimate_cost
from app.modules.delivery.service import DeliveryService
from app.modules.tenants.schemas import DeliverySettings
from app.platform.adapters.delivery_bandwidth import BandwidthProvider
from app.platform.adapters.delivery_messagebird import MessageBirdProvider
from app.platform.adapters.delivery_sandbox import SandboxProvider
from app.platform.adapters.delivery_twilio import TwilioProvider
from app.platform.ports.delivery import OutboundMms
from app.platform import provider_registry
from app.platform.provider_registry import ProviderRegistry

from conftest import FakeProvider


BANDWIDTH_CREDS = {"account_id": "9900", "username": "api", "password": "secret", "from_number": "+15550001111"}
MESSAGEBIRD_CREDS = {"api_key": "live_abc", "from_number": "+15550002222"}


def outbound(**overrides) -> OutboundMms:
    data = {"message_id": "m-1", "to": "+15551234567", "text": "Hello", "media_urls": ["https://cdn.example/a.png"]}
    data.update(overrides)
    return OutboundMms(**data)


class TestPhoneNormalization:
    """E.164-like validation and prefixing."""

    @pytest.mark.parametrize("raw,expected", [
        ("+15551234567", "+15551234567"),
        ("5551234567", "+15551234567"),
        ("(555) 123-4567", "+15551234567"),
        ("447911123456", "+447911123456"),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_explicit_country_code(self):
        assert normalize_phone("5551234567", country_code="44") == "+445551234567"

    @pytest.mark.parametrize("raw", ["", "abc", "+0123456789", "1234567890123456", "+"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidPhoneNumber):
            normalize_phone(raw)


class TestCostEstimate:
    """Reporting-only pricing."""

    @pytest.mark.parametrize("media,provider,expected", [
        (0, "twilio", 0.012),
        (1, "twilio", 0.036),
        (2, "bandwidth", 0.04),
        (1, "messagebird", 0.033),
        (3, "sandbox", 0.07),
    ])
    def test_estimates(self, media, provider, expected):
        assert estimate_cost(media, provider) == pytest.approx(expected)


class TestProviderSelection:
    """Closed set of providers keyed by tenant configuration."""

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProvider) as exc:
            ProviderRegistry.delivery_provider(DeliverySettings(provider="carrier-pigeon"))

        assert exc.value.message == "Unsupported MMS provider: carrier-pigeon"

    @pytest.mark.parametrize("name,creds,missing", [
        ("twilio", {"account_sid": "AC1"}, ["auth_token", "from_number"]),
        ("bandwidth", {"account_id": "9900", "username": "api"}, ["password", "from_number"]),
        ("messagebird", {}, ["api_key", "from_number"]),
        ("sandbox", {}, ["from_number"]),
    ])
    def test_missing_credentials(self, name, creds, missing):
        with pytest.raises(ProviderMisconfigured) as exc:
            ProviderRegistry.delivery_provider(DeliverySettings(provider=name, credentials=creds))

        assert exc.value.details["missing"] == missing

    @pytest.mark.parametrize("name,creds,cls", [
        ("twilio", {"account_sid": "AC1", "auth_token": "t", "from_number": "+15550000000"}, TwilioProvider),
        ("Bandwidth", BANDWIDTH_CREDS, BandwidthProvider),
        ("messagebird", MESSAGEBIRD_CREDS, MessageBirdProvider),
        ("sandbox", {"from_number": "+15550000000"}, SandboxProvider),
    ])
    def test_selects_variant(self, name, creds, cls):
        provider = ProviderRegistry.delivery_provider(DeliverySettings(provider=name, credentials=creds))

        assert isinstance(provider, cls)

    def test_registry_is_used_through_its_classmethods(self):
        assert not hasattr(provider_registry, "registry")
        assert ProviderRegistry.rate_limiter() is ProviderRegistry.rate_limiter()


class TestDeliveryService:
    """Normalization before send and uniform error wrapping."""

    async def test_normalizes_recipient_before_send(self):
        fake = FakeProvider()
        service = DeliveryService(DeliverySettings(provider="fake"), factory=lambda d: fake)

        receipt = await service.send("m-1", "5551234567", "Hello", [])

        assert fake.sent[0].to == "+15551234567"
        assert receipt.provider_message_id == "FAKE1"

    async def test_backend_exception_is_wrapped(self):
        fake = FakeProvider()
        fake.fail_with = OSError("connection reset")
        service = DeliveryService(DeliverySettings(provider="fake"), factory=lambda d: fake)

        with pytest.raises(ProviderSendFailed) as exc:
            await service.send("m-1", "+15551234567", "Hello", [])

        assert exc.value.message == "fake error: connection reset"

    async def test_sandbox_round_trip(self):
        service = DeliveryService(DeliverySettings(provider="sandbox", credentials={"from_number": "+15550000000"}))

        receipt = await service.send("m-1", "+15551234567", "Hello", [])
        report = await service.fetch_status(receipt.provider_message_id)

        assert receipt.provider_message_id.startswith("SBX")
        assert report.status == "delivered"


class TestBandwidthProvider:
    """Bandwidth messaging API v2."""

    async def test_send_posts_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(202, json={"id": "bw-123", "owner": "+15550001111"})

        provider = BandwidthProvider(BANDWIDTH_CREDS, transport=httpx.MockTransport(handler))
        receipt = await provider.send(outbound())

        assert receipt.provider_message_id == "bw-123"
        assert seen["url"].endswith("/users/9900/messages")
        assert seen["body"]["to"] == ["+15551234567"]
        assert seen["body"]["media"] == ["https://cdn.example/a.png"]
        assert seen["auth"].startswith("Basic ")

    async def test_send_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"type": "request-validation", "description": "Invalid to number"})

        provider = BandwidthProvider(BANDWIDTH_CREDS, transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderSendFailed) as exc:
            await provider.send(outbound())

        assert exc.value.message == "bandwidth error: Invalid to number"

    async def test_transport_failure_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        provider = BandwidthProvider(BANDWIDTH_CREDS, transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderSendFailed):
            await provider.send(outbound())

    async def test_fetch_status_maps_vocabulary(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["messageId"] == "bw-123"
            return httpx.Response(200, json={"messages": [{"messageStatus": "DELIVERED", "receiveTime": "2026-10-16T12:00:00Z"}]})

        provider = BandwidthProvider(BANDWIDTH_CREDS, transport=httpx.MockTransport(handler))
        report = await provider.fetch_status("bw-123")

        assert report.status == "delivered"
        assert report.raw_status == "delivered"


class TestMessageBirdProvider:
    """MessageBird REST API."""

    async def test_send_uses_access_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "mb-9"})

        provider = MessageBirdProvider(MESSAGEBIRD_CREDS, transport=httpx.MockTransport(handler))
        receipt = await provider.send(outbound())

        assert receipt.provider_message_id == "mb-9"
        assert seen["auth"] == "AccessKey live_abc"
        assert seen["body"]["recipients"] == ["+15551234567"]
        assert seen["body"]["mediaUrls"] == ["https://cdn.example/a.png"]

    async def test_error_description_surfaces(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"errors": [{"code": 9, "description": "no (correct) recipients found"}]})

        provider = MessageBirdProvider(MESSAGEBIRD_CREDS, transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderSendFailed) as exc:
            await provider.send(outbound())

        assert exc.value.message == "messagebird error: no (correct) recipients found"

    async def test_status_failure_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="oops")

        provider = MessageBirdProvider(MESSAGEBIRD_CREDS, transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderStatusFailed):
            await provider.fetch_status("mb-9")


class TestTwilioProvider:
    """Twilio SDK adapter with the REST client stubbed out."""

    async def test_sdk_error_is_wrapped(self):
        from twilio.base.exceptions import TwilioRestException

        class Messages:
            def create(self, **kwargs):
                raise TwilioRestException(400, "/Messages", msg="The 'To' number is not valid")

        class Client:
            messages = Messages()

        provider = TwilioProvider({"account_sid": "AC1", "auth_token": "t", "from_number": "+15550000000"}, client=Client())
        with pytest.raises(ProviderSendFailed) as exc:
            await provider.send(outbound())

        assert exc.value.provider == "twilio"
        assert "The 'To' number is not valid" in exc.value.raw_message
