"""
Pytest configuration and shared fixtures.

Settings are read at import time, so the test environment is set here
before any app module is imported. Every test gets its own SQLite file.
"""

import os
import uuid
from datetime import datetime, timezone

os.environ["ENV"] = "local"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_MANAGE"] = "create_all"
os.environ["EVENT_BUS_PROVIDER"] = "noop"
os.environ["RATE_LIMIT_PROVIDER"] = "memory"

import pytest
import httpx
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from app.core.base import Base
from app.core.db import get_session
from app.core.errors import ProviderSendFailed
from app.core.security import Principal, get_principal
import app.modules.tenants.models  # noqa: F401
import app.modules.templates.models  # noqa: F401
import app.modules.messages.models  # noqa: F401
from app.modules.compliance.evaluator import ComplianceEvaluator
from app.modules.messages.service import DispatchOrchestrator
from app.modules.tenants.repository import TenantRepository
from app.platform.adapters.bus_noop import NoopEventBus
from app.platform.adapters.ratelimit_memory import InMemoryRecipientRateLimiter
from app.platform.ports.delivery import OutboundMms, SendReceipt, StatusReport


ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
USER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
NOON = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
MIDNIGHT = datetime(2026, 10, 16, 0, 30, tzinfo=timezone.utc)


class FakeProvider:
    """In-memory delivery backend; records every outbound message."""

    name = "fake"

    def __init__(self):
        self.sent: list[OutboundMms] = []
        self.fail_with: Exception | None = None
        self.status = StatusReport(status="delivered", raw_status="delivered")

    async def send(self, message: OutboundMms) -> SendReceipt:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)
        sid = f"FAKE{len(self.sent)}"
        return SendReceipt(provider=self.name, provider_message_id=sid, raw_response={"id": sid})

    async def fetch_status(self, provider_message_id: str) -> StatusReport:
        return self.status


class BrokenBus:
    async def publish(self, topic, key, value, headers=None):
        raise ConnectionError("bus down")

    async def close(self):
        return None


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id=USER_ID, org_id=ORG_ID, roles=["admin"], scopes=["*"])


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def rate_limiter() -> InMemoryRecipientRateLimiter:
    return InMemoryRecipientRateLimiter(clock=lambda: NOON)


@pytest.fixture
def bus():
    return NoopEventBus()


@pytest.fixture
def build_orchestrator(provider, rate_limiter, bus):
    def build(session: AsyncSession, clock=lambda: NOON) -> DispatchOrchestrator:
        return DispatchOrchestrator(
            session,
            rate_limiter=rate_limiter,
            bus=bus,
            provider_factory=lambda delivery: provider,
            evaluator=ComplianceEvaluator(rate_limiter, clock=clock),
            clock=lambda: NOON,
        )
    return build


@pytest.fixture
def orchestrator(session, build_orchestrator) -> DispatchOrchestrator:
    return build_orchestrator(session)


@pytest.fixture
def make_tenant(session):
    async def make(org_id: uuid.UUID = ORG_ID, **overrides):
        data = dict(
            id=org_id,
            business_name="Green Leaf",
            business_type="cannabis",
            is_active=True,
            subscription_status="active",
            messages_used=0,
            messages_limit=1000,
            compliance_status="compliant",
            compliance_settings={},
            delivery_settings={"provider": "sandbox", "credentials": {"from_number": "+15550000000"}},
        )
        data.update(overrides)
        tenant = await TenantRepository(session).create(**data)
        await session.commit()
        return tenant
    return make


@pytest.fixture
async def tenant(make_tenant):
    return await make_tenant()


@pytest.fixture
async def client(session_factory, build_orchestrator, principal):
    """API client over the ASGI app with storage and collaborators swapped for test doubles."""
    from fastapi import Depends
    from app.main import app
    from app.modules.messages import router as messages_router

    async def test_session():
        async with session_factory() as s:
            yield s

    def test_orchestrator(session: AsyncSession = Depends(get_session)) -> DispatchOrchestrator:
        return build_orchestrator(session)

    app.dependency_overrides[get_session] = test_session
    app.dependency_overrides[get_principal] = lambda: principal
    app.dependency_overrides[messages_router.orchestrator] = test_orchestrator
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def verified_recipient(phone: str = "+15551234567", **overrides) -> dict:
    data = {"phone_number": phone, "name": "Alex", "age_verified": True, "consent_given": True}
    data.update(overrides)
    return data


def transport_error(provider: str = "fake") -> ProviderSendFailed:
    return ProviderSendFailed(provider, "connection reset by peer")
