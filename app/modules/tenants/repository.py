import uuid
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.tenants.models import Tenant
from app.modules.tenants.schemas import TenantConfig, ComplianceSettings, DeliverySettings

class TenantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Tenant:
        obj = Tenant(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, tenant_id: uuid.UUID) -> Tenant | None:
        res = await self.session.execute(select(Tenant).where(Tenant.id == tenant_id))
        return res.scalar_one_or_none()

    async def get_config(self, tenant_id: uuid.UUID) -> TenantConfig | None:
        t = await self.get(tenant_id)
        if not t:
            return None
        return TenantConfig(
            id=t.id,
            business_name=t.business_name,
            is_active=t.is_active,
            subscription_status=t.subscription_status,
            messages_used=t.messages_used,
            messages_limit=t.messages_limit,
            compliance_status=t.compliance_status,
            compliance=ComplianceSettings.model_validate(t.compliance_settings or {}),
            delivery=DeliverySettings.model_validate(t.delivery_settings or {}),
        )

    async def reserve_usage(self, tenant_id: uuid.UUID) -> bool:
        # increment-with-ceiling in one statement; False when the ceiling was already reached
        q = (
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.messages_used < Tenant.messages_limit)
            .values(messages_used=Tenant.messages_used + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        await self.session.flush()
        return res.rowcount == 1

    async def release_usage(self, tenant_id: uuid.UUID) -> None:
        q = (
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.messages_used > 0)
            .values(messages_used=Tenant.messages_used - 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(q)
        await self.session.flush()
