import uuid
from datetime import datetime, timezone
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.templates.models import MessageTemplate
from app.modules.templates.schemas import TemplateView

class TemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> MessageTemplate:
        obj = MessageTemplate(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_template(self, template_id: uuid.UUID, org_id: uuid.UUID) -> TemplateView | None:
        # ownership is part of the lookup: another tenant's template is "not found"
        q = select(MessageTemplate).where(
            MessageTemplate.id == template_id,
            MessageTemplate.org_id == org_id,
            MessageTemplate.is_active.is_(True),
            MessageTemplate.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        obj = res.scalar_one_or_none()
        return TemplateView.model_validate(obj) if obj else None

    async def increment_usage(self, template_id: uuid.UUID) -> None:
        q = (
            update(MessageTemplate)
            .where(MessageTemplate.id == template_id)
            .values(total_sent=MessageTemplate.total_sent + 1, last_used_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(q)
        await self.session.flush()
