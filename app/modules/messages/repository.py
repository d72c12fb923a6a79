import math
import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy import select, update, delete, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConcurrentTransition
from app.modules.messages.models import Message, RecipientOptOut

class MessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Message:
        obj = Message(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def get(self, org_id: uuid.UUID, message_id: uuid.UUID) -> Message | None:
        q = select(Message).where(
            Message.id == message_id,
            Message.org_id == org_id,
            Message.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_any(self, message_id: uuid.UUID) -> Message | None:
        # provider callbacks carry no tenant context
        res = await self.session.execute(select(Message).where(Message.id == message_id, Message.deleted_at.is_(None)))
        return res.scalar_one_or_none()

    async def get_by_provider_id(self, provider_message_id: str) -> Message | None:
        q = select(Message).where(Message.provider_message_id == provider_message_id, Message.deleted_at.is_(None))
        res = await self.session.execute(q)
        return res.scalars().first()

    async def list(self, org_id: uuid.UUID, *, status: str | None = None, campaign_id: uuid.UUID | None = None,
                   start: datetime | None = None, end: datetime | None = None,
                   page: int = 1, limit: int = 20) -> tuple[Sequence[Message], int, int]:
        conditions = [Message.org_id == org_id, Message.deleted_at.is_(None)]
        if status:      conditions.append(Message.status == status)
        if campaign_id: conditions.append(Message.campaign_id == campaign_id)
        if start:       conditions.append(Message.created_at >= start)
        if end:         conditions.append(Message.created_at <= end)
        total = (await self.session.execute(select(func.count()).select_from(Message).where(and_(*conditions)))).scalar_one()
        q = (
            select(Message).where(and_(*conditions))
            .order_by(Message.created_at.desc())
            .limit(limit).offset((page - 1) * limit)
        )
        res = await self.session.execute(q)
        return res.scalars().all(), total, math.ceil(total / limit) if limit else 0

    async def save_delivery(self, m: Message, values: dict) -> Message:
        # optimistic check: the row must still carry the version we read
        q = (
            update(Message)
            .where(Message.id == m.id, Message.version == m.version)
            .values(**values, version=m.version + 1)
            .execution_options(synchronize_session=False)
        )
        message_id = m.id
        res = await self.session.execute(q)
        if res.rowcount != 1:
            # rollback expires m; its attributes are not readable past this point
            await self.session.rollback()
            raise ConcurrentTransition(message_id)
        await self.session.flush()
        await self.session.refresh(m)
        return m

    async def delete_pending_scheduled(self, m: Message) -> None:
        q = delete(Message).where(
            Message.id == m.id,
            Message.version == m.version,
            Message.status == "pending",
            Message.is_scheduled.is_(True),
            Message.in_flight.is_(False),
        ).execution_options(synchronize_session=False)
        message_id = m.id
        res = await self.session.execute(q)
        if res.rowcount != 1:
            await self.session.rollback()
            raise ConcurrentTransition(message_id)
        self.session.expunge(m)

class OptOutRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, org_id: uuid.UUID, phone_number: str, *, source: str, reason: str | None = None) -> RecipientOptOut:
        existing = await self.find(phone_number)
        if existing:
            return existing
        obj = RecipientOptOut(org_id=org_id, phone_number=phone_number, source=source, reason=reason)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def find(self, phone_number: str) -> RecipientOptOut | None:
        # opt-outs are recipient-level: any tenant's record blocks the address
        q = select(RecipientOptOut).where(
            RecipientOptOut.phone_number == phone_number,
            RecipientOptOut.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalars().first()

    async def is_opted_out(self, phone_number: str) -> bool:
        return await self.find(phone_number) is not None
