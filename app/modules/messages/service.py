"""Dispatch orchestration: the fixed intake sequence for a send, plus the
retry, cancel, scheduled-dispatch and status-ingest entry points.

Send order is eligibility, opt-out, content, compliance, persist, dispatch.
Compliance always runs before a record exists; a rejected send leaves no
row behind. Provider failures are recorded on the message and reported as
a failed outcome rather than raised.
"""
import uuid
import logging
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.base import utcnow
from app.core.config import settings
from app.core.errors import (
    MessageNotFound, NotDispatchable, ProviderError, RecipientOptedOut,
    SenderNotEligible, StateError, StatusUnavailable, TenantNotFound,
)
from app.core.security import Principal
from app.modules.compliance.evaluator import ComplianceEvaluator
from app.modules.content.resolver import ContentResolver
from app.modules.delivery.phone import normalize_phone
from app.modules.delivery.pricing import estimate_cost
from app.modules.delivery.service import DeliveryService, ProviderFactory
from app.modules.messages.events import MessageEvents, MESSAGE_SENT, MESSAGE_FAILED, MESSAGE_STATUS_UPDATE
from app.modules.messages.lifecycle import MessageLifecycle, ComplianceFlags, ensure_sendable, FAILED, SENT
from app.modules.messages.models import Message
from app.modules.messages.repository import MessageRepository, OptOutRepository
from app.modules.messages.schemas import (
    ComplianceRejection, MessageOut, MessagePage, OptOutCreate, SendOutcome, SendRequest, WebhookAck,
)
from app.modules.templates.repository import TemplateRepository
from app.modules.tenants.repository import TenantRepository
from app.modules.tenants.schemas import TenantConfig
from app.platform.ports.event_bus import EventBusPort
from app.platform.ports.rate_limit import RecipientRateLimiterPort
from app.platform.provider_registry import ProviderRegistry

log = logging.getLogger("dispatch")

INTERNAL_DISPATCH_ERROR = "Internal dispatch error"


class DispatchOrchestrator:
    def __init__(self, session: AsyncSession, *,
                 rate_limiter: RecipientRateLimiterPort | None = None,
                 bus: EventBusPort | None = None,
                 provider_factory: ProviderFactory = ProviderRegistry.delivery_provider,
                 evaluator: ComplianceEvaluator | None = None,
                 clock=utcnow):
        self.session = session
        self.tenants = TenantRepository(session)
        self.messages = MessageRepository(session)
        self.opt_outs = OptOutRepository(session)
        self.resolver = ContentResolver(TemplateRepository(session))
        self.rate_limiter = rate_limiter or ProviderRegistry.rate_limiter()
        self.evaluator = evaluator or ComplianceEvaluator(self.rate_limiter)
        self.lifecycle = MessageLifecycle(session, clock=clock)
        self.events = MessageEvents(bus or ProviderRegistry.event_bus())
        self.provider_factory = provider_factory

    # ---- eligibility ----

    async def _eligible_tenant(self, org_id: uuid.UUID) -> TenantConfig:
        tenant = await self.tenants.get_config(org_id)
        if tenant is None:
            raise TenantNotFound(org_id)
        failed = tenant.standing_failures()
        if failed:
            log.info(f"tenant {org_id} not eligible to send: {failed}")
            raise SenderNotEligible(failed)
        return tenant

    async def _check_opt_out(self, principal: Principal, phone: str, requested: bool) -> None:
        if requested:
            await self.opt_outs.record(principal.org_id, phone, source="send_request")
            await self.session.commit()
            raise RecipientOptedOut(phone)
        if await self.opt_outs.is_opted_out(phone):
            raise RecipientOptedOut(phone)

    # ---- send ----

    async def send(self, principal: Principal, req: SendRequest) -> SendOutcome:
        tenant = await self._eligible_tenant(principal.org_id)
        phone = normalize_phone(req.recipient.phone_number)
        await self._check_opt_out(principal, phone, req.recipient.opt_out)

        content = await self.resolver.resolve(principal.org_id, req.content)
        await self.session.commit()

        recipient = req.recipient.model_copy(update={"phone_number": phone})
        verdict = await self.evaluator.evaluate(tenant, recipient, content)
        if not verdict.passed:
            return SendOutcome(
                status="rejected",
                rejection=ComplianceRejection(reasons=verdict.reasons, verdict=verdict),
            )

        scheduling = req.scheduling
        campaign = req.campaign
        m = await self.messages.create(
            principal.org_id,
            sender_id=principal.user_id,
            recipient_phone=phone,
            recipient_name=recipient.name,
            recipient_age_verified=recipient.age_verified,
            recipient_consent_given=recipient.consent_given,
            recipient_consent_at=recipient.consent_date,
            recipient_opt_out=False,
            text=content.text,
            media=[item.model_dump() for item in content.media],
            template_id=content.template_id,
            max_retries=settings.DEFAULT_MAX_RETRIES,
            age_verification_passed=verdict.age_verified,
            consent_verified=verdict.consent_verified,
            content_screened=verdict.content_screened,
            disclaimers_included=verdict.disclaimers_included,
            screening_results=verdict.screening.model_dump() if verdict.screening else None,
            scheduled_for=scheduling.scheduled_for if scheduling else None,
            timezone=scheduling.timezone if scheduling else "UTC",
            is_scheduled=bool(scheduling and scheduling.is_scheduled),
            is_recurring=bool(scheduling and scheduling.is_recurring),
            recurrence_pattern=scheduling.recurrence_pattern if scheduling else None,
            campaign_id=campaign.campaign_id if campaign else None,
            campaign_name=campaign.campaign_name if campaign else None,
            cost_amount=estimate_cost(len(content.media), tenant.delivery.provider),
            meta=req.metadata,
        )
        await self.session.commit()

        if m.is_scheduled:
            log.info(f"message {m.id} scheduled for {m.scheduled_for}")
            return SendOutcome(message_id=m.id, status="scheduled", scheduled_for=m.scheduled_for)
        return await self._dispatch(m, tenant)

    async def _dispatch(self, m: Message, tenant: TenantConfig) -> SendOutcome:
        ensure_sendable(ComplianceFlags.of(m))
        message_id = m.id
        # the usage slot and the row claim are both taken before the provider is called
        if not await self.tenants.reserve_usage(tenant.id):
            log.info(f"tenant {tenant.id} reached its message ceiling; message {message_id} not dispatched")
            raise SenderNotEligible(["usage_limit_reached"])
        await self.session.commit()
        try:
            m = await self.lifecycle.claim(m)
        except StateError:
            await self._release_usage(tenant.id)
            raise

        delivery = DeliveryService(tenant.delivery, self.provider_factory)
        media_urls = [item["url"] for item in (m.media or [])]
        try:
            receipt = await delivery.send(str(m.id), m.recipient_phone, m.text, media_urls)
        except ProviderError as e:
            log.warning(f"dispatch of message {m.id} failed: {e.message}")
            await self._release_usage(tenant.id)
            return await self._record_failure(m, e.message)
        except Exception:
            log.exception(f"unexpected error dispatching message {m.id}")
            await self._release_usage(tenant.id)
            return await self._record_failure(m, INTERNAL_DISPATCH_ERROR)

        m = await self.lifecycle.mark_sent(
            m, provider=receipt.provider, provider_message_id=receipt.provider_message_id,
            provider_response=receipt.raw_response,
        )
        await self.rate_limiter.record(tenant.id, m.recipient_phone)
        await self.events.publish(m.org_id, MESSAGE_SENT, m.id, SENT, m.recipient_phone)
        return SendOutcome(message_id=m.id, status="sent", provider_message_id=m.provider_message_id)

    async def _release_usage(self, tenant_id: uuid.UUID) -> None:
        await self.tenants.release_usage(tenant_id)
        await self.session.commit()

    async def _record_failure(self, m: Message, reason: str) -> SendOutcome:
        m = await self.lifecycle.mark_failed(m, reason)
        await self.events.publish(m.org_id, MESSAGE_FAILED, m.id, FAILED, m.recipient_phone, error=reason)
        return SendOutcome(message_id=m.id, status="failed", error=reason)

    # ---- follow-up operations ----

    async def get(self, principal: Principal, message_id: uuid.UUID) -> Message:
        m = await self.messages.get(principal.org_id, message_id)
        if m is None:
            raise MessageNotFound(message_id)
        return m

    async def list(self, principal: Principal, *, status: str | None = None, campaign_id: uuid.UUID | None = None,
                   start: datetime | None = None, end: datetime | None = None,
                   page: int = 1, limit: int = 20) -> MessagePage:
        items, total, pages = await self.messages.list(
            principal.org_id, status=status, campaign_id=campaign_id, start=start, end=end, page=page, limit=limit,
        )
        return MessagePage(items=[MessageOut.from_model(m) for m in items], page=page, pages=pages, total=total)

    async def retry(self, principal: Principal, message_id: uuid.UUID) -> SendOutcome:
        m = await self.get(principal, message_id)
        tenant = await self._eligible_tenant(principal.org_id)
        m = await self.lifecycle.retry(m)
        log.info(f"retrying message {m.id} ({m.retry_count}/{m.max_retries})")
        return await self._dispatch(m, tenant)

    async def cancel(self, principal: Principal, message_id: uuid.UUID) -> None:
        m = await self.get(principal, message_id)
        await self.lifecycle.cancel(m)

    async def dispatch_scheduled(self, principal: Principal, message_id: uuid.UUID) -> SendOutcome:
        m = await self.get(principal, message_id)
        if not (m.is_scheduled and m.status == "pending"):
            raise NotDispatchable(m.status, bool(m.is_scheduled))
        tenant = await self._eligible_tenant(principal.org_id)
        return await self._dispatch(m, tenant)

    async def refresh_status(self, principal: Principal, message_id: uuid.UUID) -> WebhookAck:
        m = await self.get(principal, message_id)
        if not m.provider_message_id:
            raise StatusUnavailable(m.id)
        tenant = await self.tenants.get_config(m.org_id)
        if tenant is None:
            raise TenantNotFound(m.org_id)
        report = await DeliveryService(tenant.delivery, self.provider_factory).fetch_status(m.provider_message_id)
        return await self.ingest_report(m, report.status, report.error_message)

    async def ingest_webhook(self, message_id: uuid.UUID, status: str, error: str | None = None) -> WebhookAck:
        m = await self.messages.get_any(message_id)
        if m is None:
            raise MessageNotFound(message_id)
        return await self.ingest_report(m, status, error)

    async def ingest_report(self, m: Message, status: str, error: str | None = None) -> WebhookAck:
        m, applied = await self.lifecycle.apply_provider_status(m, status, error)
        if applied:
            await self.events.publish(m.org_id, MESSAGE_STATUS_UPDATE, m.id, m.status, m.recipient_phone)
        return WebhookAck(message_id=m.id, status=m.status, applied=applied)

    async def record_opt_out(self, principal: Principal, payload: OptOutCreate):
        phone = normalize_phone(payload.phone_number)
        obj = await self.opt_outs.record(principal.org_id, phone, source="api", reason=payload.reason)
        await self.session.commit()
        log.info(f"recipient {phone} opted out via org {principal.org_id}")
        return obj
