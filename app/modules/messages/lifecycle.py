"""Delivery state machine for a Message.

Transitions are pure functions over DeliveryState values; MessageLifecycle
loads the current state from a row, applies a transition and persists the
result in one guarded UPDATE. Nothing else writes delivery columns.

    pending -> sent -> delivered
    pending -> sent -> failed
    pending -> failed
    failed  -> (retry) failed -> sent | failed
    pending (scheduled) -> cancelled (row removed)

A dispatch first claims the row (in_flight) so that only one caller can
reach the provider for a given attempt; marking sent or failed releases it.
"""
import logging
from dataclasses import dataclass, replace, asdict
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.base import utcnow
from app.core.errors import (
    ComplianceIncomplete, DispatchInProgress, IllegalTransition, NotRetryable, NotCancellable,
)
from app.modules.messages.models import Message
from app.modules.messages.repository import MessageRepository

log = logging.getLogger("messages.lifecycle")

PENDING, SENT, DELIVERED, FAILED = "pending", "sent", "delivered", "failed"


@dataclass(frozen=True)
class DeliveryState:
    status: str = PENDING
    provider: str | None = None
    provider_message_id: str | None = None
    provider_response: dict | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    failure_reason: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    in_flight: bool = False

    @classmethod
    def of(cls, m: Message) -> "DeliveryState":
        return cls(
            status=m.status,
            provider=m.provider,
            provider_message_id=m.provider_message_id,
            provider_response=m.provider_response,
            sent_at=m.sent_at,
            delivered_at=m.delivered_at,
            failure_reason=m.failure_reason,
            retry_count=m.retry_count,
            max_retries=m.max_retries,
            in_flight=bool(m.in_flight),
        )

    def as_values(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ComplianceFlags:
    age_verification_passed: bool
    consent_verified: bool

    @classmethod
    def of(cls, m: Message) -> "ComplianceFlags":
        return cls(bool(m.age_verification_passed), bool(m.consent_verified))

    @property
    def satisfied(self) -> bool:
        return self.age_verification_passed and self.consent_verified


# ---- Pure transitions ----

def ensure_sendable(compliance: ComplianceFlags) -> None:
    if not compliance.satisfied:
        raise ComplianceIncomplete(compliance.age_verification_passed, compliance.consent_verified)


def mark_sent(state: DeliveryState, compliance: ComplianceFlags, *, provider: str | None,
              provider_message_id: str | None, provider_response: dict | None, now: datetime) -> DeliveryState:
    ensure_sendable(compliance)
    if state.status not in (PENDING, FAILED):
        raise IllegalTransition(state.status, SENT)
    return replace(
        state,
        status=SENT,
        provider=provider or state.provider,
        provider_message_id=provider_message_id or state.provider_message_id,
        provider_response=provider_response if provider_response is not None else state.provider_response,
        sent_at=now,
        failure_reason=None,
        in_flight=False,
    )


def mark_delivered(state: DeliveryState, *, now: datetime) -> DeliveryState:
    if state.status == DELIVERED:
        return state
    if state.status != SENT:
        raise IllegalTransition(state.status, DELIVERED)
    return replace(state, status=DELIVERED, delivered_at=now)


def mark_failed(state: DeliveryState, reason: str) -> DeliveryState:
    if state.status == DELIVERED:
        raise IllegalTransition(state.status, FAILED)
    if state.status == FAILED and state.failure_reason == reason and not state.in_flight:
        return state
    return replace(state, status=FAILED, failure_reason=reason, in_flight=False)


def claim(state: DeliveryState, message_id) -> DeliveryState:
    if state.status not in (PENDING, FAILED):
        raise IllegalTransition(state.status, SENT)
    if state.in_flight:
        raise DispatchInProgress(message_id)
    return replace(state, in_flight=True)


def can_retry(state: DeliveryState) -> bool:
    return state.status == FAILED and state.retry_count < state.max_retries and not state.in_flight


def retry(state: DeliveryState) -> DeliveryState:
    if not can_retry(state):
        raise NotRetryable(state.status, state.retry_count, state.max_retries)
    return replace(state, retry_count=state.retry_count + 1)


def can_cancel(m: Message) -> bool:
    return bool(m.is_scheduled) and m.status == PENDING and not m.in_flight


def for_provider_status(state: DeliveryState, compliance: ComplianceFlags, status: str,
                        error: str | None, now: datetime) -> DeliveryState | None:
    """Transition for an out-of-band provider report, or None when it does not apply.

    Replays and reports that arrive after a terminal state are ignored
    rather than rejected, so callbacks can be acknowledged unconditionally.
    """
    if status == DELIVERED:
        return mark_delivered(state, now=now) if state.status in (SENT, DELIVERED) else None
    if status == SENT:
        # a pending row has no provider reference until our own send returns
        if state.status != PENDING or not state.provider_message_id or not compliance.satisfied:
            return None
        return mark_sent(state, compliance, provider=None, provider_message_id=None,
                         provider_response=None, now=now)
    if status in (FAILED, "undelivered"):
        if state.status in (DELIVERED, FAILED):
            return None
        return mark_failed(state, error or status)
    if status == PENDING:
        return None
    raise IllegalTransition(state.status, status)


# ---- Persistence ----

class MessageLifecycle:
    """Single writer of delivery status."""

    def __init__(self, session: AsyncSession, clock=utcnow):
        self.session = session
        self.repo = MessageRepository(session)
        self.clock = clock

    async def _persist(self, m: Message, new: DeliveryState) -> Message:
        if new == DeliveryState.of(m):
            return m
        m = await self.repo.save_delivery(m, new.as_values())
        await self.session.commit()
        log.debug(f"message {m.id} -> {m.status} (retry {m.retry_count}/{m.max_retries})")
        return m

    async def mark_sent(self, m: Message, *, provider: str, provider_message_id: str, provider_response: dict | None) -> Message:
        new = mark_sent(DeliveryState.of(m), ComplianceFlags.of(m), provider=provider,
                        provider_message_id=provider_message_id, provider_response=provider_response, now=self.clock())
        return await self._persist(m, new)

    async def mark_delivered(self, m: Message) -> Message:
        return await self._persist(m, mark_delivered(DeliveryState.of(m), now=self.clock()))

    async def mark_failed(self, m: Message, reason: str) -> Message:
        return await self._persist(m, mark_failed(DeliveryState.of(m), reason))

    async def claim(self, m: Message) -> Message:
        return await self._persist(m, claim(DeliveryState.of(m), m.id))

    async def retry(self, m: Message) -> Message:
        return await self._persist(m, retry(DeliveryState.of(m)))

    async def cancel(self, m: Message) -> None:
        if not can_cancel(m):
            raise NotCancellable(m.status, bool(m.is_scheduled))
        await self.repo.delete_pending_scheduled(m)
        await self.session.commit()
        log.info(f"scheduled message {m.id} cancelled")

    async def apply_provider_status(self, m: Message, status: str, error: str | None = None) -> tuple[Message, bool]:
        before = DeliveryState.of(m)
        new = for_provider_status(before, ComplianceFlags.of(m), status, error, self.clock())
        if new is None or new == before:
            log.info(f"provider status '{status}' for message {m.id} ignored in state {m.status}")
            return m, False
        return await self._persist(m, new), True
