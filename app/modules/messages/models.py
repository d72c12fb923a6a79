import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, Integer, Boolean, Float, TIMESTAMP
from app.core.base import Base, TimestampedTenantMixin

class Message(Base, TimestampedTenantMixin):
    sender_id: Mapped[uuid.UUID] = mapped_column()

    # Recipient
    recipient_phone: Mapped[str] = mapped_column(String(20), index=True)
    recipient_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    recipient_age_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    recipient_consent_given: Mapped[bool] = mapped_column(Boolean, default=False)
    recipient_consent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    recipient_opt_out: Mapped[bool] = mapped_column(Boolean, default=False)

    # Content
    text: Mapped[str] = mapped_column(Text, default="")
    media: Mapped[list] = mapped_column(JSON, default=list)
    template_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    # Delivery; written only through messages.lifecycle
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)  # pending | sent | delivered | failed
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    provider_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    in_flight: Mapped[bool] = mapped_column(Boolean, default=False)  # claimed for a provider call

    # Compliance verdict as recorded at intake
    age_verification_passed: Mapped[bool] = mapped_column(Boolean, default=False)
    consent_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    content_screened: Mapped[bool] = mapped_column(Boolean, default=False)
    disclaimers_included: Mapped[bool] = mapped_column(Boolean, default=False)
    screening_results: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Scheduling
    scheduled_for: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    is_scheduled: Mapped[bool] = mapped_column(Boolean, default=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(16), nullable=True)  # daily | weekly | monthly

    campaign_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    campaign_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    cost_amount: Mapped[float] = mapped_column(Float, default=0.0)
    cost_currency: Mapped[str] = mapped_column(String(3), default="USD")

    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)

class RecipientOptOut(Base, TimestampedTenantMixin):
    phone_number: Mapped[str] = mapped_column(String(20), index=True)
    source: Mapped[str] = mapped_column(String(32), default="api")  # api | send_request | provider
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
