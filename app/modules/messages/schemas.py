import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field, model_validator
from app.modules.compliance.schemas import ComplianceVerdict

DeliveryStatus = Literal["pending", "sent", "delivered", "failed"]

# ---- Request ----

class MediaItem(BaseModel):
    kind: Literal["image", "video", "audio", "document"] = "image"
    url: str
    filename: str | None = None
    size: int = Field(default=0, ge=0)
    mime_type: str

class RecipientIn(BaseModel):
    phone_number: str = Field(..., min_length=2, max_length=20)
    name: str | None = None
    email: str | None = None
    age_verified: bool = False
    consent_given: bool = False
    consent_date: datetime | None = None
    opt_out: bool = False

class ContentIn(BaseModel):
    text: str | None = None
    media: list[MediaItem] = []
    template_id: uuid.UUID | None = None
    variables: dict[str, str] = {}

class SchedulingIn(BaseModel):
    scheduled_for: datetime | None = None
    timezone: str = "UTC"
    is_scheduled: bool = False
    is_recurring: bool = False
    recurrence_pattern: Literal["daily", "weekly", "monthly"] | None = None

    @model_validator(mode="after")
    def _check(self):
        if self.is_scheduled and self.scheduled_for is None:
            raise ValueError("scheduled_for is required when is_scheduled is true")
        if self.is_recurring and self.recurrence_pattern is None:
            raise ValueError("recurrence_pattern is required when is_recurring is true")
        return self

class CampaignIn(BaseModel):
    campaign_id: uuid.UUID | None = None
    campaign_name: str | None = None

class SendRequest(BaseModel):
    recipient: RecipientIn
    content: ContentIn
    scheduling: SchedulingIn | None = None
    campaign: CampaignIn | None = None
    metadata: dict = {}

class ResolvedContent(BaseModel):
    text: str = ""
    media: list[MediaItem] = []
    template_id: uuid.UUID | None = None

# ---- Outcomes ----

class ComplianceRejection(BaseModel):
    """Normal response shape for a send that failed compliance; nothing is persisted."""
    message: str = "Message failed compliance check"
    reasons: list[str]
    verdict: ComplianceVerdict

class SendOutcome(BaseModel):
    message_id: uuid.UUID | None = None
    status: Literal["sent", "scheduled", "rejected", "failed"]
    provider_message_id: str | None = None
    scheduled_for: datetime | None = None
    error: str | None = None
    rejection: ComplianceRejection | None = None

class WebhookIn(BaseModel):
    message_id: uuid.UUID = Field(..., alias="messageId")
    status: Literal["sent", "delivered", "failed", "undelivered"]
    error: str | None = None

    class Config:
        populate_by_name = True

class WebhookAck(BaseModel):
    message_id: uuid.UUID
    status: str
    applied: bool

# ---- Read models ----

class RecipientOut(BaseModel):
    phone_number: str
    name: str | None
    age_verified: bool
    consent_given: bool
    consent_date: datetime | None
    opt_out: bool

class ContentOut(BaseModel):
    text: str
    media: list[MediaItem]
    template_id: uuid.UUID | None

class DeliveryOut(BaseModel):
    status: str
    provider: str | None
    provider_message_id: str | None
    provider_response: dict | None
    sent_at: datetime | None
    delivered_at: datetime | None
    failure_reason: str | None
    retry_count: int
    max_retries: int

class ComplianceOut(BaseModel):
    age_verification_passed: bool
    consent_verified: bool
    content_screened: bool
    disclaimers_included: bool
    screening_results: dict | None

class SchedulingOut(BaseModel):
    scheduled_for: datetime | None
    timezone: str
    is_scheduled: bool
    is_recurring: bool
    recurrence_pattern: str | None

class MessageOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    sender_id: uuid.UUID
    recipient: RecipientOut
    content: ContentOut
    delivery: DeliveryOut
    compliance: ComplianceOut
    scheduling: SchedulingOut
    campaign: CampaignIn
    cost: dict
    metadata: dict
    created_at: datetime | None

    @classmethod
    def from_model(cls, m) -> "MessageOut":
        return cls(
            id=m.id,
            org_id=m.org_id,
            sender_id=m.sender_id,
            recipient=RecipientOut(
                phone_number=m.recipient_phone, name=m.recipient_name,
                age_verified=m.recipient_age_verified, consent_given=m.recipient_consent_given,
                consent_date=m.recipient_consent_at, opt_out=m.recipient_opt_out,
            ),
            content=ContentOut(text=m.text, media=m.media or [], template_id=m.template_id),
            delivery=DeliveryOut(
                status=m.status, provider=m.provider, provider_message_id=m.provider_message_id,
                provider_response=m.provider_response, sent_at=m.sent_at, delivered_at=m.delivered_at,
                failure_reason=m.failure_reason, retry_count=m.retry_count, max_retries=m.max_retries,
            ),
            compliance=ComplianceOut(
                age_verification_passed=m.age_verification_passed, consent_verified=m.consent_verified,
                content_screened=m.content_screened, disclaimers_included=m.disclaimers_included,
                screening_results=m.screening_results,
            ),
            scheduling=SchedulingOut(
                scheduled_for=m.scheduled_for, timezone=m.timezone, is_scheduled=m.is_scheduled,
                is_recurring=m.is_recurring, recurrence_pattern=m.recurrence_pattern,
            ),
            campaign=CampaignIn(campaign_id=m.campaign_id, campaign_name=m.campaign_name),
            cost={"amount": m.cost_amount, "currency": m.cost_currency},
            metadata=m.meta or {},
            created_at=m.created_at,
        )

class MessagePage(BaseModel):
    items: list[MessageOut]
    page: int
    pages: int
    total: int

# ---- Opt-outs ----

class OptOutCreate(BaseModel):
    phone_number: str = Field(..., min_length=2, max_length=20)
    reason: str | None = None

class OptOutOut(BaseModel):
    id: uuid.UUID
    phone_number: str
    source: str
    reason: str | None

    class Config:
        from_attributes = True
