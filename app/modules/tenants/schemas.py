import uuid
from pydantic import BaseModel, Field

class ComplianceSettings(BaseModel):
    age_verification_required: bool = True
    consent_required: bool = True
    max_messages_per_day: int = Field(default=5, ge=1)
    restricted_keywords: list[str] = []
    required_disclaimers: list[str] = []
    allowed_media_types: list[str] = []  # MIME types; empty means the built-in set
    opt_out_message: str = "Reply STOP to opt out of messages. Reply HELP for help."

class DeliverySettings(BaseModel):
    provider: str = "twilio"
    credentials: dict[str, str] = {}
    daily_limit: int = 1000
    monthly_limit: int = 10000

class TenantConfig(BaseModel):
    """Read-only view of a tenant as the dispatch pipeline consumes it."""
    id: uuid.UUID
    business_name: str
    is_active: bool
    subscription_status: str
    messages_used: int
    messages_limit: int
    compliance_status: str
    compliance: ComplianceSettings
    delivery: DeliverySettings

    def standing_failures(self) -> list[str]:
        """Names of the eligibility checks this tenant currently fails."""
        failed = []
        if not (self.is_active and self.subscription_status == "active"):
            failed.append("subscription_inactive")
        if self.messages_used >= self.messages_limit:
            failed.append("usage_limit_reached")
        if self.compliance_status != "compliant":
            failed.append("compliance_standing")
        return failed

    def can_send(self) -> bool:
        return not self.standing_failures()
