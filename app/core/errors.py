"""Error taxonomy for the dispatch pipeline.

Every error a caller can act on derives from GatewayError and carries an
HTTP status, a stable machine code and a detail payload. The FastAPI
handler in app.main renders them uniformly. Compliance rejections are
not errors: see ComplianceRejection in app.modules.messages.schemas.
"""
from typing import Any


class GatewayError(Exception):
    status_code: int = 500
    code: str = "gateway_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "detail": self.details}


# ---- Validation (malformed input) ----

class ValidationError(GatewayError):
    status_code = 400
    code = "validation_error"


class ContentTooLong(ValidationError):
    code = "content_too_long"

    def __init__(self, length: int, limit: int):
        super().__init__(
            f"Message text is {length} characters; the limit is {limit}",
            {"length": length, "limit": limit},
        )


class MissingRequiredVariable(ValidationError):
    code = "missing_required_variable"

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            "Template validation failed",
            {"missing": self.missing, "errors": [f"Required variable '{n}' is missing" for n in self.missing]},
        )


class InvalidPhoneNumber(ValidationError):
    code = "invalid_phone_number"

    def __init__(self, value: str):
        super().__init__("Invalid phone number format", {"value": value})


# ---- Not found / not owned ----

class NotFoundError(GatewayError):
    status_code = 404
    code = "not_found"


class TenantNotFound(NotFoundError):
    code = "tenant_not_found"

    def __init__(self, tenant_id):
        super().__init__("Tenant not found", {"tenant_id": str(tenant_id)})


class TemplateNotFound(NotFoundError):
    code = "template_not_found"

    def __init__(self, template_id):
        super().__init__("Template not found", {"template_id": str(template_id)})


class MessageNotFound(NotFoundError):
    code = "message_not_found"

    def __init__(self, message_id):
        super().__init__("Message not found", {"message_id": str(message_id)})


# ---- Eligibility ----

class EligibilityError(GatewayError):
    status_code = 403
    code = "not_eligible"


class SenderNotEligible(EligibilityError):
    code = "sender_not_eligible"

    def __init__(self, failed_checks: list[str]):
        super().__init__(
            "Client cannot send messages. Check subscription status and compliance.",
            {"failed_checks": list(failed_checks)},
        )


class RecipientOptedOut(EligibilityError):
    status_code = 400
    code = "recipient_opted_out"

    def __init__(self, phone_number: str):
        super().__init__("Recipient has opted out of messages", {"phone_number": phone_number})


# ---- Provider ----

class ProviderError(GatewayError):
    status_code = 502
    code = "provider_error"


class UnsupportedProvider(ProviderError):
    status_code = 400
    code = "unsupported_provider"

    def __init__(self, name: str | None):
        super().__init__(f"Unsupported MMS provider: {name}", {"provider": name})


class ProviderMisconfigured(ProviderError):
    status_code = 400
    code = "provider_misconfigured"

    def __init__(self, provider: str, missing: list[str]):
        super().__init__(
            f"{provider} credentials not configured: missing {', '.join(missing)}",
            {"provider": provider, "missing": list(missing)},
        )


class ProviderSendFailed(ProviderError):
    code = "provider_send_failed"

    def __init__(self, provider: str, raw_message: str):
        self.provider = provider
        self.raw_message = raw_message
        super().__init__(f"{provider} error: {raw_message}", {"provider": provider})


class ProviderStatusFailed(ProviderError):
    code = "provider_status_failed"

    def __init__(self, provider: str, raw_message: str):
        super().__init__(f"{provider} status error: {raw_message}", {"provider": provider})


# ---- Lifecycle ----

class StateError(GatewayError):
    status_code = 409
    code = "illegal_state"


class NotRetryable(StateError):
    code = "not_retryable"

    def __init__(self, status: str, retry_count: int, max_retries: int):
        super().__init__(
            "Message cannot be retried. Max retries exceeded or not in failed status.",
            {"status": status, "retry_count": retry_count, "max_retries": max_retries},
        )


class NotCancellable(StateError):
    code = "not_cancellable"

    def __init__(self, status: str, is_scheduled: bool):
        super().__init__(
            "Only scheduled messages that are still pending can be cancelled",
            {"status": status, "is_scheduled": is_scheduled},
        )


class NotDispatchable(StateError):
    code = "not_dispatchable"

    def __init__(self, status: str, is_scheduled: bool):
        super().__init__(
            "Only scheduled messages that are still pending can be dispatched",
            {"status": status, "is_scheduled": is_scheduled},
        )


class ComplianceIncomplete(StateError):
    code = "compliance_incomplete"

    def __init__(self, age_verification_passed: bool, consent_verified: bool):
        super().__init__(
            "Age verification and consent are required before sending message",
            {"age_verification_passed": age_verification_passed, "consent_verified": consent_verified},
        )


class ConcurrentTransition(StateError):
    code = "concurrent_transition"

    def __init__(self, message_id):
        super().__init__("Message was modified concurrently; reload and retry", {"message_id": str(message_id)})


class IllegalTransition(StateError):
    code = "illegal_transition"

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move message from {current} to {target}", {"from": current, "to": target})


class StatusUnavailable(StateError):
    code = "status_unavailable"

    def __init__(self, message_id):
        super().__init__("Message has no provider reference to poll", {"message_id": str(message_id)})


class DispatchInProgress(StateError):
    code = "dispatch_in_progress"

    def __init__(self, message_id):
        super().__init__("Message is already being dispatched", {"message_id": str(message_id)})
