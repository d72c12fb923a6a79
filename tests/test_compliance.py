"""
Tests for the compliance evaluator.

Every check runs on every call, so a verdict carries all failure reasons
at once. Tenant lists override the built-in defaults when non-empty.
"""

import uuid
from datetime import datetime

import pytest

from app.modules.compliance.evaluator import ComplianceEvaluator, ComplianceDefaults
from app.modules.messages.schemas import MediaItem, RecipientIn, ResolvedContent
from app.modules.tenants.schemas import ComplianceSettings, DeliverySettings, TenantConfig
from app.platform.adapters.ratelimit_memory import InMemoryRecipientRateLimiter

from conftest import NOON, MIDNIGHT


def make_tenant(**compliance) -> TenantConfig:
    return TenantConfig(
        id=uuid.uuid4(),
        business_name="Green Leaf",
        is_active=True,
        subscription_status="active",
        messages_used=0,
        messages_limit=100,
        compliance_status="compliant",
        compliance=ComplianceSettings(**compliance),
        delivery=DeliverySettings(provider="sandbox"),
    )


def recipient(**overrides) -> RecipientIn:
    data = {"phone_number": "+15551234567", "age_verified": True, "consent_given": True}
    data.update(overrides)
    return RecipientIn(**data)


def content(text: str = "Fresh arrivals this week", media: list[MediaItem] | None = None) -> ResolvedContent:
    return ResolvedContent(text=text, media=media or [])


@pytest.fixture
def limiter():
    return InMemoryRecipientRateLimiter(clock=lambda: NOON)


@pytest.fixture
def evaluator(limiter):
    return ComplianceEvaluator(limiter, clock=lambda: NOON)


class TestVerification:
    """Age and consent checks."""

    async def test_unverified_recipient_fails_both(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(age_verified=False, consent_given=False), content())

        assert verdict.passed is False
        assert verdict.reasons[:2] == ["Age verification required", "Consent verification required"]
        assert verdict.age_verified is False
        assert verdict.consent_verified is False

    async def test_checks_pass_when_tenant_does_not_require_them(self, evaluator):
        tenant = make_tenant(age_verification_required=False, consent_required=False)
        verdict = await evaluator.evaluate(tenant, recipient(age_verified=False, consent_given=False), content())

        assert verdict.passed is True
        assert verdict.age_verified is True
        assert verdict.consent_verified is True

    async def test_fully_verified_recipient_passes(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content())

        assert verdict.passed is True
        assert verdict.reasons == []


class TestContentScreening:
    """Keyword, pattern, media and length screening."""

    async def test_default_keywords_apply_when_tenant_list_empty(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("New kush strain in stock"))

        assert verdict.passed is False
        assert verdict.content_screened is False
        assert verdict.screening.screened is True
        assert verdict.screening.approved is False
        assert "kush" in verdict.screening.flagged_keywords
        assert verdict.reasons == ["Content failed screening: Content contains restricted keywords: kush, strain"]

    async def test_tenant_keywords_replace_defaults(self, evaluator):
        tenant = make_tenant(restricted_keywords=["Discount"])
        verdict = await evaluator.evaluate(tenant, recipient(), content("Kush DISCOUNT today"))

        assert verdict.screening.flagged_keywords == ["Discount"]

    async def test_keyword_reason_reported_before_pattern(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("No weed for any minor"))

        assert verdict.screening.reason.startswith("Content contains restricted keywords")
        assert verdict.screening.flagged_patterns

    async def test_inappropriate_pattern(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("Illegal deals inside"))

        assert verdict.screening.reason == "Content contains inappropriate language"

    async def test_media_type_outside_allowed_set(self, evaluator):
        media = [MediaItem(kind="document", url="https://cdn.example/menu.pdf", size=100, mime_type="application/pdf")]
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content(media=media))

        assert verdict.screening.reason == "Unsupported media type: application/pdf"
        assert verdict.screening.rejected_media == ["https://cdn.example/menu.pdf"]

    async def test_media_over_size_ceiling(self, evaluator):
        size = ComplianceDefaults().max_media_bytes + 1
        media = [MediaItem(kind="image", url="https://cdn.example/a.png", size=size, mime_type="image/png")]
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content(media=media))

        assert verdict.screening.reason == f"Media file too large: {size} bytes"

    async def test_text_over_limit(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("a" * 1601))

        assert verdict.screening.reason == "Message exceeds character limit"


class TestDisclaimers:
    """Disclaimer inclusion."""

    async def test_required_disclaimer_present(self, evaluator):
        tenant = make_tenant(required_disclaimers=["21+"])
        verdict = await evaluator.evaluate(tenant, recipient(), content("Buy now, 21+ only"))

        assert verdict.passed is True
        assert verdict.disclaimers_included is True

    async def test_required_disclaimer_missing_fails(self, evaluator):
        tenant = make_tenant(required_disclaimers=["21+"])
        verdict = await evaluator.evaluate(tenant, recipient(), content("Buy now"))

        assert verdict.passed is False
        assert verdict.reasons == ["Required disclaimers missing"]

    async def test_disclaimer_match_is_case_insensitive(self, evaluator):
        tenant = make_tenant(required_disclaimers=["Check Local Laws"])
        verdict = await evaluator.evaluate(tenant, recipient(), content("Open late. check local laws."))

        assert verdict.passed is True

    async def test_empty_tenant_list_is_not_applicable(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("Open late today"))
        check = next(c for c in verdict.checks if c.name == "disclaimers")

        assert verdict.passed is True
        assert check.applicable is False
        assert verdict.disclaimers_included is False

    async def test_default_disclaimers_still_reported(self, evaluator):
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content("Open late. Consume responsibly."))

        assert verdict.disclaimers_included is True


class TestBusinessHoursAndRateLimit:
    """Time window and per-recipient daily ceiling."""

    async def test_outside_business_hours(self, limiter):
        evaluator = ComplianceEvaluator(limiter, clock=lambda: MIDNIGHT)
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content())

        assert verdict.reasons == ["Messages not allowed outside business hours"]

    @pytest.mark.parametrize("hour,allowed", [(8, False), (9, True), (20, True), (21, False)])
    async def test_window_boundaries(self, limiter, hour, allowed):
        evaluator = ComplianceEvaluator(limiter, clock=lambda: datetime(2026, 10, 16, hour, 59))
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content())

        assert verdict.passed is allowed

    async def test_rate_limit_exceeded(self, evaluator, limiter):
        tenant = make_tenant(max_messages_per_day=2)
        for _ in range(2):
            await limiter.record(tenant.id, "+15551234567")

        verdict = await evaluator.evaluate(tenant, recipient(), content())

        assert verdict.reasons == ["Rate limit exceeded for recipient"]

    async def test_rate_limit_is_per_tenant(self, evaluator, limiter):
        tenant = make_tenant(max_messages_per_day=1)
        await limiter.record(uuid.uuid4(), "+15551234567")

        verdict = await evaluator.evaluate(tenant, recipient(), content())

        assert verdict.passed is True


class TestAggregation:
    """Verdict aggregation and internal failures."""

    async def test_reports_every_failure(self, limiter):
        evaluator = ComplianceEvaluator(limiter, clock=lambda: MIDNIGHT)
        tenant = make_tenant(required_disclaimers=["21+"])
        verdict = await evaluator.evaluate(tenant, recipient(age_verified=False), content("Cheap vape pens"))

        assert verdict.passed is False
        assert "Age verification required" in verdict.reasons
        assert any(r.startswith("Content failed screening") for r in verdict.reasons)
        assert "Required disclaimers missing" in verdict.reasons
        assert "Messages not allowed outside business hours" in verdict.reasons
        assert len(verdict.reasons) == len(set(verdict.reasons))

    async def test_internal_error_is_terminal_failure(self):
        class ExplodingLimiter:
            async def check(self, org_id, recipient, limit):
                raise RuntimeError("counter store unavailable")

            async def record(self, org_id, recipient):
                return None

        evaluator = ComplianceEvaluator(ExplodingLimiter(), clock=lambda: NOON)
        verdict = await evaluator.evaluate(make_tenant(), recipient(), content())

        assert verdict.passed is False
        assert verdict.age_verified is False
        assert verdict.consent_verified is False
        assert verdict.reasons == ["Compliance check failed: counter store unavailable"]
