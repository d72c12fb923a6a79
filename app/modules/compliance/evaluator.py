"""Compliance evaluation for one send attempt.

All six checks run on every call so the verdict lists every reason a
message was refused. Built-in keyword, disclaimer and media defaults are
immutable and injected at construction; a tenant's own lists take
precedence whenever they are non-empty.
"""
import re
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime

from app.modules.compliance.schemas import CheckResult, ComplianceVerdict, ScreeningResult
from app.modules.messages.schemas import RecipientIn, ResolvedContent
from app.modules.tenants.schemas import TenantConfig
from app.platform.ports.rate_limit import RecipientRateLimiterPort

log = logging.getLogger("compliance")

MAX_TEXT_LENGTH = 1600

DEFAULT_RESTRICTED_KEYWORDS = (
    "marijuana", "cannabis", "weed", "pot", "smoke", "smoking", "vape", "vaping",
    "e-cigarette", "nicotine", "tobacco", "high", "stoned", "baked", "blazed", "dank",
    "kush", "thc", "cbd", "hemp", "edibles", "concentrates", "bong", "pipe", "joint",
    "blunt", "dab", "wax", "sativa", "indica", "hybrid", "strain",
)

DEFAULT_DISCLAIMERS = (
    "For adults 21+ only",
    "Consume responsibly",
    "Not for sale to minors",
    "Check local laws",
    "This product is not approved by the FDA",
)

INAPPROPRIATE_PATTERNS = (
    re.compile(r"underage|minor|child", re.IGNORECASE),
    re.compile(r"illegal|unlawful", re.IGNORECASE),
    re.compile(r"addiction|addict", re.IGNORECASE),
)

DEFAULT_MEDIA_TYPES = ("image/jpeg", "image/png", "image/gif", "video/mp4", "audio/mp3")


@dataclass(frozen=True)
class ComplianceDefaults:
    restricted_keywords: tuple[str, ...] = DEFAULT_RESTRICTED_KEYWORDS
    disclaimers: tuple[str, ...] = DEFAULT_DISCLAIMERS
    patterns: tuple[re.Pattern, ...] = INAPPROPRIATE_PATTERNS
    allowed_media_types: tuple[str, ...] = DEFAULT_MEDIA_TYPES
    max_media_bytes: int = 5 * 1024 * 1024
    max_text_length: int = MAX_TEXT_LENGTH
    business_hours: tuple[int, int] = (9, 21)


def _local_now() -> datetime:
    return datetime.now()


class ComplianceEvaluator:
    def __init__(self, rate_limiter: RecipientRateLimiterPort,
                 defaults: ComplianceDefaults = ComplianceDefaults(), clock=_local_now):
        self.rate_limiter = rate_limiter
        self.defaults = defaults
        self.clock = clock

    async def evaluate(self, tenant: TenantConfig, recipient: RecipientIn, content: ResolvedContent) -> ComplianceVerdict:
        try:
            return await self._evaluate(tenant, recipient, content)
        except Exception as e:
            log.exception(f"compliance evaluation failed for tenant {tenant.id}")
            return ComplianceVerdict.terminal_failure(str(e))

    async def _evaluate(self, tenant: TenantConfig, recipient: RecipientIn, content: ResolvedContent) -> ComplianceVerdict:
        rules = tenant.compliance
        screening = self.screen_content(content, rules.restricted_keywords, rules.allowed_media_types)
        checks = [
            self.check_age(rules.age_verification_required, recipient),
            self.check_consent(rules.consent_required, recipient),
            CheckResult(
                name="content_screening",
                passed=screening.approved,
                reason=None if screening.approved else f"Content failed screening: {screening.reason}",
                detail=screening.model_dump(),
            ),
            self.check_disclaimers(content.text, rules.required_disclaimers),
            self.check_business_hours(),
            await self.check_rate_limit(tenant.id, recipient.phone_number, rules.max_messages_per_day),
        ]

        reasons: list[str] = []
        for c in checks:
            if c.applicable and not c.passed and c.reason not in reasons:
                reasons.append(c.reason)
        by_name = {c.name: c for c in checks}
        verdict = ComplianceVerdict(
            passed=not reasons,
            age_verified=by_name["age_verification"].passed,
            consent_verified=by_name["consent_verification"].passed,
            content_screened=screening.approved,
            disclaimers_included=by_name["disclaimers"].detail.get("included", False),
            checks=checks,
            reasons=reasons,
            screening=screening,
        )
        if not verdict.passed:
            log.info(f"tenant {tenant.id}: compliance rejected ({'; '.join(reasons)})")
        return verdict

    # ---- individual checks ----

    def check_age(self, required: bool, recipient: RecipientIn) -> CheckResult:
        ok = not required or recipient.age_verified
        return CheckResult(name="age_verification", passed=ok,
                           reason=None if ok else "Age verification required",
                           detail={"required": required})

    def check_consent(self, required: bool, recipient: RecipientIn) -> CheckResult:
        ok = not required or recipient.consent_given
        detail = {"required": required}
        if recipient.consent_date:
            detail["consent_date"] = recipient.consent_date.isoformat()
        return CheckResult(name="consent_verification", passed=ok,
                           reason=None if ok else "Consent verification required", detail=detail)

    def screen_content(self, content: ResolvedContent, tenant_keywords: list[str],
                       tenant_media_types: list[str]) -> ScreeningResult:
        text = (content.text or "").lower()
        keywords = tenant_keywords or self.defaults.restricted_keywords
        allowed = tenant_media_types or self.defaults.allowed_media_types

        flagged_keywords = [k for k in keywords if k.lower() in text]
        flagged_patterns = [p.pattern for p in self.defaults.patterns if p.search(text)]
        rejected_media: list[str] = []
        media_reason = None
        for item in content.media:
            if item.mime_type not in allowed:
                rejected_media.append(item.url)
                media_reason = media_reason or f"Unsupported media type: {item.mime_type}"
            elif item.size > self.defaults.max_media_bytes:
                rejected_media.append(item.url)
                media_reason = media_reason or f"Media file too large: {item.size} bytes"

        # first failure wins: keyword, then pattern, then media, then length
        if flagged_keywords:
            reason = f"Content contains restricted keywords: {', '.join(flagged_keywords)}"
        elif flagged_patterns:
            reason = "Content contains inappropriate language"
        elif media_reason:
            reason = media_reason
        elif len(content.text or "") > self.defaults.max_text_length:
            reason = "Message exceeds character limit"
        else:
            reason = ""
        return ScreeningResult(
            screened=True,
            approved=not reason,
            reason=reason,
            flagged_keywords=flagged_keywords,
            flagged_patterns=flagged_patterns,
            rejected_media=rejected_media,
        )

    def check_disclaimers(self, text: str, tenant_disclaimers: list[str]) -> CheckResult:
        candidates = tenant_disclaimers or self.defaults.disclaimers
        lowered = (text or "").lower()
        found = [d for d in candidates if d.lower() in lowered]
        included = bool(found)
        # an empty tenant list means no disclaimer is mandated
        applicable = bool(tenant_disclaimers)
        return CheckResult(
            name="disclaimers",
            passed=included or not applicable,
            applicable=applicable,
            reason=None if included or not applicable else "Required disclaimers missing",
            detail={"included": included, "found": found,
                    "missing": [d for d in candidates if d not in found]},
        )

    def check_business_hours(self) -> CheckResult:
        start, end = self.defaults.business_hours
        hour = self.clock().hour
        ok = start <= hour < end
        return CheckResult(name="business_hours", passed=ok,
                           reason=None if ok else "Messages not allowed outside business hours",
                           detail={"hour": hour, "window": [start, end]})

    async def check_rate_limit(self, org_id: uuid.UUID, recipient: str, limit: int) -> CheckResult:
        decision = await self.rate_limiter.check(org_id, recipient, limit)
        return CheckResult(name="rate_limit", passed=decision.allowed,
                           reason=None if decision.allowed else "Rate limit exceeded for recipient",
                           detail={"limit": decision.limit, "used": decision.used, "remaining": decision.remaining})
