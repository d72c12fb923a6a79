from pydantic import BaseModel

class CheckResult(BaseModel):
    name: str
    passed: bool
    applicable: bool = True
    reason: str | None = None
    detail: dict = {}

class ScreeningResult(BaseModel):
    screened: bool = True
    approved: bool = True
    reason: str = ""
    flagged_keywords: list[str] = []
    flagged_patterns: list[str] = []
    rejected_media: list[str] = []

class ComplianceVerdict(BaseModel):
    passed: bool
    age_verified: bool = False
    consent_verified: bool = False
    content_screened: bool = False
    disclaimers_included: bool = False
    checks: list[CheckResult] = []
    reasons: list[str] = []
    screening: ScreeningResult | None = None

    @classmethod
    def terminal_failure(cls, error: str) -> "ComplianceVerdict":
        return cls(passed=False, reasons=[f"Compliance check failed: {error}"])
