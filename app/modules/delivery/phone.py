import re
from app.core.config import settings
from app.core.errors import InvalidPhoneNumber

E164_LIKE = re.compile(r"^\+?[1-9]\d{1,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")

def normalize_phone(value: str, country_code: str | None = None) -> str:
    """Return `value` in +E.164 form.

    Common separators are stripped first. Without a leading "+", a
    10-digit number is taken as domestic and gets the default country
    code; anything else just gets the "+".
    """
    cleaned = _SEPARATORS.sub("", value or "")
    if not E164_LIKE.match(cleaned):
        raise InvalidPhoneNumber(value)
    if cleaned.startswith("+"):
        return cleaned
    if len(cleaned) == 10:
        return f"+{country_code or settings.DEFAULT_COUNTRY_CODE}{cleaned}"
    return f"+{cleaned}"
