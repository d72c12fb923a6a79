BASE_COST = 0.01
MEDIA_COST = 0.02

PROVIDER_MULTIPLIERS = {
    "twilio": 1.2,
    "bandwidth": 0.8,
    "messagebird": 1.1,
}

def estimate_cost(media_count: int, provider: str | None) -> float:
    """Reporting-only estimate in USD; never used to gate a send."""
    multiplier = PROVIDER_MULTIPLIERS.get((provider or "").lower(), 1.0)
    return round((BASE_COST + MEDIA_COST * max(0, media_count)) * multiplier, 4)
