from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, JSON
from app.core.base import Base, TimestampedMixin

class Tenant(Base, TimestampedMixin):
    business_name: Mapped[str] = mapped_column(String(200))
    business_type: Mapped[str] = mapped_column(String(32), default="other")  # cannabis | vape | cbd | tobacco | other
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    subscription_status: Mapped[str] = mapped_column(String(16), default="trial")  # active | suspended | cancelled | trial
    messages_used: Mapped[int] = mapped_column(Integer, default=0)
    messages_limit: Mapped[int] = mapped_column(Integer, default=1000)
    compliance_status: Mapped[str] = mapped_column(String(16), default="compliant")  # compliant | warning | violation | suspended

    # shapes validated by schemas.ComplianceSettings / schemas.DeliverySettings
    compliance_settings: Mapped[dict] = mapped_column(JSON, default=dict)
    delivery_settings: Mapped[dict] = mapped_column(JSON, default=dict)
