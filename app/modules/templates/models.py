from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, Integer, Boolean, TIMESTAMP
from app.core.base import Base, TimestampedTenantMixin

class MessageTemplate(Base, TimestampedTenantMixin):
    name: Mapped[str] = mapped_column(String(120))
    category: Mapped[str] = mapped_column(String(32), default="promotional")  # promotional | informational | compliance | transactional | marketing
    body: Mapped[str] = mapped_column(Text)
    media: Mapped[list] = mapped_column(JSON, default=list)       # [{kind, url, filename, size, mime_type}]
    variables: Mapped[list] = mapped_column(JSON, default=list)   # [{name, description, required, default_value}]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    total_sent: Mapped[int] = mapped_column(Integer, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
