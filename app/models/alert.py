from uuid import uuid4, UUID
from enum import Enum
from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base, json_column_type


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class AlertStatus(str, Enum):
    NEW = "new"
    READ = "read"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class AlertCategory(str, Enum):
    COST = "cost"
    SECURITY = "security"
    PERFORMANCE = "performance"
    AVAILABILITY = "availability"
    OTHER = "other"


class Alert(Base):
    """A user-facing notification. Owned directly by the user, unlike cost facts."""
    __tablename__ = "alerts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    provider: Mapped[str | None] = mapped_column(String(10), nullable=True)
    account_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)

    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), default=AlertSeverity.INFO.value, index=True)
    status: Mapped[str] = mapped_column(String(15), default=AlertStatus.NEW.value, index=True)
    category: Mapped[str] = mapped_column(String(15), default=AlertCategory.OTHER.value)

    extra_metadata: Mapped[dict] = mapped_column("metadata", json_column_type(), default=dict)

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
