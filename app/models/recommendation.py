"""
Recommendation Model

A suggested cost-saving action tied to one (provider, account, resource).

Lifecycle:
1. Sync analysis creates the recommendation as OPEN
2. A user starts work on it (IN_PROGRESS) or dismisses it
3. Work ends as IMPLEMENTED or DISMISSED
4. Stale OPEN/IN_PROGRESS items may be EXPIRED by an external trigger

Every transition is appended to metadata["status_history"].
"""

from uuid import uuid4, UUID
from enum import Enum
from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Text, Numeric, DateTime, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base, json_column_type


class RecommendationStatus(str, Enum):
    """Status of a recommendation."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class RecommendationType(str, Enum):
    RIGHTSIZING = "rightsizing"
    TERMINATION = "termination"
    SCHEDULING = "scheduling"
    RESERVATION = "reservation"
    STORAGE = "storage"
    NETWORK = "network"
    OTHER = "other"


class RecommendationImpact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Recommendation(Base):
    __tablename__ = "recommendations"
    __table_args__ = (
        Index('ix_recommendations_provider_account', 'provider', 'account_id'),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Polymorphic account reference (see CostRecord)
    provider: Mapped[str] = mapped_column(String(10), nullable=False)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    resource_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)

    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendation_type: Mapped[str] = mapped_column(String(20), default=RecommendationType.OTHER.value, index=True)
    impact: Mapped[str] = mapped_column(String(10), default=RecommendationImpact.MEDIUM.value)

    potential_savings: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    status: Mapped[str] = mapped_column(String(20), default=RecommendationStatus.OPEN.value, index=True)

    action_details: Mapped[dict] = mapped_column(json_column_type(), default=dict)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict] = mapped_column("metadata", json_column_type(), default=dict)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
