import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import String, Numeric, Date, DateTime, Float, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base, json_column_type


class CloudProvider(str, Enum):
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"


class CostRecord(Base):
    """
    One billed (provider, account, date, service) fact.

    account_id is a polymorphic reference: the table it points at is picked by
    `provider`, so there is no database-level foreign key. Rows are written by
    the sync pipeline and never updated.
    """
    __tablename__ = "cost_records"
    __table_args__ = (
        Index('ix_cost_records_provider_account_date', 'provider', 'account_id', 'date'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    provider: Mapped[str] = mapped_column(String(10), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    service: Mapped[str] = mapped_column(String, nullable=False, index=True)  # e.g., "AmazonEC2"
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    # Financials (DECIMAL for money!)
    cost: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    usage_quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    usage_unit: Mapped[str | None] = mapped_column(String, nullable=True)

    tags: Mapped[dict] = mapped_column(json_column_type(), default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Resource(Base):
    """Latest snapshot of a provider resource, upserted on each sync."""
    __tablename__ = "resources"
    __table_args__ = (
        UniqueConstraint('provider', 'account_id', 'resource_id', name='uq_provider_account_resource'),
        Index('ix_resources_provider_account', 'provider', 'account_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    provider: Mapped[str] = mapped_column(String(10), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    resource_id: Mapped[str] = mapped_column(String, nullable=False)
    resource_name: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)  # running, stopped, ...

    # Percent, 0-100
    utilization: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost_per_month: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    tags: Mapped[dict] = mapped_column(json_column_type(), default=dict)
    metrics: Mapped[dict] = mapped_column(json_column_type(), default=dict)
    configuration: Mapped[dict] = mapped_column(json_column_type(), default=dict)

    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
