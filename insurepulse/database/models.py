"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Date,
    Index,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from insurepulse.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Policy(Base):
    """Canonical policy row, one per (tenant, policy number)."""

    __tablename__ = "policies"
    __table_args__ = (
        UniqueConstraint("tenant_id", "policy_number", name="uq_policies_tenant_policy_number"),
        Index("ix_policies_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    policy_number: Mapped[str] = mapped_column(String(128), nullable=False)
    insured_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    premium: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal(0))
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    line_of_business: Mapped[str | None] = mapped_column(String(64), nullable=True)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    insurance_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default="conventional"
    )  # conventional | takaful
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active"
    )  # active | expired | cancelled
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class Claim(Base):
    """Loss event against a policy. ``policy_number`` is a soft reference."""

    __tablename__ = "claims"
    __table_args__ = (Index("ix_claims_tenant_policy_number", "tenant_id", "policy_number"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    policy_number: Mapped[str] = mapped_column(String(128), nullable=False)
    claim_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal(0))
    reserve_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal(0))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )


class AIQuery(Base):
    """Question asked about a tenant's portfolio and the answer returned."""

    __tablename__ = "ai_queries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
