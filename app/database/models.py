"""SQLAlchemy models for all database tables."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    """Canonical customer unified across providers."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    primary_email: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    primary_phone: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    company: Mapped[str | None] = mapped_column(String, nullable=True)
    is_vip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credit_risk_level: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Merge tombstone: set when this row was absorbed into another customer
    merged_into_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True
    )
    merged_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def is_merged(self) -> bool:
        return self.merged_into_id is not None


class CustomerIdentity(Base):
    """One identifier observed by one provider, owned by one customer."""

    __tablename__ = "customer_identities"
    __table_args__ = (
        # Idempotency key for repeated ingestion; NULL external ids never collide
        UniqueConstraint("provider", "external_id", name="uq_customer_identities_provider_external"),
        Index("idx_customer_identities_email", "email"),
        Index("idx_customer_identities_phone", "phone"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, index=True
    )
    provider: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # storefront | accounting | marketplace | fulfillment | marketing | manual | self_reported
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    additional_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Interaction(Base):
    """Timestamped inbound/outbound touch with a customer."""

    __tablename__ = "interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, index=True
    )
    ticket_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("tickets.id"), nullable=True)
    comment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    channel: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # email | ticket | self_id_form | marketplace_api | storefront_webhook | marketing | telephony
    direction: Mapped[str] = mapped_column(String(16), nullable=False, default="inbound")
    additional_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )


# ---------------------------------------------------------------------------
# Customer-owned records maintained by collaborators. Only the columns needed
# to hold a customer reference are modelled here; every table below is a
# re-pointing target when customers are merged.
# ---------------------------------------------------------------------------


class Order(Base):
    """Order imported from a storefront, marketplace or accounting provider."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    order_number: Mapped[str | None] = mapped_column(String, nullable=True)
    total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    placed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class Ticket(Base):
    """Support ticket."""

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new")


class Contact(Base):
    """Named contact person at a customer."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)


class Call(Base):
    """Telephony call record."""

    __tablename__ = "calls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )


class Opportunity(Base):
    """Sales opportunity."""

    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default="lead")


class CrmTask(Base):
    """Follow-up task assigned to a sales or support user."""

    __tablename__ = "crm_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class Invoice(Base):
    """Accounting-system invoice (accounts receivable)."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    external_id: Mapped[str] = mapped_column(String, nullable=False)
    balance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)


class Shipment(Base):
    """Fulfillment shipment."""

    __tablename__ = "shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    tracking_number: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)


class CustomerScore(Base):
    """Computed health/churn scores; at most one row per customer."""

    __tablename__ = "customer_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, unique=True
    )
    health_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    churn_risk: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_calculated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )


class Estimate(Base):
    """Accounting-system estimate (quote sent to the customer)."""

    __tablename__ = "estimates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    external_id: Mapped[str] = mapped_column(String, nullable=False)
    total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)


class RagSource(Base):
    """Knowledge-base document scoped to a customer."""

    __tablename__ = "rag_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True, index=True
    )
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str | None] = mapped_column(String, nullable=True)


class CustomerSnapshot(Base):
    """Latest accounting-side view of a customer; at most one row per customer."""

    __tablename__ = "customer_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False, unique=True
    )
    open_balance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    overdue_balance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    captured_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
