"""SQLAlchemy ORM models for ChargeGuard state."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MerchantMonitoringConfig(Base):
    __tablename__ = "merchant_monitoring_configs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    preferred_check_minutes: Mapped[int] = mapped_column(Integer, default=120)
    timezone_offset_minutes: Mapped[int] = mapped_column(Integer, default=0)
    last_run_local_day_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class MerchantSettings(Base):
    __tablename__ = "merchant_settings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    automatic_scanning_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_approve_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_approve_threshold: Mapped[float] = mapped_column(Float, default=30.0)
    auto_block_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_block_threshold: Mapped[float] = mapped_column(Float, default=90.0)
    notify_high_risk: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class IncomingOrder(Base):
    __tablename__ = "incoming_orders"
    __table_args__ = (
        UniqueConstraint("merchant_id", "platform", "order_id", name="uq_incoming_order_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String, index=True)
    platform: Mapped[str] = mapped_column(String)
    order_id: Mapped[str] = mapped_column(String)
    customer_email: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String, nullable=True)
    shipping_address: Mapped[str | None] = mapped_column(String, nullable=True)
    billing_address: Mapped[str | None] = mapped_column(String, nullable=True)
    device_fingerprint: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[float] = mapped_column(Float)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    behavioral_signals: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String, index=True, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    assessment: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PostAuthOrder(Base):
    __tablename__ = "post_auth_orders"
    __table_args__ = (
        UniqueConstraint("merchant_id", "platform", "order_id", name="uq_post_auth_order_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String, index=True)
    platform: Mapped[str] = mapped_column(String)
    order_id: Mapped[str] = mapped_column(String)
    amount: Mapped[float] = mapped_column(Float)
    customer_email: Mapped[str | None] = mapped_column(String, nullable=True)
    fused_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String, index=True, default="under_monitoring")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RiskAssessmentRecord(Base):
    __tablename__ = "risk_assessments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    merchant_id: Mapped[str] = mapped_column(String, index=True)
    order_id: Mapped[str] = mapped_column(String, index=True)
    layer1_score: Mapped[float] = mapped_column(Float)
    layer2_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    fused_score: Mapped[float] = mapped_column(Float)
    risk_level: Mapped[str] = mapped_column(String)
    decision: Mapped[str] = mapped_column(String)
    details: Mapped[dict] = mapped_column(JSONB, default=dict)
    assessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ExternalValidationCacheEntry(Base):
    __tablename__ = "external_validation_cache"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    subject_key: Mapped[str] = mapped_column(String, unique=True, index=True)
    provider: Mapped[str] = mapped_column(String)
    result: Mapped[dict] = mapped_column(JSONB, default=dict)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class FusionDiscrepancy(Base):
    __tablename__ = "fusion_discrepancies"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String, index=True)
    order_id: Mapped[str] = mapped_column(String)
    layer1_score: Mapped[float] = mapped_column(Float)
    layer2_score: Mapped[float] = mapped_column(Float)
    discrepancy: Mapped[float] = mapped_column(Float, index=True)
    providers: Mapped[dict] = mapped_column(JSONB, default=list)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
