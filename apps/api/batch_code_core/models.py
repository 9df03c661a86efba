from __future__ import annotations

from datetime import date, datetime, timezone
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    BigInteger, CheckConstraint, Date, DateTime, ForeignKey,
    Integer, String, Text, func
)

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Base(DeclarativeBase):
    pass

class BatchCodeLock(Base):
    """One row per group key; locked FOR UPDATE while a code is being allocated."""
    __tablename__ = "batch_code_locks"
    group_key: Mapped[str] = mapped_column(String(16), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

class BatchCode(Base):
    # Append-only: rows are never updated or deleted, so a code is never reissued.
    __tablename__ = "batch_codes"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    group_key: Mapped[str] = mapped_column(String(16), index=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

class Batch(Base):
    __tablename__ = "batches"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_code: Mapped[str] = mapped_column(ForeignKey("batch_codes.code"), unique=True, index=True)
    product_id: Mapped[str] = mapped_column(String(64), index=True)
    production_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    production_source: Mapped[str] = mapped_column(String(32), nullable=False)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), index=True, default="PLANNED")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    co_packer_partner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    co_packer_lot_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    co_packer_receiving_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("total_units > 0", name="ck_batch_units_positive"),
        CheckConstraint(
            "status in ('PLANNED','IN_PROGRESS','QC_REVIEW','HOLD','RELEASED','CANCELLED')",
            name="ck_batch_status",
        ),
        CheckConstraint(
            "production_source in ('IN_HOUSE','CO_PACKER')",
            name="ck_batch_production_source",
        ),
    )
