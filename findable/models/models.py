"""
Database Models - Relational schema backing the record store and usage ledger.

Design decisions:
- UUID primary keys (no sequential int exposure)
- JSON columns (JSONB on PostgreSQL) for extracted signals
- Scans are append-only: one row per successful scan, never updated
- Usage is counted per account per calendar month
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from findable.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ─────────────────────────────────────────────
# Mixins
# ─────────────────────────────────────────────

class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)


# ─────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────

class Account(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """An API consumer. Identity is established upstream; we only map key -> account."""
    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    plan: Mapped[str] = mapped_column(String(50), default="free", nullable=False)
    # free | pro | growth | enterprise

    sites: Mapped[list["Site"]] = relationship("Site", back_populates="account")


# ─────────────────────────────────────────────
# Sites
# ─────────────────────────────────────────────

class Site(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One normalized URL owned by one account."""
    __tablename__ = "sites"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False)
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    account: Mapped[Account] = relationship("Account", back_populates="sites")
    scans: Mapped[list["Scan"]] = relationship("Scan", back_populates="site", order_by="Scan.created_at.desc()")

    __table_args__ = (
        Index("ix_sites_account_id", "account_id"),
        UniqueConstraint("account_id", "url", name="uq_sites_account_url"),
    )


# ─────────────────────────────────────────────
# Scans
# ─────────────────────────────────────────────

class Scan(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Immutable result of one successful scan."""
    __tablename__ = "scans"

    site_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("sites.id"), nullable=False)

    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    schema_data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    performance: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    crawlability_score: Mapped[int] = mapped_column(Integer, nullable=False)
    summarizability_score: Mapped[int] = mapped_column(Integer, nullable=False)
    findability_score: Mapped[int] = mapped_column(Integer, nullable=False)

    site: Mapped[Site] = relationship("Site", back_populates="scans")
    tips: Mapped[list["ScanTipRecord"]] = relationship("ScanTipRecord", back_populates="scan")

    __table_args__ = (
        Index("ix_scans_site_id", "site_id"),
        Index("ix_scans_created_at", "created_at"),
    )


class ScanTipRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Actionable tip generated for a scan."""
    __tablename__ = "scan_tips"

    scan_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("scans.id"), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    scan: Mapped[Scan] = relationship("Scan", back_populates="tips")

    __table_args__ = (
        Index("ix_scan_tips_scan_id", "scan_id"),
    )


# ─────────────────────────────────────────────
# Usage
# ─────────────────────────────────────────────

class UsageMetric(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Per-account counters for one calendar month (UTC)."""
    __tablename__ = "usage_metrics"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    scan_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "period_start", name="uq_usage_metrics_account_period"),
    )
