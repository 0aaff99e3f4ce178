import uuid
from datetime import datetime

from sqlalchemy import String, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class ComplianceRule(Base):
    """Aktives Regel-Set eines Tenants (genau eine Zeile pro Tenant)."""
    __tablename__ = "compliance_rules"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    rule_set: Mapped[str] = mapped_column(String(20), nullable=False)  # eu | de
    config: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False)


class ComplianceViolation(Base):
    __tablename__ = "compliance_violations"
    __table_args__ = (
        Index("ix_compliance_violations_tenant_detected", "tenant_id", "detected_at"),
        Index("ix_compliance_violations_dedup", "tenant_id", "dedup_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    violation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)      # warning | error
    rule_set: Mapped[str] = mapped_column(String(20), nullable=False)

    detected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    details: Mapped[dict] = mapped_column(JSON, nullable=False)  # expected | actual | affected_entries
    dedup_key: Mapped[str] = mapped_column(String(64), nullable=False)

    # Einziger veränderbarer Teil eines Verstoßes
    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ComplianceAuditLog(Base):
    """Append-only: wird nie geändert oder gelöscht."""
    __tablename__ = "compliance_audit_logs"
    __table_args__ = (
        Index("ix_compliance_audit_logs_tenant_ts", "tenant_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_uid: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict)


class ComplianceReport(Base):
    __tablename__ = "compliance_reports"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    generated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    format: Mapped[str] = mapped_column(String(10), nullable=False)        # csv | pdf
    rule_set: Mapped[str] = mapped_column(String(20), nullable=False)
    filters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    summary: Mapped[dict] = mapped_column(JSON, nullable=False)

    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)          # SHA-256 hex
