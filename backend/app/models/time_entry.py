import uuid
from datetime import datetime, timezone

from sqlalchemy import String, ForeignKey, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class TimeEntry(Base):
    """
    Erfasste Arbeitszeit – Stempeluhr (source="clock") oder bestätigte
    Schicht (source="shift"). Wird vom Compliance-Modul nur gelesen.
    """
    __tablename__ = "time_entries"
    __table_args__ = (
        Index("ix_time_entries_tenant_clock_in", "tenant_id", "clock_in"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    clock_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)  # None = läuft noch
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_minutes: Mapped[int] = mapped_column(Integer, default=0)
    source: Mapped[str] = mapped_column(String(20), default="clock")  # clock | shift

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc)
    )
