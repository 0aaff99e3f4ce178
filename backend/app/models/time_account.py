import uuid
from datetime import datetime

from sqlalchemy import String, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class TimeAccountAdjustment(Base):
    __tablename__ = "time_account_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-12
    amount_hours: Mapped[float] = mapped_column(Numeric(6, 2), nullable=False)  # negativ = Abzug
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True)  # z.B. Verstoß-ID
    source: Mapped[str] = mapped_column(String(30), default="manual")  # manual | compliance
    adjusted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    adjusted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
