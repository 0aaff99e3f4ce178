import uuid
from datetime import datetime, timezone

from sqlalchemy import String, JSON, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, UTCDateTime


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    settings: Mapped[dict] = mapped_column(JSON, default=dict)  # {"modules": ["time_account", ...]}
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc)
    )

    def has_module(self, module: str) -> bool:
        return module in (self.settings or {}).get("modules", [])
