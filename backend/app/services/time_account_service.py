"""
Zeitkonto-Anpassungen aufgrund von Compliance-Verstößen.

Ist das Modul "time_account" für den Tenant nicht aktiv, ist die Anpassung
ein No-op (status="module_disabled"), kein Fehler.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, system_clock
from app.core.errors import ComplianceValidationError
from app.models.tenant import Tenant
from app.models.time_account import TimeAccountAdjustment
from app.schemas.compliance import ViolationType

TIME_ACCOUNT_MODULE = "time_account"
COMPLIANCE_SOURCE = "compliance"

# Stunden-Abzug je Verstoß-Typ
ADJUSTMENT_HOURS: dict[ViolationType, float] = {
    ViolationType.REST_PERIOD_VIOLATION:     -0.5,
    ViolationType.SHIFT_DURATION_VIOLATION:  -1.0,
    ViolationType.BREAK_MISSING:             -0.25,
    ViolationType.WEEKLY_REST_VIOLATION:     -1.0,
    ViolationType.MAX_WORKING_TIME_EXCEEDED: -2.0,
}


@dataclass(frozen=True)
class AdjustmentResult:
    status: str  # applied | module_disabled | skipped | failed
    adjustment_id: uuid.UUID | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: BaseException | str) -> "AdjustmentResult":
        return cls(status="failed", error=str(error))


@dataclass(frozen=True)
class TimeAccountAdjustmentJob:
    tenant_id: uuid.UUID
    user_id: str
    violation_id: uuid.UUID
    violation_type: ViolationType
    detected_at: datetime

    def as_payload(self) -> dict[str, Any]:
        return {
            "tenant_id": str(self.tenant_id),
            "user_id": self.user_id,
            "violation_id": str(self.violation_id),
            "violation_type": self.violation_type.value,
            "detected_at": self.detected_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TimeAccountAdjustmentJob":
        return cls(
            tenant_id=uuid.UUID(payload["tenant_id"]),
            user_id=payload["user_id"],
            violation_id=uuid.UUID(payload["violation_id"]),
            violation_type=ViolationType(payload["violation_type"]),
            detected_at=datetime.fromisoformat(payload["detected_at"]),
        )


class TimeAccountService:

    def __init__(self, db: AsyncSession, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    async def add_compliance_adjustment(
        self,
        tenant_id: uuid.UUID,
        user_id: str,
        year: int,
        month: int,
        amount_hours: float,
        reason: str,
        violation_id: uuid.UUID | str,
        actor: str,
    ) -> AdjustmentResult:
        if not 1 <= month <= 12:
            raise ComplianceValidationError(f"Ungültiger Monat: {month}")
        if not reason or len(reason.strip()) < 3:
            raise ComplianceValidationError("Begründung fehlt oder ist zu kurz")

        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None or not tenant.has_module(TIME_ACCOUNT_MODULE):
            return AdjustmentResult(status="module_disabled")

        adjustment = TimeAccountAdjustment(
            tenant_id=tenant_id,
            user_id=user_id,
            year=year,
            month=month,
            amount_hours=amount_hours,
            reason=reason.strip(),
            reference_id=str(violation_id),
            source=COMPLIANCE_SOURCE,
            adjusted_by=actor,
            adjusted_at=self.clock.now(),
        )
        self.db.add(adjustment)
        await self.db.commit()
        return AdjustmentResult(status="applied", adjustment_id=adjustment.id)


async def apply_compliance_adjustment(
    job: TimeAccountAdjustmentJob,
    session_factory: async_sessionmaker,
    clock: Clock = system_clock,
) -> AdjustmentResult:
    """Führt einen Adjustment-Job in einer eigenen DB-Session aus."""
    amount = ADJUSTMENT_HOURS.get(job.violation_type, 0)
    if not amount:
        return AdjustmentResult(status="skipped")

    detected = job.detected_at.astimezone(timezone.utc)
    async with session_factory() as db:
        return await TimeAccountService(db, clock).add_compliance_adjustment(
            job.tenant_id,
            job.user_id,
            detected.year,
            detected.month,
            amount,
            f"Compliance-Verstoß: {job.violation_type.value}",
            job.violation_id,
            "system",
        )
