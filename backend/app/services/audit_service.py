"""
Append-only Audit-Log für Regeländerungen, manuelle Prüfungen,
Bestätigungen und Report-Erstellung.
"""
import uuid
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.errors import ComplianceValidationError
from app.models.compliance import ComplianceAuditLog
from app.schemas.compliance import AuditAction, AuditLogFilter


class AuditLogger:

    def __init__(self, db: AsyncSession, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    async def log(
        self,
        tenant_id: uuid.UUID,
        action: AuditAction,
        actor_uid: str,
        details: dict[str, Any] | None = None,
    ) -> ComplianceAuditLog:
        """Hängt einen Eintrag an (nur flush – Commit macht der Aufrufer)."""
        entry = ComplianceAuditLog(
            tenant_id=tenant_id,
            action=AuditAction(action).value,
            actor_uid=actor_uid,
            timestamp=self.clock.now(),
            details=details or {},
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_audit_logs(
        self,
        tenant_id: uuid.UUID,
        filters: AuditLogFilter | dict | None = None,
    ) -> tuple[list[ComplianceAuditLog], int]:
        if not isinstance(filters, AuditLogFilter):
            try:
                filters = AuditLogFilter.model_validate(filters or {})
            except ValidationError as e:
                raise ComplianceValidationError(f"Ungültige Filter: {e}") from e

        conditions = [ComplianceAuditLog.tenant_id == tenant_id]
        if filters.action:
            conditions.append(ComplianceAuditLog.action == filters.action.value)
        if filters.from_:
            conditions.append(ComplianceAuditLog.timestamp >= filters.from_)
        if filters.to:
            conditions.append(ComplianceAuditLog.timestamp <= filters.to)

        total = await self.db.scalar(
            select(func.count()).select_from(ComplianceAuditLog).where(*conditions)
        )
        result = await self.db.execute(
            select(ComplianceAuditLog)
            .where(*conditions)
            .order_by(ComplianceAuditLog.timestamp.desc(), ComplianceAuditLog.id)
            .limit(filters.limit)
            .offset(filters.offset)
        )
        return list(result.scalars().all()), total or 0
