"""
Compliance-Service: Prüflauf, Speicherung und Bestätigung von Verstößen.

Ablauf eines Prüflaufs: Regel-Set laden → Intervalle aus der IntervalSource
→ Rule-Engine pro Mitarbeiter → Verstöße speichern → Commit → pro Verstoß
einen Zeitkonto-Job an den Dispatcher übergeben. Fehler der Zeitkonto-
Anpassung werden nur geloggt und rollen nie einen Verstoß zurück.

Wiederholte Prüfläufe über denselben Zeitraum legen neue Datensätze an
(at-least-once). Über `dedup_key` lassen sich Duplikate erkennen.
"""
import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from itertools import groupby

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, as_utc, system_clock
from app.core.errors import ComplianceValidationError, NotFoundError
from app.models.compliance import ComplianceViolation
from app.schemas.compliance import AuditAction, ReportFilters, ViolationFilter, ViolationType
from app.services.audit_service import AuditLogger
from app.services.interval_source import IntervalSource
from app.services.rule_config_service import SYSTEM_ACTOR, RuleConfigStore
from app.services.rule_engine import DetectedViolation, check_compliance_rules
from app.services.time_account_service import AdjustmentResult, TimeAccountAdjustmentJob
from app.tasks.background import AdjustmentDispatcher

logger = logging.getLogger(__name__)


def dedup_key(
    tenant_id: uuid.UUID,
    user_id: str,
    violation_type: str,
    period_start: datetime,
    period_end: datetime,
) -> str:
    """Deterministischer Schlüssel für (Tenant, Mitarbeiter, Typ, Zeitraum)."""
    raw = "|".join([
        str(tenant_id),
        user_id,
        violation_type,
        as_utc(period_start).isoformat(),
        as_utc(period_end).isoformat(),
    ])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _log_adjustment_result(job: TimeAccountAdjustmentJob, result: AdjustmentResult) -> None:
    if result.status == "failed":
        logger.error(
            "Time account adjustment for violation %s (user %s) failed: %s",
            job.violation_id, job.user_id, result.error,
        )
    elif result.status == "module_disabled":
        logger.info(
            "Time account module not enabled for tenant %s, skipping violation %s",
            job.tenant_id, job.violation_id,
        )


def validate_period(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise ComplianceValidationError("Zeitraum ungültig: Beginn liegt nach dem Ende")
    return start, end


class ComplianceService:

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = system_clock,
        interval_source: IntervalSource | None = None,
        dispatcher: AdjustmentDispatcher | None = None,
        rules: RuleConfigStore | None = None,
        audit: AuditLogger | None = None,
    ):
        self.db = db
        self.clock = clock
        self.interval_source = interval_source
        self.dispatcher = dispatcher
        self.audit = audit or AuditLogger(db, clock)
        self.rules = rules or RuleConfigStore(db, clock, self.audit)

    # ── Prüflauf ──────────────────────────────────────────────────────────────

    async def check_compliance(
        self,
        tenant_id: uuid.UUID,
        user_id: str | None,
        start: datetime,
        end: datetime,
        actor: str | None = None,
        manual: bool = True,
        lookback: timedelta | None = None,
    ) -> list[ComplianceViolation]:
        """
        Prüft alle Intervalle mit Beginn in [start, end].

        Mit `lookback` werden zusätzlich frühere Intervalle geladen (mindestens
        eine Ruhezeit weit), gespeichert werden aber nur Verstöße mit
        period_end in (start, end]. Aufeinanderfolgende Fenster erfassen so
        jeden Verstoß genau einmal, auch über Fenstergrenzen hinweg.
        """
        start, end = validate_period(start, end)
        if self.interval_source is None:
            raise RuntimeError("ComplianceService needs an interval source for checks")

        config = await self.rules.get_rule_config(tenant_id)
        load_start = start
        if lookback is not None:
            load_start = start - max(lookback, timedelta(minutes=config.min_rest_period_minutes))
        intervals = await self.interval_source.list_intervals(tenant_id, user_id, load_start, end)

        detected: list[DetectedViolation] = []
        ordered = sorted(intervals, key=lambda i: i.user_id)
        for _, user_intervals in groupby(ordered, key=lambda i: i.user_id):
            detected.extend(check_compliance_rules(list(user_intervals), config))
        if lookback is not None:
            detected = [v for v in detected if start < as_utc(v.period_end) <= end]

        now = self.clock.now()
        violations = [
            ComplianceViolation(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                user_id=v.user_id,
                violation_type=v.violation_type.value,
                severity=v.severity.value,
                rule_set=config.rule_set.value,
                detected_at=now,
                period_start=v.period_start,
                period_end=v.period_end,
                details=v.details,
                dedup_key=dedup_key(tenant_id, v.user_id, v.violation_type.value, v.period_start, v.period_end),
            )
            for v in detected
        ]
        self.db.add_all(violations)

        if manual:
            await self.audit.log(
                tenant_id,
                AuditAction.MANUAL_CHECK,
                actor or SYSTEM_ACTOR,
                {
                    "user_id": user_id,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    "violations": len(violations),
                },
            )
        await self.db.commit()

        logger.info(
            "Compliance check for tenant %s (%s intervals, user=%s) found %s violations",
            tenant_id, len(intervals), user_id or "*", len(violations),
        )
        self._dispatch_adjustments(tenant_id, violations)
        return violations

    async def detect_violations(
        self,
        tenant_id: uuid.UUID,
        user_id: str | None,
        start: datetime,
        end: datetime,
        lookback: timedelta | None = None,
    ) -> None:
        """Automatischer Auslöser (nächtlicher Lauf, Ausstempeln), ohne Audit-Eintrag."""
        await self.check_compliance(
            tenant_id, user_id, start, end, actor=SYSTEM_ACTOR, manual=False, lookback=lookback
        )

    def _dispatch_adjustments(self, tenant_id: uuid.UUID, violations: list[ComplianceViolation]) -> None:
        if self.dispatcher is None:
            return
        for v in violations:
            job = TimeAccountAdjustmentJob(
                tenant_id=tenant_id,
                user_id=v.user_id,
                violation_id=v.id,
                violation_type=ViolationType(v.violation_type),
                detected_at=v.detected_at,
            )
            try:
                self.dispatcher.dispatch(job)
            except Exception as e:
                _log_adjustment_result(job, AdjustmentResult.failed(e))

    # ── Bestätigung ───────────────────────────────────────────────────────────

    async def acknowledge_violation(
        self,
        tenant_id: uuid.UUID,
        violation_id: uuid.UUID,
        actor: str,
        acknowledged: bool = True,
    ) -> ComplianceViolation:
        violation = await self.get_violation(tenant_id, violation_id)
        if violation is None:
            raise NotFoundError(f"Verstoß {violation_id} nicht gefunden")

        if acknowledged:
            # Erste Bestätigung bleibt erhalten
            if violation.acknowledged_at is None:
                violation.acknowledged_at = self.clock.now()
                violation.acknowledged_by = actor
        else:
            violation.acknowledged_at = None
            violation.acknowledged_by = None

        await self.audit.log(
            tenant_id,
            AuditAction.VIOLATION_ACKNOWLEDGED,
            actor,
            {"violation_id": str(violation.id), "acknowledged": acknowledged},
        )
        await self.db.commit()
        return violation

    # ── Abfragen ──────────────────────────────────────────────────────────────

    async def get_violation(self, tenant_id: uuid.UUID, violation_id: uuid.UUID) -> ComplianceViolation | None:
        result = await self.db.execute(
            select(ComplianceViolation).where(
                ComplianceViolation.tenant_id == tenant_id,
                ComplianceViolation.id == violation_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_violations(
        self,
        tenant_id: uuid.UUID,
        filters: ViolationFilter | dict | None = None,
    ) -> tuple[list[ComplianceViolation], int]:
        if not isinstance(filters, ViolationFilter):
            try:
                filters = ViolationFilter.model_validate(filters or {})
            except ValidationError as e:
                raise ComplianceValidationError(f"Ungültige Filter: {e}") from e
        if filters.from_ and filters.to and filters.from_ > filters.to:
            raise ComplianceValidationError("Zeitraum ungültig: 'from' liegt nach 'to'")

        conditions = [ComplianceViolation.tenant_id == tenant_id]
        if filters.user_id:
            conditions.append(ComplianceViolation.user_id == filters.user_id)
        if filters.violation_type:
            conditions.append(ComplianceViolation.violation_type == filters.violation_type.value)
        if filters.severity:
            conditions.append(ComplianceViolation.severity == filters.severity.value)
        if filters.from_:
            conditions.append(ComplianceViolation.detected_at >= filters.from_)
        if filters.to:
            conditions.append(ComplianceViolation.detected_at <= filters.to)
        if filters.acknowledged is True:
            conditions.append(ComplianceViolation.acknowledged_at.is_not(None))
        elif filters.acknowledged is False:
            conditions.append(ComplianceViolation.acknowledged_at.is_(None))

        total = await self.db.scalar(
            select(func.count()).select_from(ComplianceViolation).where(*conditions)
        )
        result = await self.db.execute(
            select(ComplianceViolation)
            .where(*conditions)
            .order_by(
                ComplianceViolation.detected_at.desc(),
                ComplianceViolation.period_start.desc(),
                ComplianceViolation.id,
            )
            .limit(filters.limit)
            .offset(filters.offset)
        )
        return list(result.scalars().all()), total or 0

    async def list_period_violations(
        self,
        tenant_id: uuid.UUID,
        start: datetime,
        end: datetime,
        filters: ReportFilters | None = None,
    ) -> list[ComplianceViolation]:
        """Alle im Zeitraum erkannten Verstöße, ungepaginiert, in Report-Reihenfolge."""
        start, end = validate_period(start, end)
        conditions = [
            ComplianceViolation.tenant_id == tenant_id,
            ComplianceViolation.detected_at >= start,
            ComplianceViolation.detected_at <= end,
        ]
        if filters is not None:
            if filters.user_id:
                conditions.append(ComplianceViolation.user_id == filters.user_id)
            if filters.violation_type:
                conditions.append(ComplianceViolation.violation_type == filters.violation_type.value)
            if filters.severity:
                conditions.append(ComplianceViolation.severity == filters.severity.value)

        result = await self.db.execute(
            select(ComplianceViolation)
            .where(*conditions)
            .order_by(
                ComplianceViolation.detected_at,
                ComplianceViolation.user_id,
                ComplianceViolation.violation_type,
                ComplianceViolation.period_start,
                ComplianceViolation.id,
            )
        )
        return list(result.scalars().all())
