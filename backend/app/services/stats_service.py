"""
Kennzahlen über die jüngsten Verstöße (heute / Woche / Monat, nach Typ und
Severity). Reiner Lesezugriff, Zeitgrenzen in der Zeitzone des Regel-Sets.
"""
import uuid
from collections import Counter
from datetime import datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.models.compliance import ComplianceViolation
from app.schemas.compliance import ComplianceStatsOut, Severity, StatsBucket, TypeCount
from app.services.rule_config_service import RuleConfigStore


def _bucket(violations: list[ComplianceViolation]) -> StatsBucket:
    return StatsBucket(
        violations=len(violations),
        warnings=sum(1 for v in violations if v.severity == Severity.WARNING.value),
        errors=sum(1 for v in violations if v.severity == Severity.ERROR.value),
    )


class ComplianceStatsAggregator:

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = system_clock,
        rules: RuleConfigStore | None = None,
        window: int | None = None,
    ):
        self.db = db
        self.clock = clock
        self.rules = rules or RuleConfigStore(db, clock)
        self.window = window or settings.COMPLIANCE_STATS_WINDOW

    async def get_compliance_stats(self, tenant_id: uuid.UUID) -> ComplianceStatsOut:
        config = await self.rules.get_rule_config(tenant_id)
        tz = config.tz

        result = await self.db.execute(
            select(ComplianceViolation)
            .where(ComplianceViolation.tenant_id == tenant_id)
            .order_by(ComplianceViolation.detected_at.desc(), ComplianceViolation.id)
            .limit(self.window)
        )
        violations = list(result.scalars().all())

        today = self.clock.now().astimezone(tz).date()
        day_start = datetime.combine(today, time.min, tzinfo=tz)
        week_start = datetime.combine(today - timedelta(days=today.weekday()), time.min, tzinfo=tz)
        month_start = datetime.combine(today.replace(day=1), time.min, tzinfo=tz)

        by_type = Counter(v.violation_type for v in violations)
        by_severity = Counter(v.severity for v in violations)

        return ComplianceStatsOut(
            today=_bucket([v for v in violations if v.detected_at >= day_start]),
            this_week=_bucket([v for v in violations if v.detected_at >= week_start]),
            this_month=_bucket([v for v in violations if v.detected_at >= month_start]),
            violations_by_type=[
                TypeCount(type=t, count=by_type[t]) for t in sorted(by_type)
            ],
            violations_by_severity={s: by_severity.get(s.value, 0) for s in Severity},
        )
