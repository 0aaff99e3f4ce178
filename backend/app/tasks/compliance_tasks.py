"""
Celery-Tasks für automatische Compliance-Prüfungen und Zeitkonto-Anpassungen.
"""
import logging
from datetime import datetime, time, timedelta, timezone

from app.services.time_account_service import TimeAccountAdjustmentJob
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# Eine volle Woche plus Rand, damit Wochenregeln und Ruhezeiten über
# Mitternacht im nächtlichen Lauf vollständig sichtbar sind
NIGHTLY_LOOKBACK = timedelta(days=8)


def nightly_window(now: datetime) -> tuple[datetime, datetime]:
    """Vortag in UTC: (gestern 00:00, heute 00:00)."""
    today = now.astimezone(timezone.utc).date()
    end = datetime.combine(today, time.min, tzinfo=timezone.utc)
    return end - timedelta(days=1), end


class CeleryAdjustmentDispatcher:
    """Übergibt Zeitkonto-Jobs an Celery statt an den In-Process-Worker."""

    def dispatch(self, job: TimeAccountAdjustmentJob) -> bool:
        # Ohne Retry-Policy: ein nicht erreichbarer Broker schlägt sofort fehl
        try:
            apply_time_account_adjustment.apply_async(args=(job.as_payload(),), retry=False)
        except Exception:
            logger.exception("Could not enqueue time account adjustment for violation %s", job.violation_id)
            return False
        return True


@celery_app.task(name="app.tasks.compliance_tasks.apply_time_account_adjustment")
def apply_time_account_adjustment(payload: dict) -> str:
    """Bucht die Zeitkonto-Anpassung für einen einzelnen Verstoß."""
    import asyncio
    from app.services.compliance_service import _log_adjustment_result

    job = TimeAccountAdjustmentJob.from_payload(payload)
    result = asyncio.run(_apply(job))
    _log_adjustment_result(job, result)
    return result.status


async def _apply(job: TimeAccountAdjustmentJob):
    from app.core.database import AsyncSessionLocal
    from app.services.time_account_service import AdjustmentResult, apply_compliance_adjustment

    try:
        return await apply_compliance_adjustment(job, AsyncSessionLocal)
    except Exception as e:
        return AdjustmentResult.failed(e)


@celery_app.task(name="app.tasks.compliance_tasks.detect_recent_violations")
def detect_recent_violations():
    """Prüft den Vortag (UTC) für alle aktiven Tenants."""
    import asyncio
    asyncio.run(_detect_recent())


async def _detect_recent():
    from sqlalchemy import select
    from app.core.database import AsyncSessionLocal
    from app.models.tenant import Tenant
    from app.services.compliance_service import ComplianceService
    from app.services.interval_source import SqlIntervalSource

    start, end = nightly_window(datetime.now(timezone.utc))

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Tenant.id).where(Tenant.is_active == True))
        tenant_ids = result.scalars().all()

    dispatcher = CeleryAdjustmentDispatcher()
    for tenant_id in tenant_ids:
        # Eigene Session pro Tenant, damit ein Fehler die anderen nicht blockiert
        async with AsyncSessionLocal() as db:
            service = ComplianceService(
                db,
                interval_source=SqlIntervalSource(db),
                dispatcher=dispatcher,
            )
            try:
                await service.detect_violations(tenant_id, None, start, end, lookback=NIGHTLY_LOOKBACK)
            except Exception:
                await db.rollback()
                logger.exception("Nightly compliance detection failed for tenant %s", tenant_id)
