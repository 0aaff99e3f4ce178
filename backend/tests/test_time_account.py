"""
Tests für Zeitkonto-Anpassungen und den In-Process-Worker, der sie
im Hintergrund ausführt.
"""
import asyncio
import logging
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import ComplianceValidationError
from app.models.time_account import TimeAccountAdjustment
from app.schemas.compliance import ViolationType
from app.services.compliance_service import _log_adjustment_result
from app.services.time_account_service import (
    AdjustmentResult,
    TimeAccountAdjustmentJob,
    TimeAccountService,
    apply_compliance_adjustment,
)
from app.tasks.background import BackgroundWorker
from tests.conftest import create_tenant, utc


def make_job(tenant_id, violation_type=ViolationType.REST_PERIOD_VIOLATION, detected_at=None):
    return TimeAccountAdjustmentJob(
        tenant_id=tenant_id,
        user_id="user-1",
        violation_id=uuid.uuid4(),
        violation_type=violation_type,
        detected_at=detected_at or utc(2025, 3, 12, 10),
    )


async def adjustments(db):
    result = await db.execute(select(TimeAccountAdjustment))
    return result.scalars().all()


# ── TimeAccountService ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_adjustment_is_booked_when_module_enabled(db, tenant, clock):
    violation_id = uuid.uuid4()
    result = await TimeAccountService(db, clock).add_compliance_adjustment(
        tenant.id, "user-1", 2025, 3, -0.5, "Compliance-Verstoß: REST_PERIOD_VIOLATION", violation_id, "system"
    )

    assert result.status == "applied"
    rows = await adjustments(db)
    assert len(rows) == 1
    assert rows[0].id == result.adjustment_id
    assert Decimal(str(rows[0].amount_hours)) == Decimal("-0.5")
    assert rows[0].reference_id == str(violation_id)
    assert rows[0].source == "compliance"
    assert rows[0].adjusted_at == clock.now()


@pytest.mark.asyncio
async def test_adjustment_is_noop_without_module(db, clock):
    tenant = await create_tenant(db, modules=[])

    result = await TimeAccountService(db, clock).add_compliance_adjustment(
        tenant.id, "user-1", 2025, 3, -0.5, "Compliance-Verstoß", uuid.uuid4(), "system"
    )

    assert result.status == "module_disabled"
    assert await adjustments(db) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("month,reason", [(13, "Compliance-Verstoß"), (3, "  ")])
async def test_adjustment_validation(db, tenant, clock, month, reason):
    with pytest.raises(ComplianceValidationError):
        await TimeAccountService(db, clock).add_compliance_adjustment(
            tenant.id, "user-1", 2025, month, -0.5, reason, uuid.uuid4(), "system"
        )


@pytest.mark.asyncio
async def test_apply_job_uses_detected_month_in_utc(db, tenant, session_factory, clock):
    job = make_job(
        tenant.id,
        ViolationType.MAX_WORKING_TIME_EXCEEDED,
        detected_at=utc(2025, 3, 31, 23, 30),
    )

    result = await apply_compliance_adjustment(job, session_factory, clock)

    assert result.status == "applied"
    row = (await adjustments(db))[0]
    assert (row.year, row.month) == (2025, 3)
    assert Decimal(str(row.amount_hours)) == Decimal("-2.0")


def test_job_payload_survives_json_transport():
    job = make_job(uuid.uuid4(), ViolationType.BREAK_MISSING)
    assert TimeAccountAdjustmentJob.from_payload(job.as_payload()) == job


# ── BackgroundWorker ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_worker_delivers_results():
    results = []

    async def handler(job):
        return AdjustmentResult(status="applied")

    worker = BackgroundWorker(handler, on_result=lambda job, result: results.append((job, result)))
    await worker.start()
    job = make_job(uuid.uuid4())
    assert worker.dispatch(job) is True
    await worker.stop()

    assert results == [(job, AdjustmentResult(status="applied"))]
    assert not worker.running


@pytest.mark.asyncio
async def test_worker_turns_exceptions_into_failed_results(caplog):
    async def handler(job):
        raise RuntimeError("db locked")

    worker = BackgroundWorker(handler, on_result=_log_adjustment_result)
    await worker.start()

    with caplog.at_level(logging.ERROR, logger="app.services.compliance_service"):
        worker.dispatch(make_job(uuid.uuid4()))
        await worker.join()

    await worker.stop()
    assert "db locked" in caplog.text


@pytest.mark.asyncio
async def test_worker_logs_disabled_module_as_info(caplog):
    async def handler(job):
        return AdjustmentResult(status="module_disabled")

    worker = BackgroundWorker(handler, on_result=_log_adjustment_result)
    await worker.start()

    with caplog.at_level(logging.INFO, logger="app.services.compliance_service"):
        worker.dispatch(make_job(uuid.uuid4()))
        await worker.join()

    await worker.stop()
    records = [r for r in caplog.records if r.name == "app.services.compliance_service"]
    assert [r.levelno for r in records] == [logging.INFO]


@pytest.mark.asyncio
async def test_full_queue_drops_job_without_blocking(caplog):
    started = asyncio.Event()

    async def handler(job):
        started.set()
        return AdjustmentResult(status="applied")

    worker = BackgroundWorker(handler, maxsize=1)

    with caplog.at_level(logging.WARNING, logger="app.tasks.background"):
        assert worker.dispatch(make_job(uuid.uuid4())) is True
        assert worker.dispatch(make_job(uuid.uuid4())) is False

    assert "queue full" in caplog.text
    await worker.start()
    await worker.stop()
    assert started.is_set()


# ── Celery-Dispatcher ─────────────────────────────────────────────────────────

def test_celery_dispatcher_publishes_without_retry(monkeypatch):
    from app.tasks import compliance_tasks

    sent = []
    monkeypatch.setattr(
        compliance_tasks.apply_time_account_adjustment,
        "apply_async",
        lambda args, **options: sent.append((args, options)),
    )
    job = make_job(uuid.uuid4())

    assert compliance_tasks.CeleryAdjustmentDispatcher().dispatch(job) is True
    assert sent == [((job.as_payload(),), {"retry": False})]


def test_celery_dispatcher_reports_broker_failure(monkeypatch, caplog):
    from app.tasks import compliance_tasks

    def unreachable(args, **options):
        raise ConnectionError("broker down")

    monkeypatch.setattr(compliance_tasks.apply_time_account_adjustment, "apply_async", unreachable)

    with caplog.at_level(logging.ERROR, logger="app.tasks.compliance_tasks"):
        assert compliance_tasks.CeleryAdjustmentDispatcher().dispatch(make_job(uuid.uuid4())) is False
    assert "Could not enqueue" in caplog.text
