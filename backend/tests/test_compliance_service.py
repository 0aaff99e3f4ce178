"""
Tests für ComplianceService – Prüflauf über die DB, Speicherung,
Zeitkonto-Jobs, Bestätigen und Filtern von Verstößen.
"""
import logging
from datetime import timedelta
import uuid

import pytest
from sqlalchemy import select, func

from app.core.errors import ComplianceValidationError, NotFoundError
from app.models.compliance import ComplianceAuditLog, ComplianceViolation
from app.services.compliance_service import ComplianceService
from app.services.interval_source import SqlIntervalSource
from tests.conftest import add_time_entry, add_violation, create_tenant, utc


async def seed_short_rest(db, tenant_id, user_id="user-1"):
    """09:00–17:00 und 17:05–01:00 mit je 30 Min Pause → ein Ruhezeit-Verstoß."""
    await add_time_entry(db, tenant_id, user_id, utc(2025, 3, 10, 9), utc(2025, 3, 10, 17), 30)
    await add_time_entry(db, tenant_id, user_id, utc(2025, 3, 10, 17, 5), utc(2025, 3, 11, 1), 30)


async def audit_actions(db, tenant_id):
    result = await db.execute(
        select(ComplianceAuditLog.action).where(ComplianceAuditLog.tenant_id == tenant_id)
    )
    return list(result.scalars().all())


# ── check_compliance ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_check_persists_violation_and_dispatches_adjustment(db, tenant, service, clock, dispatcher):
    await seed_short_rest(db, tenant.id)

    violations = await service.check_compliance(
        tenant.id, None, utc(2025, 3, 10), utc(2025, 3, 12), actor="manager-1"
    )

    assert len(violations) == 1
    v = violations[0]
    assert v.violation_type == "REST_PERIOD_VIOLATION"
    assert v.severity == "error"
    assert v.rule_set == "eu"
    assert v.user_id == "user-1"
    assert v.detected_at == clock.now()
    assert v.details["expected"] == 660
    assert v.details["actual"] == 5
    assert len(v.details["affected_entries"]) == 2

    stored = await service.get_violation(tenant.id, v.id)
    assert stored is not None
    assert stored.period_start == utc(2025, 3, 10, 17)
    assert stored.period_end == utc(2025, 3, 10, 17, 5)

    assert len(dispatcher.jobs) == 1
    job = dispatcher.jobs[0]
    assert job.violation_id == v.id
    assert job.user_id == "user-1"
    assert job.tenant_id == tenant.id

    assert await audit_actions(db, tenant.id) == ["manual_check"]


@pytest.mark.asyncio
async def test_check_for_single_user_ignores_others(db, tenant, service):
    await seed_short_rest(db, tenant.id, "user-1")
    await seed_short_rest(db, tenant.id, "user-2")

    violations = await service.check_compliance(tenant.id, "user-2", utc(2025, 3, 10), utc(2025, 3, 12))

    assert [v.user_id for v in violations] == ["user-2"]


@pytest.mark.asyncio
async def test_open_entries_are_not_checked(db, tenant, service):
    await add_time_entry(db, tenant.id, "user-1", utc(2025, 3, 10, 6), None)

    assert await service.check_compliance(tenant.id, None, utc(2025, 3, 10), utc(2025, 3, 11)) == []


@pytest.mark.asyncio
async def test_detect_violations_writes_no_audit_entry(db, tenant, service):
    await seed_short_rest(db, tenant.id)

    result = await service.detect_violations(tenant.id, "user-1", utc(2025, 3, 10), utc(2025, 3, 12))

    assert result is None
    assert await db.scalar(select(func.count()).select_from(ComplianceViolation)) == 1
    assert await audit_actions(db, tenant.id) == []


@pytest.mark.asyncio
async def test_rerun_creates_duplicate_records_with_same_dedup_key(db, tenant, service):
    await seed_short_rest(db, tenant.id)

    first = await service.check_compliance(tenant.id, None, utc(2025, 3, 10), utc(2025, 3, 12))
    second = await service.check_compliance(tenant.id, None, utc(2025, 3, 10), utc(2025, 3, 12))

    assert first[0].id != second[0].id
    assert first[0].dedup_key == second[0].dedup_key
    assert await db.scalar(select(func.count()).select_from(ComplianceViolation)) == 2


@pytest.mark.asyncio
async def test_inverted_period_is_rejected(db, tenant, service):
    with pytest.raises(ComplianceValidationError):
        await service.check_compliance(tenant.id, None, utc(2025, 3, 12), utc(2025, 3, 10))
    assert await audit_actions(db, tenant.id) == []


@pytest.mark.asyncio
async def test_failing_dispatcher_does_not_roll_back(db, tenant, clock, caplog):
    class BrokenDispatcher:
        def dispatch(self, job):
            raise RuntimeError("queue unavailable")

    await seed_short_rest(db, tenant.id)
    service = ComplianceService(db, clock, SqlIntervalSource(db), BrokenDispatcher())

    with caplog.at_level(logging.ERROR, logger="app.services.compliance_service"):
        violations = await service.check_compliance(tenant.id, None, utc(2025, 3, 10), utc(2025, 3, 12))

    assert len(violations) == 1
    assert await service.get_violation(tenant.id, violations[0].id) is not None
    assert "queue unavailable" in caplog.text


# ── acknowledge_violation ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_acknowledge_twice_keeps_first_values(db, tenant, service, clock):
    v = await add_violation(db, tenant.id, utc(2025, 3, 11, 8))
    first_time = clock.now()

    await service.acknowledge_violation(tenant.id, v.id, "manager-1", True)
    clock.advance(hours=2)
    again = await service.acknowledge_violation(tenant.id, v.id, "manager-2", True)

    assert again.acknowledged_at == first_time
    assert again.acknowledged_by == "manager-1"
    assert await audit_actions(db, tenant.id) == ["violation_acknowledged", "violation_acknowledged"]


@pytest.mark.asyncio
async def test_unacknowledge_clears_pair(db, tenant, service):
    v = await add_violation(db, tenant.id, utc(2025, 3, 11, 8), acknowledged=True)

    cleared = await service.acknowledge_violation(tenant.id, v.id, "manager-1", False)

    assert cleared.acknowledged_at is None
    assert cleared.acknowledged_by is None


@pytest.mark.asyncio
async def test_acknowledge_unknown_violation(db, tenant, service):
    with pytest.raises(NotFoundError):
        await service.acknowledge_violation(tenant.id, uuid.uuid4(), "manager-1", True)
    assert await audit_actions(db, tenant.id) == []


@pytest.mark.asyncio
async def test_acknowledge_violation_of_other_tenant_is_not_found(db, tenant, service):
    other = await create_tenant(db)
    v = await add_violation(db, other.id, utc(2025, 3, 11, 8))

    with pytest.raises(NotFoundError):
        await service.acknowledge_violation(tenant.id, v.id, "manager-1", True)


# ── get_violations ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_violations_filters_and_paginates(db, tenant, service):
    await add_violation(db, tenant.id, utc(2025, 3, 1, 8), user_id="a", severity="warning")
    await add_violation(db, tenant.id, utc(2025, 3, 5, 8), user_id="b", acknowledged=True)
    await add_violation(db, tenant.id, utc(2025, 3, 9, 8), user_id="a", violation_type="BREAK_MISSING")
    await add_violation(db, tenant.id, utc(2025, 3, 10, 8), user_id="a")

    items, total = await service.get_violations(tenant.id, {"limit": 2})
    assert total == 4
    assert [v.detected_at for v in items] == [utc(2025, 3, 10, 8), utc(2025, 3, 9, 8)]

    items, total = await service.get_violations(tenant.id, {"limit": 2, "offset": 2})
    assert [v.detected_at for v in items] == [utc(2025, 3, 5, 8), utc(2025, 3, 1, 8)]

    _, total = await service.get_violations(tenant.id, {"user_id": "a"})
    assert total == 3

    items, _ = await service.get_violations(tenant.id, {"acknowledged": True})
    assert [v.user_id for v in items] == ["b"]

    _, total = await service.get_violations(tenant.id, {"acknowledged": False, "severity": "error"})
    assert total == 2

    items, _ = await service.get_violations(tenant.id, {"violation_type": "BREAK_MISSING"})
    assert len(items) == 1

    _, total = await service.get_violations(tenant.id, {"from": utc(2025, 3, 5), "to": utc(2025, 3, 9, 23)})
    assert total == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("filters", [{"limit": 0}, {"limit": 1001}, {"offset": -1}, {"severity": "fatal"}])
async def test_get_violations_rejects_malformed_filters(db, tenant, service, filters):
    with pytest.raises(ComplianceValidationError):
        await service.get_violations(tenant.id, filters)


@pytest.mark.asyncio
async def test_get_violations_is_tenant_scoped(db, tenant, service):
    other = await create_tenant(db)
    await add_violation(db, other.id, utc(2025, 3, 10, 8))

    items, total = await service.get_violations(tenant.id)
    assert items == [] and total == 0


# ── Nächtliche Erkennung ──────────────────────────────────────────────────────

async def run_nights(service, tenant_id, first_night, nights):
    from app.tasks.compliance_tasks import NIGHTLY_LOOKBACK, nightly_window

    for n in range(nights):
        start, end = nightly_window(first_night + timedelta(days=n))
        await service.detect_violations(tenant_id, None, start, end, lookback=NIGHTLY_LOOKBACK)


async def stored_types(db, tenant_id):
    result = await db.execute(
        select(ComplianceViolation.violation_type).where(ComplianceViolation.tenant_id == tenant_id)
    )
    return sorted(result.scalars().all())


@pytest.mark.asyncio
async def test_nightly_runs_find_rest_breach_across_midnight(db, tenant, service):
    # Spätdienst bis 22:00, Frühdienst ab 06:00 → 8h Ruhe
    await add_time_entry(db, tenant.id, "user-1", utc(2025, 3, 10, 14), utc(2025, 3, 10, 22), 30)
    await add_time_entry(db, tenant.id, "user-1", utc(2025, 3, 11, 6), utc(2025, 3, 11, 10))

    await run_nights(service, tenant.id, utc(2025, 3, 11, 2, 30), 1)
    assert await stored_types(db, tenant.id) == []

    await run_nights(service, tenant.id, utc(2025, 3, 12, 2, 30), 2)
    result = await db.execute(select(ComplianceViolation).where(ComplianceViolation.tenant_id == tenant.id))
    violations = result.scalars().all()
    assert [v.violation_type for v in violations] == ["REST_PERIOD_VIOLATION"]
    assert violations[0].details["actual"] == 480


@pytest.mark.asyncio
async def test_nightly_runs_record_weekly_findings_once_the_week_closes(db, tenant, service):
    # Mo 10.03 bis So 16.03, täglich 08:00–18:00 mit 45 Min Pause
    for day in range(10, 17):
        await add_time_entry(db, tenant.id, "user-1", utc(2025, 3, day, 8), utc(2025, 3, day, 18), 45)

    await run_nights(service, tenant.id, utc(2025, 3, 11, 2, 30), 6)
    assert await stored_types(db, tenant.id) == []

    await run_nights(service, tenant.id, utc(2025, 3, 17, 2, 30), 2)
    assert await stored_types(db, tenant.id) == ["MAX_WORKING_TIME_EXCEEDED", "WEEKLY_REST_VIOLATION"]
