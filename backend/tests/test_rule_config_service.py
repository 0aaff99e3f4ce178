"""
Tests für RuleConfigStore – Standard-Set beim ersten Zugriff, Wechsel des
Regel-Sets, Overrides, Validierung und Cache-Invalidierung.
"""
import pytest
from sqlalchemy import select

from app.core.errors import ComplianceValidationError
from app.models.compliance import ComplianceAuditLog, ComplianceRule
from app.schemas.compliance import RuleSet, ViolationType
from app.services.rule_config_service import RuleConfigStore, build_rule_config


class DictCache:
    """In-Memory-Ersatz für RuleConfigCache."""

    def __init__(self):
        self.data = {}

    async def get(self, tenant_id):
        return self.data.get(tenant_id)

    async def set(self, tenant_id, payload):
        self.data[tenant_id] = payload

    async def invalidate(self, tenant_id):
        self.data.pop(tenant_id, None)


async def audit_entries(db, tenant_id):
    result = await db.execute(select(ComplianceAuditLog).where(ComplianceAuditLog.tenant_id == tenant_id))
    return result.scalars().all()


# ── build_rule_config ─────────────────────────────────────────────────────────

def test_build_rule_config_merges_severity_overrides():
    config = build_rule_config("de", {
        "min_rest_period_minutes": 600,
        "severity": {"BREAK_MISSING": {"error_from_minutes": 10}},
    })
    assert config.rule_set == RuleSet.DE
    assert config.timezone == "Europe/Berlin"
    assert config.min_rest_period_minutes == 600
    assert config.severity[ViolationType.BREAK_MISSING].error_from_minutes == 10
    assert config.severity[ViolationType.REST_PERIOD_VIOLATION].error_from_minutes == 60


@pytest.mark.parametrize("overrides", [
    {"min_rest_period_minutes": -5},
    {"unknown_key": 1},
    {"timezone": "Mars/Olympus_Mons"},
])
def test_build_rule_config_rejects_invalid_overrides(overrides):
    with pytest.raises(ComplianceValidationError):
        build_rule_config("eu", overrides)


def test_build_rule_config_rejects_unknown_rule_set():
    with pytest.raises(ComplianceValidationError):
        build_rule_config("us", None)


# ── RuleConfigStore ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_first_read_seeds_eu_default(db, tenant, clock):
    store = RuleConfigStore(db, clock)
    rule = await store.get_compliance_rule(tenant.id)

    assert rule.rule_set == "eu"
    assert rule.updated_by == "system"
    assert rule.created_at == clock.now()

    again = await store.get_compliance_rule(tenant.id)
    assert again.id == rule.id


@pytest.mark.asyncio
async def test_update_switches_rule_set_and_writes_audit(db, tenant, clock):
    store = RuleConfigStore(db, clock)
    await store.get_compliance_rule(tenant.id)
    clock.advance(hours=1)

    rule = await store.update_compliance_rule(tenant.id, "de", {"max_shift_duration_minutes": 480}, "admin-1")

    assert rule.rule_set == "de"
    assert rule.updated_by == "admin-1"
    assert rule.updated_at == clock.now()
    config = await store.get_rule_config(tenant.id)
    assert config.rule_set == RuleSet.DE
    assert config.max_shift_duration_minutes == 480

    entries = await audit_entries(db, tenant.id)
    assert [e.action for e in entries] == ["rule_set_changed"]
    assert entries[0].actor_uid == "admin-1"
    assert entries[0].details == {"rule_set": "de", "overrides": ["max_shift_duration_minutes"]}


@pytest.mark.asyncio
async def test_invalid_update_leaves_rule_untouched(db, tenant, clock):
    store = RuleConfigStore(db, clock)
    await store.get_compliance_rule(tenant.id)

    with pytest.raises(ComplianceValidationError):
        await store.update_compliance_rule(tenant.id, "xx", None, "admin-1")

    result = await db.execute(select(ComplianceRule).where(ComplianceRule.tenant_id == tenant.id))
    assert result.scalar_one().rule_set == "eu"
    assert await audit_entries(db, tenant.id) == []


@pytest.mark.asyncio
async def test_cache_is_filled_and_invalidated(db, tenant, clock):
    cache = DictCache()
    store = RuleConfigStore(db, clock, cache=cache)

    config = await store.get_rule_config(tenant.id)
    assert config.rule_set == RuleSet.EU
    assert tenant.id in cache.data

    await store.update_compliance_rule(tenant.id, "de", None, "admin-1")
    assert tenant.id not in cache.data
    assert (await store.get_rule_config(tenant.id)).rule_set == RuleSet.DE
