"""
RuleConfigStore: aktives Compliance-Regel-Set pro Tenant.

Beim ersten Lesen wird das EU-Standardset angelegt. Änderungen laufen nur
über update_compliance_rule und werden im Audit-Log festgehalten.
"""
import logging
import uuid
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.errors import ComplianceValidationError
from app.core.redis import RuleConfigCache
from app.models.compliance import ComplianceRule
from app.schemas.compliance import AuditAction, DEFAULT_RULE_SETS, RuleConfig, RuleSet
from app.services.audit_service import AuditLogger

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def build_rule_config(rule_set: str | RuleSet, overrides: dict[str, Any] | None = None) -> RuleConfig:
    """Standardwerte des Regel-Sets mit Tenant-Overrides zusammenführen."""
    try:
        rule_set = RuleSet(rule_set)
    except ValueError:
        raise ComplianceValidationError(f"Unbekanntes Regel-Set: {rule_set}")

    overrides = dict(overrides or {})
    overrides.pop("rule_set", None)

    base = DEFAULT_RULE_SETS[rule_set].model_dump(mode="json")
    if "severity" in overrides and isinstance(overrides["severity"], dict):
        overrides["severity"] = {**base["severity"], **overrides["severity"]}

    try:
        return RuleConfig.model_validate({**base, **overrides, "rule_set": rule_set.value})
    except ValidationError as e:
        raise ComplianceValidationError(f"Ungültige Regel-Konfiguration: {e}") from e


class RuleConfigStore:

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = system_clock,
        audit: AuditLogger | None = None,
        cache: RuleConfigCache | None = None,
    ):
        self.db = db
        self.clock = clock
        self.audit = audit or AuditLogger(db, clock)
        self.cache = cache

    async def _load(self, tenant_id: uuid.UUID) -> ComplianceRule | None:
        result = await self.db.execute(
            select(ComplianceRule).where(ComplianceRule.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_compliance_rule(self, tenant_id: uuid.UUID) -> ComplianceRule:
        rule = await self._load(tenant_id)
        if rule is not None:
            return rule

        now = self.clock.now()
        default = DEFAULT_RULE_SETS[RuleSet.EU]
        rule = ComplianceRule(
            tenant_id=tenant_id,
            rule_set=default.rule_set.value,
            config=default.model_dump(mode="json"),
            created_at=now,
            updated_at=now,
            updated_by=SYSTEM_ACTOR,
        )
        self.db.add(rule)
        try:
            await self.db.commit()
        except IntegrityError:
            # Paralleler Erstzugriff hat die Zeile schon angelegt
            await self.db.rollback()
            logger.info("Compliance rule for tenant %s created concurrently, reloading", tenant_id)
            rule = await self._load(tenant_id)
            if rule is None:
                raise
        else:
            logger.info("Seeded default %s compliance rule for tenant %s", default.rule_set.value, tenant_id)
        return rule

    async def get_rule_config(self, tenant_id: uuid.UUID) -> RuleConfig:
        if self.cache is not None:
            cached = await self.cache.get(tenant_id)
            if cached:
                return RuleConfig.model_validate_json(cached)

        rule = await self.get_compliance_rule(tenant_id)
        config = RuleConfig.model_validate(rule.config)
        if self.cache is not None:
            await self.cache.set(tenant_id, config.model_dump_json())
        return config

    async def update_compliance_rule(
        self,
        tenant_id: uuid.UUID,
        rule_set: str | RuleSet,
        overrides: dict[str, Any] | None,
        actor: str,
    ) -> ComplianceRule:
        # Validierung vor jedem Schreibzugriff
        config = build_rule_config(rule_set, overrides)

        rule = await self.get_compliance_rule(tenant_id)
        rule.rule_set = config.rule_set.value
        rule.config = config.model_dump(mode="json")
        rule.updated_at = self.clock.now()
        rule.updated_by = actor

        await self.audit.log(
            tenant_id,
            AuditAction.RULE_SET_CHANGED,
            actor,
            {"rule_set": config.rule_set.value, "overrides": sorted((overrides or {}).keys())},
        )
        await self.db.commit()

        if self.cache is not None:
            await self.cache.invalidate(tenant_id)
        logger.info("Compliance rule of tenant %s set to %s by %s", tenant_id, config.rule_set.value, actor)
        return rule
