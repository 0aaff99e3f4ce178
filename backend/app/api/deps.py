from typing import Annotated
import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.database import get_db
from app.core.redis import RuleConfigCache, get_rule_config_cache
from app.core.security import decode_token
from app.core.storage import LocalBlobStore
from app.schemas.auth import TokenData
from app.services.audit_service import AuditLogger
from app.services.compliance_service import ComplianceService
from app.services.interval_source import SqlIntervalSource
from app.services.report_service import ReportGenerator
from app.services.rule_config_service import RuleConfigStore
from app.services.stats_service import ComplianceStatsAggregator
from app.tasks.background import AdjustmentDispatcher

security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        if payload.get("type") != "access":
            raise credentials_exception
        return TokenData(
            user_id=payload["sub"],
            tenant_id=uuid.UUID(payload["tenant_id"]),
            role=payload["role"],
        )
    except (ValueError, KeyError):
        raise credentials_exception


async def get_current_active_admin(
    current_user: Annotated[TokenData, Depends(get_current_user)],
) -> TokenData:
    if current_user.role not in ("admin",):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return current_user


async def get_current_manager_or_admin(
    current_user: Annotated[TokenData, Depends(get_current_user)],
) -> TokenData:
    """Allows admin and manager (Verwalter) roles."""
    if current_user.role not in ("admin", "manager"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions – admin or manager required",
        )
    return current_user


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
AdminUser = Annotated[TokenData, Depends(get_current_active_admin)]
ManagerOrAdmin = Annotated[TokenData, Depends(get_current_manager_or_admin)]
DB = Annotated[AsyncSession, Depends(get_db)]


# ── Service-Fabriken (in Tests per dependency_overrides austauschbar) ─────────

def get_clock() -> Clock:
    return system_clock


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore()


def get_adjustment_dispatcher(request: Request) -> AdjustmentDispatcher | None:
    return getattr(request.app.state, "adjustment_dispatcher", None)


ClockDep = Annotated[Clock, Depends(get_clock)]


async def get_audit_logger(db: DB, clock: ClockDep) -> AuditLogger:
    return AuditLogger(db, clock)


async def get_rule_store(
    db: DB,
    clock: ClockDep,
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    cache: Annotated[RuleConfigCache | None, Depends(get_rule_config_cache)],
) -> RuleConfigStore:
    return RuleConfigStore(db, clock, audit, cache)


async def get_compliance_service(
    db: DB,
    clock: ClockDep,
    rules: Annotated[RuleConfigStore, Depends(get_rule_store)],
    dispatcher: Annotated[AdjustmentDispatcher | None, Depends(get_adjustment_dispatcher)],
) -> ComplianceService:
    return ComplianceService(
        db,
        clock,
        interval_source=SqlIntervalSource(db),
        dispatcher=dispatcher,
        rules=rules,
        audit=rules.audit,
    )


async def get_report_generator(
    db: DB,
    clock: ClockDep,
    rules: Annotated[RuleConfigStore, Depends(get_rule_store)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
) -> ReportGenerator:
    return ReportGenerator(db, clock, blob_store, rules=rules, audit=rules.audit)


async def get_stats_aggregator(
    db: DB,
    clock: ClockDep,
    rules: Annotated[RuleConfigStore, Depends(get_rule_store)],
) -> ComplianceStatsAggregator:
    return ComplianceStatsAggregator(db, clock, rules)


RuleStore = Annotated[RuleConfigStore, Depends(get_rule_store)]
Compliance = Annotated[ComplianceService, Depends(get_compliance_service)]
Reports = Annotated[ReportGenerator, Depends(get_report_generator)]
Stats = Annotated[ComplianceStatsAggregator, Depends(get_stats_aggregator)]
Audit = Annotated[AuditLogger, Depends(get_audit_logger)]
BlobStoreDep = Annotated[LocalBlobStore, Depends(get_blob_store)]
