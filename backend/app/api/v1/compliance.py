"""
Compliance API – Regel-Sets, Verstöße, Reports, Audit-Log und Kennzahlen.
"""
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from app.api.deps import AdminUser, Audit, BlobStoreDep, Compliance, ManagerOrAdmin, Reports, RuleStore, Stats
from app.core.errors import BlobStoreError, ComplianceValidationError, NotFoundError
from app.schemas.compliance import (
    AcknowledgeViolationRequest,
    AuditAction,
    AuditLogListOut,
    AuditLogOut,
    CheckComplianceRequest,
    ComplianceReportOut,
    ComplianceRuleOut,
    ComplianceStatsOut,
    ComplianceViolationOut,
    GenerateReportRequest,
    ReportListOut,
    Severity,
    UpdateRuleSetRequest,
    ViolationListOut,
    ViolationType,
)

router = APIRouter(prefix="/compliance", tags=["compliance"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# ── Regel-Set ─────────────────────────────────────────────────────────────────

@router.get("/rules", response_model=ComplianceRuleOut)
async def get_rules(current_user: ManagerOrAdmin, rules: RuleStore):
    return await rules.get_compliance_rule(current_user.tenant_id)


@router.put("/rules", response_model=ComplianceRuleOut)
async def update_rules(body: UpdateRuleSetRequest, current_user: AdminUser, rules: RuleStore):
    try:
        return await rules.update_compliance_rule(
            current_user.tenant_id, body.rule_set, body.config, current_user.user_id
        )
    except ComplianceValidationError as e:
        raise _http_error(e)


# ── Verstöße ──────────────────────────────────────────────────────────────────

@router.get("/violations", response_model=ViolationListOut)
async def list_violations(
    current_user: ManagerOrAdmin,
    service: Compliance,
    user_id: str | None = None,
    violation_type: ViolationType | None = None,
    severity: Severity | None = None,
    acknowledged: bool | None = None,
    from_: Annotated[datetime | None, Query(alias="from")] = None,
    to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
):
    filters = {
        "user_id": user_id,
        "violation_type": violation_type,
        "severity": severity,
        "acknowledged": acknowledged,
        "from": from_,
        "to": to,
        "limit": limit,
        "offset": offset,
    }
    try:
        violations, total = await service.get_violations(current_user.tenant_id, filters)
    except ComplianceValidationError as e:
        raise _http_error(e)
    return ViolationListOut(
        violations=[ComplianceViolationOut.model_validate(v) for v in violations],
        count=len(violations),
        total=total,
    )


@router.get("/violations/{violation_id}", response_model=ComplianceViolationOut)
async def get_violation(violation_id: uuid.UUID, current_user: ManagerOrAdmin, service: Compliance):
    violation = await service.get_violation(current_user.tenant_id, violation_id)
    if not violation:
        raise HTTPException(status_code=404, detail="Verstoß nicht gefunden")
    return violation


@router.post("/violations/{violation_id}/acknowledge", response_model=ComplianceViolationOut)
async def acknowledge_violation(
    violation_id: uuid.UUID,
    body: AcknowledgeViolationRequest,
    current_user: ManagerOrAdmin,
    service: Compliance,
):
    try:
        return await service.acknowledge_violation(
            current_user.tenant_id, violation_id, current_user.user_id, body.acknowledged
        )
    except NotFoundError as e:
        raise _http_error(e)


@router.post("/check", response_model=ViolationListOut)
async def run_compliance_check(body: CheckComplianceRequest, current_user: ManagerOrAdmin, service: Compliance):
    """Manuelle Prüfung eines Zeitraums (optional nur für einen Mitarbeiter)."""
    try:
        violations = await service.check_compliance(
            current_user.tenant_id,
            body.user_id,
            body.start_date,
            body.end_date,
            actor=current_user.user_id,
        )
    except ComplianceValidationError as e:
        raise _http_error(e)
    return ViolationListOut(
        violations=[ComplianceViolationOut.model_validate(v) for v in violations],
        count=len(violations),
        total=len(violations),
    )


# ── Reports ───────────────────────────────────────────────────────────────────

@router.post("/reports", response_model=ComplianceReportOut, status_code=201)
async def generate_report(body: GenerateReportRequest, current_user: ManagerOrAdmin, reports: Reports):
    try:
        return await reports.generate_report(
            current_user.tenant_id,
            current_user.user_id,
            body.period_start,
            body.period_end,
            body.format,
            body.filters,
        )
    except ComplianceValidationError as e:
        raise _http_error(e)
    except BlobStoreError:
        raise HTTPException(status_code=503, detail="Report konnte nicht gespeichert werden")


@router.get("/reports", response_model=ReportListOut)
async def list_reports(
    current_user: ManagerOrAdmin,
    reports: Reports,
    limit: int = 50,
    offset: int = 0,
):
    try:
        items, total = await reports.list_reports(current_user.tenant_id, limit, offset)
    except ComplianceValidationError as e:
        raise _http_error(e)
    return ReportListOut(reports=items, count=len(items), total=total)


@router.get("/reports/download")
async def download_report(token: str, blob_store: BlobStoreDep):
    """Token-autorisierter Download (Link aus download_url)."""
    try:
        path = blob_store.path_from_token(token)
        content = await blob_store.get(path)
    except BlobStoreError:
        raise HTTPException(status_code=404, detail="Download-Link ungültig oder abgelaufen")

    filename = path.rsplit("/", 1)[-1]
    media_type = "application/pdf" if filename.endswith(".pdf") else "text/csv; charset=utf-8"
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="compliance-report-{filename}"',
            "Cache-Control": "no-cache",
        },
    )


@router.get("/reports/{report_id}", response_model=ComplianceReportOut)
async def get_report(report_id: uuid.UUID, current_user: ManagerOrAdmin, reports: Reports):
    report = await reports.get_report(current_user.tenant_id, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report nicht gefunden")
    return report


@router.get("/reports/{report_id}/verify", response_model=dict)
async def verify_report(report_id: uuid.UUID, current_user: ManagerOrAdmin, reports: Reports):
    try:
        valid = await reports.verify_report(current_user.tenant_id, report_id)
    except NotFoundError as e:
        raise _http_error(e)
    except BlobStoreError:
        valid = False
    return {"report_id": str(report_id), "valid": valid}


# ── Audit-Log & Kennzahlen ────────────────────────────────────────────────────

@router.get("/audit-logs", response_model=AuditLogListOut)
async def list_audit_logs(
    current_user: ManagerOrAdmin,
    audit: Audit,
    action: AuditAction | None = None,
    from_: Annotated[datetime | None, Query(alias="from")] = None,
    to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
):
    filters = {"action": action, "from": from_, "to": to, "limit": limit, "offset": offset}
    try:
        logs, total = await audit.get_audit_logs(current_user.tenant_id, filters)
    except ComplianceValidationError as e:
        raise _http_error(e)
    return AuditLogListOut(
        logs=[AuditLogOut.model_validate(entry) for entry in logs],
        count=len(logs),
        total=total,
    )


@router.get("/stats", response_model=ComplianceStatsOut)
async def get_stats(current_user: ManagerOrAdmin, stats: Stats):
    return await stats.get_compliance_stats(current_user.tenant_id)
