"""
ReportGenerator: Compliance-Reports (CSV/PDF) mit SHA-256-Prüfsumme.

Reihenfolge beim Erzeugen: rendern → hashen → Blob schreiben → Metadaten
und Audit-Eintrag committen. Metadaten existieren also nur für erfolgreich
abgelegte Blobs. Scheitert der Commit, wird der Blob wieder entfernt.
"""
import hashlib
import logging
import uuid
from collections import Counter
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.errors import BlobStoreError, ComplianceValidationError, NotFoundError
from app.core.storage import BlobStore
from app.models.compliance import ComplianceReport, ComplianceViolation
from app.schemas.compliance import (
    AuditAction,
    ComplianceReportOut,
    ReportFilters,
    ReportFormat,
    ReportSummary,
    Severity,
    ViolationType,
)
from app.services.audit_service import AuditLogger
from app.services.compliance_service import ComplianceService, validate_period
from app.services.csv_export import render_violations_csv
from app.services.pdf_service import render_violations_pdf
from app.services.rule_config_service import RuleConfigStore

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ReportFormat.CSV: "text/csv; charset=utf-8",
    ReportFormat.PDF: "application/pdf",
}


def report_storage_path(tenant_id: uuid.UUID, report_id: uuid.UUID, fmt: ReportFormat) -> str:
    return f"tenants/{tenant_id}/compliance-reports/{report_id}.{fmt.value}"


def summarize(violations: list[ComplianceViolation]) -> ReportSummary:
    by_type = Counter(v.violation_type for v in violations)
    by_severity = Counter(v.severity for v in violations)
    return ReportSummary(
        total_violations=len(violations),
        violations_by_type={t: by_type.get(t.value, 0) for t in ViolationType},
        violations_by_severity={s: by_severity.get(s.value, 0) for s in Severity},
    )


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ReportGenerator:

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = system_clock,
        blob_store: BlobStore | None = None,
        rules: RuleConfigStore | None = None,
        audit: AuditLogger | None = None,
    ):
        if blob_store is None:
            raise ValueError("ReportGenerator needs a blob store")
        self.db = db
        self.clock = clock
        self.blob_store = blob_store
        self.audit = audit or AuditLogger(db, clock)
        self.rules = rules or RuleConfigStore(db, clock, self.audit)
        self.violations = ComplianceService(db, clock, rules=self.rules, audit=self.audit)

    async def generate_report(
        self,
        tenant_id: uuid.UUID,
        actor: str,
        start: datetime,
        end: datetime,
        format: ReportFormat | str,
        filters: ReportFilters | dict | None = None,
    ) -> ComplianceReportOut:
        try:
            fmt = ReportFormat(format)
        except ValueError:
            raise ComplianceValidationError(f"Unbekanntes Report-Format: {format}")
        start, end = validate_period(start, end)
        if isinstance(filters, dict):
            try:
                filters = ReportFilters.model_validate(filters)
            except ValueError as e:
                raise ComplianceValidationError(f"Ungültige Filter: {e}") from e

        config = await self.rules.get_rule_config(tenant_id)
        violations = await self.violations.list_period_violations(tenant_id, start, end, filters)
        summary = summarize(violations)

        report_id = uuid.uuid4()
        generated_at = self.clock.now()
        if fmt == ReportFormat.CSV:
            content = render_violations_csv(violations, config)
        else:
            content = render_violations_pdf(violations, config, start, end, summary, generated_at)
        digest = sha256_hex(content)

        path = report_storage_path(tenant_id, report_id, fmt)
        # BlobStoreError bricht ab, bevor Metadaten geschrieben werden
        await self.blob_store.put(path, content, CONTENT_TYPES[fmt])

        report = ComplianceReport(
            id=report_id,
            tenant_id=tenant_id,
            generated_by=actor,
            generated_at=generated_at,
            period_start=start,
            period_end=end,
            format=fmt.value,
            rule_set=config.rule_set.value,
            filters=filters.model_dump(mode="json", exclude_none=True) if filters else None,
            summary=summary.model_dump(mode="json"),
            storage_path=path,
            hash=digest,
        )
        try:
            self.db.add(report)
            await self.audit.log(
                tenant_id,
                AuditAction.REPORT_GENERATED,
                actor,
                {
                    "report_id": str(report_id),
                    "format": fmt.value,
                    "period_start": start.isoformat(),
                    "period_end": end.isoformat(),
                    "total_violations": summary.total_violations,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard_blob(path)
            raise

        logger.info(
            "Generated %s compliance report %s for tenant %s (%s violations)",
            fmt.value, report_id, tenant_id, summary.total_violations,
        )
        return self._to_out(report)

    async def _discard_blob(self, path: str) -> None:
        try:
            await self.blob_store.delete(path)
        except BlobStoreError:
            logger.exception("Could not remove orphaned report blob %s", path)

    def _to_out(self, report: ComplianceReport) -> ComplianceReportOut:
        out = ComplianceReportOut.model_validate(report)
        return out.model_copy(update={
            "download_url": self.blob_store.signed_url(report.storage_path, settings.REPORT_URL_TTL_SECONDS),
        })

    async def _load(self, tenant_id: uuid.UUID, report_id: uuid.UUID) -> ComplianceReport | None:
        result = await self.db.execute(
            select(ComplianceReport).where(
                ComplianceReport.tenant_id == tenant_id,
                ComplianceReport.id == report_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_report(self, tenant_id: uuid.UUID, report_id: uuid.UUID) -> ComplianceReportOut | None:
        report = await self._load(tenant_id, report_id)
        if report is None:
            return None
        return self._to_out(report)

    async def verify_report(self, tenant_id: uuid.UUID, report_id: uuid.UUID) -> bool:
        """Prüft, ob der abgelegte Blob noch zur gespeicherten Prüfsumme passt."""
        report = await self._load(tenant_id, report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} nicht gefunden")
        content = await self.blob_store.get(report.storage_path)
        valid = sha256_hex(content) == report.hash
        if not valid:
            logger.warning("Hash mismatch for compliance report %s of tenant %s", report_id, tenant_id)
        return valid

    async def list_reports(
        self,
        tenant_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ComplianceReportOut], int]:
        if not 1 <= limit <= 1000 or offset < 0:
            raise ComplianceValidationError("Ungültige Paginierung")
        total = await self.db.scalar(
            select(func.count()).select_from(ComplianceReport).where(ComplianceReport.tenant_id == tenant_id)
        )
        result = await self.db.execute(
            select(ComplianceReport)
            .where(ComplianceReport.tenant_id == tenant_id)
            .order_by(ComplianceReport.generated_at.desc(), ComplianceReport.id)
            .limit(limit)
            .offset(offset)
        )
        return [self._to_out(r) for r in result.scalars().all()], total or 0
