from app.schemas.auth import TokenData
from app.schemas.compliance import (
    RuleSet, ViolationType, Severity, ReportFormat, AuditAction,
    RuleConfig, DEFAULT_RULE_SETS, ComplianceRuleOut, UpdateRuleSetRequest,
    ComplianceViolationOut, ViolationListOut, ViolationFilter, CheckComplianceRequest, AcknowledgeViolationRequest,
    ReportFilters, ReportSummary, GenerateReportRequest, ComplianceReportOut, ReportListOut,
    AuditLogFilter, AuditLogOut, AuditLogListOut, ComplianceStatsOut,
)

__all__ = [
    "TokenData",
    "RuleSet", "ViolationType", "Severity", "ReportFormat", "AuditAction",
    "RuleConfig", "DEFAULT_RULE_SETS", "ComplianceRuleOut", "UpdateRuleSetRequest",
    "ComplianceViolationOut", "ViolationListOut", "ViolationFilter", "CheckComplianceRequest",
    "AcknowledgeViolationRequest",
    "ReportFilters", "ReportSummary", "GenerateReportRequest", "ComplianceReportOut", "ReportListOut",
    "AuditLogFilter", "AuditLogOut", "AuditLogListOut", "ComplianceStatsOut",
]
