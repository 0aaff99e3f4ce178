from app.models.tenant import Tenant
from app.models.time_entry import TimeEntry
from app.models.time_account import TimeAccountAdjustment
from app.models.compliance import ComplianceRule, ComplianceViolation, ComplianceAuditLog, ComplianceReport

__all__ = [
    "Tenant",
    "TimeEntry",
    "TimeAccountAdjustment",
    "ComplianceRule",
    "ComplianceViolation",
    "ComplianceAuditLog",
    "ComplianceReport",
]
