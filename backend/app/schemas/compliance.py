"""
Schemas für das Arbeitszeit-Compliance-Modul.

RuleConfig und der Katalog DEFAULT_RULE_SETS sind die einzige Quelle für
Schwellwerte und Severity-Zuordnung; die Rule-Engine kennt keine
fest verdrahteten Grenzen.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PositiveInt, NonNegativeInt, field_validator

from app.core.clock import as_utc

# Eingaben ohne Zeitzone werden als UTC interpretiert
UTCDatetime = Annotated[datetime, AfterValidator(as_utc)]


class RuleSet(str, Enum):
    EU = "eu"
    DE = "de"


class ViolationType(str, Enum):
    REST_PERIOD_VIOLATION = "REST_PERIOD_VIOLATION"
    SHIFT_DURATION_VIOLATION = "SHIFT_DURATION_VIOLATION"
    BREAK_MISSING = "BREAK_MISSING"
    WEEKLY_REST_VIOLATION = "WEEKLY_REST_VIOLATION"
    MAX_WORKING_TIME_EXCEEDED = "MAX_WORKING_TIME_EXCEEDED"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ReportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"


class AuditAction(str, Enum):
    REPORT_GENERATED = "report_generated"
    VIOLATION_ACKNOWLEDGED = "violation_acknowledged"
    RULE_SET_CHANGED = "rule_set_changed"
    MANUAL_CHECK = "manual_check"


# ── Regel-Konfiguration ───────────────────────────────────────────────────────

class BreakRule(BaseModel):
    """Ab `after_minutes` Arbeitszeit sind `min_break_minutes` Pause Pflicht."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    after_minutes: PositiveInt
    min_break_minutes: PositiveInt


class SeverityRule(BaseModel):
    """Abweichung (Minuten) ab der ein Verstoß als `error` gilt, darunter `warning`."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    error_from_minutes: NonNegativeInt

    def classify(self, magnitude_minutes: float) -> Severity:
        if magnitude_minutes >= self.error_from_minutes:
            return Severity.ERROR
        return Severity.WARNING


DEFAULT_SEVERITY: dict[ViolationType, SeverityRule] = {
    ViolationType.REST_PERIOD_VIOLATION:     SeverityRule(error_from_minutes=60),
    ViolationType.SHIFT_DURATION_VIOLATION:  SeverityRule(error_from_minutes=60),
    ViolationType.BREAK_MISSING:             SeverityRule(error_from_minutes=45),
    ViolationType.WEEKLY_REST_VIOLATION:     SeverityRule(error_from_minutes=0),
    ViolationType.MAX_WORKING_TIME_EXCEEDED: SeverityRule(error_from_minutes=0),
}


class RuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rule_set: RuleSet
    max_shift_duration_minutes: PositiveInt
    min_rest_period_minutes: PositiveInt
    break_rules: list[BreakRule] = Field(default_factory=list)
    min_weekly_rest_hours: PositiveInt
    max_weekly_working_minutes: PositiveInt
    timezone: str = "UTC"
    severity: dict[ViolationType, SeverityRule] = Field(
        default_factory=lambda: dict(DEFAULT_SEVERITY)
    )

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {value}")
        return value

    @field_validator("break_rules")
    @classmethod
    def _sorted_break_rules(cls, value: list[BreakRule]) -> list[BreakRule]:
        return sorted(value, key=lambda r: r.after_minutes)

    @field_validator("severity")
    @classmethod
    def _complete_severity(cls, value: dict[ViolationType, SeverityRule]) -> dict[ViolationType, SeverityRule]:
        return {**DEFAULT_SEVERITY, **value}

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def severity_for(self, violation_type: ViolationType, magnitude_minutes: float) -> Severity:
        return self.severity[violation_type].classify(magnitude_minutes)


_ARBZG_BREAKS = [
    BreakRule(after_minutes=6 * 60, min_break_minutes=30),
    BreakRule(after_minutes=9 * 60, min_break_minutes=45),
]

DEFAULT_RULE_SETS: dict[RuleSet, RuleConfig] = {
    # EU-Arbeitszeitrichtlinie 2003/88/EG
    RuleSet.EU: RuleConfig(
        rule_set=RuleSet.EU,
        max_shift_duration_minutes=10 * 60,
        min_rest_period_minutes=11 * 60,
        break_rules=_ARBZG_BREAKS,
        min_weekly_rest_hours=24,
        max_weekly_working_minutes=48 * 60,
        timezone="UTC",
    ),
    # ArbZG §§3-5, Wochen in deutscher Ortszeit
    RuleSet.DE: RuleConfig(
        rule_set=RuleSet.DE,
        max_shift_duration_minutes=10 * 60,
        min_rest_period_minutes=11 * 60,
        break_rules=_ARBZG_BREAKS,
        min_weekly_rest_hours=24,
        max_weekly_working_minutes=48 * 60,
        timezone="Europe/Berlin",
    ),
}


class ComplianceRuleOut(BaseModel):
    id: uuid.UUID
    rule_set: RuleSet
    config: RuleConfig
    created_at: datetime
    updated_at: datetime
    updated_by: str

    model_config = {"from_attributes": True}


class UpdateRuleSetRequest(BaseModel):
    rule_set: str
    config: dict[str, Any] | None = None


# ── Verstöße ──────────────────────────────────────────────────────────────────

class ViolationDetails(BaseModel):
    expected: int
    actual: int
    affected_entries: list[str]


class ComplianceViolationOut(BaseModel):
    id: uuid.UUID
    user_id: str
    violation_type: ViolationType
    severity: Severity
    detected_at: datetime
    period_start: datetime
    period_end: datetime
    rule_set: RuleSet
    details: ViolationDetails
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None

    model_config = {"from_attributes": True}


class ViolationListOut(BaseModel):
    violations: list[ComplianceViolationOut]
    count: int
    total: int


class ViolationFilter(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    user_id: str | None = None
    violation_type: ViolationType | None = None
    severity: Severity | None = None
    acknowledged: bool | None = None
    from_: UTCDatetime | None = Field(default=None, alias="from")
    to: UTCDatetime | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class CheckComplianceRequest(BaseModel):
    user_id: str | None = None
    start_date: UTCDatetime
    end_date: UTCDatetime


class AcknowledgeViolationRequest(BaseModel):
    acknowledged: bool


# ── Reports ───────────────────────────────────────────────────────────────────

class ReportFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str | None = None
    violation_type: ViolationType | None = None
    severity: Severity | None = None


class ReportSummary(BaseModel):
    total_violations: int
    violations_by_type: dict[ViolationType, int]
    violations_by_severity: dict[Severity, int]


class GenerateReportRequest(BaseModel):
    period_start: UTCDatetime
    period_end: UTCDatetime
    format: ReportFormat
    filters: ReportFilters | None = None


class ComplianceReportOut(BaseModel):
    id: uuid.UUID
    generated_by: str
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    format: ReportFormat
    rule_set: RuleSet
    filters: ReportFilters | None = None
    summary: ReportSummary
    hash: str
    download_url: str | None = None

    model_config = {"from_attributes": True}


class ReportListOut(BaseModel):
    reports: list[ComplianceReportOut]
    count: int
    total: int


# ── Audit-Log ─────────────────────────────────────────────────────────────────

class AuditLogFilter(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    action: AuditAction | None = None
    from_: UTCDatetime | None = Field(default=None, alias="from")
    to: UTCDatetime | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class AuditLogOut(BaseModel):
    id: uuid.UUID
    action: AuditAction
    actor_uid: str
    timestamp: datetime
    details: dict[str, Any]

    model_config = {"from_attributes": True}


class AuditLogListOut(BaseModel):
    logs: list[AuditLogOut]
    count: int
    total: int


# ── Statistik ─────────────────────────────────────────────────────────────────

class StatsBucket(BaseModel):
    violations: int = 0
    warnings: int = 0
    errors: int = 0


class TypeCount(BaseModel):
    type: ViolationType
    count: int


class ComplianceStatsOut(BaseModel):
    today: StatsBucket
    this_week: StatsBucket
    this_month: StatsBucket
    violations_by_type: list[TypeCount]
    violations_by_severity: dict[Severity, int]
