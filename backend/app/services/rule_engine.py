"""
Rule-Engine: Prüft Arbeitszeit-Intervalle gegen eine RuleConfig.

Reine Funktionen ohne I/O und ohne versteckten Zustand – gleiche Eingabe
liefert immer dieselbe, deterministisch sortierte Liste von Verstößen.
Alle Dauern werden in Minuten gerechnet, Wochenfenster sind ISO-Wochen
(Montag 00:00) in der Zeitzone der RuleConfig.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from itertools import groupby, pairwise
from math import floor
from zoneinfo import ZoneInfo

from app.schemas.compliance import RuleConfig, Severity, ViolationType


@dataclass(frozen=True)
class WorkInterval:
    id: str
    user_id: str
    start: datetime
    end: datetime
    duration_minutes: int
    break_minutes: int = 0
    source: str = "clock"  # clock | shift


@dataclass(frozen=True)
class DetectedViolation:
    user_id: str
    violation_type: ViolationType
    severity: Severity
    period_start: datetime
    period_end: datetime
    expected: int
    actual: int
    affected_entries: tuple[str, ...]

    @property
    def details(self) -> dict:
        return {
            "expected": self.expected,
            "actual": self.actual,
            "affected_entries": list(self.affected_entries),
        }


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60


def _week_start(moment: datetime, tz: ZoneInfo) -> datetime:
    """Montag 00:00 Ortszeit der Woche, in der `moment` liegt (als UTC)."""
    local = moment.astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return _utc(datetime.combine(monday, time.min, tzinfo=tz))


def _week_window(week_start: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    # Wanduhr-Arithmetik in Ortszeit, damit Sommerzeit-Wochen 167/169h haben
    local_start = week_start.astimezone(tz)
    local_end = datetime.combine(local_start.date() + timedelta(days=7), time.min, tzinfo=tz)
    return week_start, _utc(local_end)


def _weeks_touched(interval: WorkInterval, tz: ZoneInfo) -> list[datetime]:
    weeks = []
    current = _week_start(interval.start, tz)
    last = _week_start(interval.end, tz)
    while current <= last:
        weeks.append(current)
        current = _week_window(current, tz)[1]
    return weeks


# ── Einzelregeln ──────────────────────────────────────────────────────────────

def check_shift_duration(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    limit = config.max_shift_duration_minutes
    violations = []
    for interval in intervals:
        if interval.duration_minutes <= limit:
            continue
        excess = interval.duration_minutes - limit
        violations.append(DetectedViolation(
            user_id=interval.user_id,
            violation_type=ViolationType.SHIFT_DURATION_VIOLATION,
            severity=config.severity_for(ViolationType.SHIFT_DURATION_VIOLATION, excess),
            period_start=interval.start,
            period_end=interval.end,
            expected=limit,
            actual=interval.duration_minutes,
            affected_entries=(interval.id,),
        ))
    return violations


def required_break_minutes(duration_minutes: int, config: RuleConfig) -> int:
    """Pflichtpause der höchsten überschrittenen Stufe (0 wenn keine greift)."""
    required = 0
    for rule in config.break_rules:
        if duration_minutes > rule.after_minutes:
            required = max(required, rule.min_break_minutes)
    return required


def check_breaks(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    violations = []
    for interval in intervals:
        required = required_break_minutes(interval.duration_minutes, config)
        if not required or interval.break_minutes >= required:
            continue
        missing = required - interval.break_minutes
        violations.append(DetectedViolation(
            user_id=interval.user_id,
            violation_type=ViolationType.BREAK_MISSING,
            severity=config.severity_for(ViolationType.BREAK_MISSING, missing),
            period_start=interval.start,
            period_end=interval.end,
            expected=required,
            actual=interval.break_minutes,
            affected_entries=(interval.id,),
        ))
    return violations


def check_rest_periods(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    """Tägliche Ruhezeit zwischen zwei aufeinanderfolgenden Intervallen."""
    minimum = config.min_rest_period_minutes
    violations = []
    for prev, nxt in pairwise(intervals):
        gap = _minutes(_utc(nxt.start) - _utc(prev.end))
        if gap >= minimum:
            continue
        # Überlappende Intervalle (gap < 0) werden nicht zusammengeführt
        violations.append(DetectedViolation(
            user_id=prev.user_id,
            violation_type=ViolationType.REST_PERIOD_VIOLATION,
            severity=config.severity_for(ViolationType.REST_PERIOD_VIOLATION, minimum - gap),
            period_start=min(prev.end, nxt.start),
            period_end=max(prev.end, nxt.start),
            expected=minimum,
            actual=floor(gap),
            affected_entries=(prev.id, nxt.id),
        ))
    return violations


def longest_rest_block(intervals: list[WorkInterval], window_start: datetime, window_end: datetime) -> float:
    """Längste arbeitsfreie Zeit (Minuten) im Fenster; Intervalle werden abgeschnitten."""
    longest = 0.0
    cursor = window_start
    for interval in sorted(intervals, key=lambda i: _utc(i.start)):
        start = max(_utc(interval.start), window_start)
        end = min(_utc(interval.end), window_end)
        if end <= window_start or start >= window_end:
            continue
        if start > cursor:
            longest = max(longest, _minutes(start - cursor))
        cursor = max(cursor, end)
    if window_end > cursor:
        longest = max(longest, _minutes(window_end - cursor))
    return longest


def check_weekly_rest(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    tz = config.tz
    expected = config.min_weekly_rest_hours * 60
    by_week: dict[datetime, list[WorkInterval]] = defaultdict(list)
    for interval in intervals:
        for week in _weeks_touched(interval, tz):
            by_week[week].append(interval)

    violations = []
    for week in sorted(by_week):
        week_start, week_end = _week_window(week, tz)
        week_intervals = by_week[week]
        longest = longest_rest_block(week_intervals, week_start, week_end)
        if longest >= expected:
            continue
        violations.append(DetectedViolation(
            user_id=week_intervals[0].user_id,
            violation_type=ViolationType.WEEKLY_REST_VIOLATION,
            severity=config.severity_for(ViolationType.WEEKLY_REST_VIOLATION, expected - longest),
            period_start=week_start,
            period_end=week_end,
            expected=expected,
            actual=floor(longest),
            affected_entries=tuple(i.id for i in week_intervals),
        ))
    return violations


def check_max_weekly_working_time(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    tz = config.tz
    limit = config.max_weekly_working_minutes
    by_week: dict[datetime, list[WorkInterval]] = defaultdict(list)
    for interval in intervals:
        by_week[_week_start(interval.start, tz)].append(interval)

    violations = []
    for week in sorted(by_week):
        week_intervals = by_week[week]
        total = sum(i.duration_minutes for i in week_intervals)
        if total <= limit:
            continue
        week_start, week_end = _week_window(week, tz)
        violations.append(DetectedViolation(
            user_id=week_intervals[0].user_id,
            violation_type=ViolationType.MAX_WORKING_TIME_EXCEEDED,
            severity=config.severity_for(ViolationType.MAX_WORKING_TIME_EXCEEDED, total - limit),
            period_start=week_start,
            period_end=week_end,
            expected=limit,
            actual=total,
            affected_entries=tuple(i.id for i in week_intervals),
        ))
    return violations


RULES = (
    check_rest_periods,
    check_shift_duration,
    check_breaks,
    check_weekly_rest,
    check_max_weekly_working_time,
)


def _sort_key(v: DetectedViolation):
    return (v.user_id, v.violation_type.value, _utc(v.period_start), _utc(v.period_end), v.affected_entries)


def check_compliance_rules(intervals: list[WorkInterval], config: RuleConfig) -> list[DetectedViolation]:
    """
    Führt alle Prüfungen durch. Intervalle verschiedener Mitarbeiter werden
    getrennt bewertet; die Eingabereihenfolge spielt keine Rolle.
    """
    for interval in intervals:
        if interval.end < interval.start:
            raise ValueError(f"interval {interval.id} ends before it starts")

    ordered = sorted(intervals, key=lambda i: (i.user_id, _utc(i.start), i.id))
    violations: list[DetectedViolation] = []
    for _, user_intervals in groupby(ordered, key=lambda i: i.user_id):
        user_intervals = list(user_intervals)
        for rule in RULES:
            violations.extend(rule(user_intervals, config))
    return sorted(violations, key=_sort_key)
