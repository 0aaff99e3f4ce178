"""
CSV-Export von Compliance-Verstößen.

Das Spaltenformat ist ein externer Vertrag (Prüfer lesen die Spalten
positionsbasiert) und darf nicht umsortiert werden.
"""
from typing import Iterable

import pandas as pd

from app.models.compliance import ComplianceViolation
from app.schemas.compliance import RuleConfig

CSV_HEADER = [
    "Datum",
    "User ID",
    "Verstoß-Typ",
    "Severity",
    "Erwartet",
    "Tatsächlich",
    "Beeinträchtigte Einträge",
    "Status",
]

STATUS_ACKNOWLEDGED = "Erkannt"
STATUS_OPEN = "Offen"


def violation_row(violation: ComplianceViolation, config: RuleConfig) -> list[str]:
    details = violation.details or {}
    detected = violation.detected_at.astimezone(config.tz)
    return [
        detected.strftime("%d.%m.%Y"),
        violation.user_id,
        violation.violation_type,
        violation.severity,
        str(details.get("expected", "")),
        str(details.get("actual", "")),
        "; ".join(details.get("affected_entries", [])),
        STATUS_ACKNOWLEDGED if violation.acknowledged_at else STATUS_OPEN,
    ]


def render_violations_csv(violations: Iterable[ComplianceViolation], config: RuleConfig) -> bytes:
    """UTF-8 mit BOM (Excel), eine Kopfzeile, eine Zeile pro Verstoß."""
    rows = [violation_row(v, config) for v in violations]
    df = pd.DataFrame(rows, columns=CSV_HEADER, dtype=str)
    text = df.to_csv(index=False, lineterminator="\n")
    return text.encode("utf-8-sig")
