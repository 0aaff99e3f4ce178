"""
Quelle der Arbeitszeit-Intervalle für die Compliance-Prüfung.

Das Compliance-Modul kennt nur das IntervalSource-Protokoll; SqlIntervalSource
liest Stempelzeiten und bestätigte Schichten aus `time_entries`.
"""
import logging
import uuid
from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.time_entry import TimeEntry
from app.services.rule_engine import WorkInterval

logger = logging.getLogger(__name__)


class IntervalSource(Protocol):
    async def list_intervals(
        self,
        tenant_id: uuid.UUID,
        user_id: str | None,
        start: datetime,
        end: datetime,
    ) -> list[WorkInterval]:
        ...


class SqlIntervalSource:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_intervals(
        self,
        tenant_id: uuid.UUID,
        user_id: str | None,
        start: datetime,
        end: datetime,
    ) -> list[WorkInterval]:
        """Abgeschlossene Einträge mit Beginn in [start, end]; user_id=None = alle."""
        conditions = [
            TimeEntry.tenant_id == tenant_id,
            TimeEntry.clock_in >= start,
            TimeEntry.clock_in <= end,
            TimeEntry.clock_out.is_not(None),
        ]
        if user_id is not None:
            conditions.append(TimeEntry.user_id == user_id)

        result = await self.db.execute(
            select(TimeEntry).where(*conditions).order_by(TimeEntry.clock_in, TimeEntry.id)
        )

        intervals = []
        for entry in result.scalars().all():
            if entry.clock_out < entry.clock_in:
                logger.warning("Skipping time entry %s: clock_out before clock_in", entry.id)
                continue
            intervals.append(to_work_interval(entry))
        return intervals


def to_work_interval(entry: TimeEntry) -> WorkInterval:
    duration = entry.duration_minutes
    if duration is None:
        gross = (entry.clock_out - entry.clock_in).total_seconds() / 60
        duration = max(0, round(gross) - (entry.break_minutes or 0))
    return WorkInterval(
        id=str(entry.id),
        user_id=entry.user_id,
        start=entry.clock_in,
        end=entry.clock_out,
        duration_minutes=duration,
        break_minutes=entry.break_minutes or 0,
        source=entry.source,
    )
