"""ICS and CSV import/export for calendar tasks."""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from goalcal.core.errors import ExtractionError
from goalcal.scheduling.categories import DEFAULT_CATEGORY, DEFAULT_PRIORITY, Category, Priority
from goalcal.scheduling.extractor import find_date_expression
from goalcal.scheduling.records import SOURCE_CALENDAR_IMPORT, OccurrenceRecord

logger = logging.getLogger(__name__)

CSV_HEADER = ["date", "title", "category", "priority"]
PRODID = "-//GoalCal//Calendar//EN"


@dataclass(frozen=True)
class ImportedRow:
    title: str
    date: date
    category: Optional[Category] = None
    priority: Optional[Priority] = None

    def to_record(self, user_id: Optional[UUID] = None) -> OccurrenceRecord:
        return OccurrenceRecord(
            title=self.title,
            date=self.date,
            source_tag=SOURCE_CALENDAR_IMPORT,
            user_id=user_id,
            category=self.category or DEFAULT_CATEGORY,
            priority=self.priority or DEFAULT_PRIORITY,
        )


def _ics_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(";", "\\;").replace("\n", "\\n")


_ICS_ESCAPE_RE = re.compile(r"\\([\\,;nN])")


def _ics_unescape(value: str) -> str:
    return _ICS_ESCAPE_RE.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), value)


def to_ics(records: Iterable[OccurrenceRecord], *, uid_prefix: str = "goalcal", now: Optional[datetime] = None) -> str:
    """All-day VEVENTs, one per record, CRLF separated."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", f"PRODID:{PRODID}"]
    for index, record in enumerate(records):
        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{uid_prefix}-{record.date:%Y%m%d}-{index}@goalcal",
                f"DTSTAMP:{stamp}",
                f"DTSTART;VALUE=DATE:{record.date:%Y%m%d}",
                f"SUMMARY:{_ics_escape(record.title)}",
                "END:VEVENT",
            ]
        )
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines)


def parse_ics(text: str) -> List[ImportedRow]:
    rows: List[ImportedRow] = []
    summary: Optional[str] = None
    start: Optional[date] = None
    for raw_line in text.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()
        if line.startswith("BEGIN:VEVENT"):
            summary, start = None, None
        elif line.startswith("SUMMARY"):
            summary = _ics_unescape(line.split(":", 1)[1]).strip() if ":" in line else None
        elif line.startswith("DTSTART"):
            value = line.split(":", 1)[1].strip() if ":" in line else ""
            try:
                start = datetime.strptime(value[:8], "%Y%m%d").date()
            except ValueError:
                logger.debug("Skipping unreadable DTSTART %r", value)
                start = None
        elif line.startswith("END:VEVENT"):
            if summary and start:
                rows.append(ImportedRow(title=summary, date=start))
            summary, start = None, None
    return rows


def to_csv(records: Iterable[OccurrenceRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(
            [
                record.date.isoformat(),
                record.title,
                record.category.value if record.category else "",
                int(record.priority) if record.priority is not None else "",
            ]
        )
    return buffer.getvalue()


def parse_csv(text: str, reference_date: date) -> List[ImportedRow]:
    """Rows of ``date,title[,category[,priority]]``; the header line is optional.

    Dates use the quick-add date grammar relative to ``reference_date``. Rows
    without a usable date or title are skipped.
    """
    rows: List[ImportedRow] = []
    reader = csv.reader(io.StringIO(text.replace("\r\n", "\n")))
    for index, columns in enumerate(reader):
        if not columns or not any(column.strip() for column in columns):
            continue
        if index == 0 and {"date", "title"} <= {column.strip().lower() for column in columns}:
            continue
        date_text = columns[0].strip()
        title = " ".join(columns[1].split()) if len(columns) > 1 else ""
        if not date_text or not title:
            continue
        try:
            found = find_date_expression(date_text, reference_date)
        except ExtractionError:
            found = None
        if not found:
            logger.debug("Skipping CSV row %d with unreadable date %r", index, date_text)
            continue
        category = Category.parse(columns[2]) if len(columns) > 2 else None
        priority = _parse_priority(columns[3]) if len(columns) > 3 else None
        rows.append(ImportedRow(title=title, date=found[0], category=category, priority=priority))
    return rows


def _parse_priority(value: str) -> Optional[Priority]:
    try:
        return Priority(int(value.strip()))
    except ValueError:
        return None
