"""Quick-add parser: one line of text in, a dated and tagged entry out.

Supported grammar, in extraction order::

    Dentist next Tue #health every month until 2026-01-01 !high
    Gym every Mon,Wed,Fri #health
    Pay VAT 15/10 every 2 weeks for 6 times

Each stage consumes the substring it recognised so later stages never see it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional, Sequence, Tuple
from uuid import UUID

from goalcal.core.errors import ExtractionError, RuleConstructionError
from goalcal.scheduling.categories import DEFAULT_CATEGORY, DEFAULT_PRIORITY, PRIORITY_TAGS, Category, Priority
from goalcal.scheduling.dates import add_days, add_months_clamped, add_weeks
from goalcal.scheduling.occurrences import generate_occurrences
from goalcal.scheduling.records import SOURCE_CALENDAR_NLP, OccurrenceRecord
from goalcal.scheduling.rules import (
    NO_BOUND,
    EndBound,
    FixedCount,
    Frequency,
    Interval,
    RecurrenceRule,
    Weekday,
    WeekdaySet,
)

logger = logging.getLogger(__name__)

_MONTH = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_WEEKDAY = (
    r"(?:monday|mon|tuesday|tues|tue|wednesday|weds|wed|thursday|thurs|thur|thu"
    r"|friday|fri|saturday|sat|sunday|sun)"
)
_MONTH_PREFIXES = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
_WEEKDAY_PREFIXES = {"mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6, "sun": 7}

ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
DAY_MONTH_NUMERIC_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})(?:[/-](\d{4}|\d{2}))?\b")
DAY_MONTH_NAME_RE = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+" + _MONTH + r"\b", re.IGNORECASE)
MONTH_NAME_DAY_RE = re.compile(r"\b" + _MONTH + r"\s+(\d{1,2})(?:st|nd|rd|th)?\b", re.IGNORECASE)
RELATIVE_RE = re.compile(
    r"\b(today|tomorrow|next\s+week|next\s+(" + _WEEKDAY + r"))\b", re.IGNORECASE
)
IN_OFFSET_RE = re.compile(r"\bin\s+(\d+)\s+(days?|weeks?|months?)\b", re.IGNORECASE)

CATEGORY_RE = re.compile(
    r"(?<![\w#])#(" + "|".join(c.value for c in Category) + r")\b", re.IGNORECASE
)
PRIORITY_RE = re.compile(r"(?<![\w!])!(" + "|".join(PRIORITY_TAGS) + r")\b", re.IGNORECASE)

EVERY_RE = re.compile(r"\bevery\b", re.IGNORECASE)
UNTIL_RE = re.compile(r"\buntil\b(.*?)(?=\bfor\s+\d+\s+times?\b|$)", re.IGNORECASE | re.DOTALL)
FOR_COUNT_RE = re.compile(r"\bfor\s+(\d+)\s+times?\b", re.IGNORECASE)
WEEKDAY_LIST_RE = re.compile(r"^(" + _WEEKDAY + r"(?:\s*,\s*" + _WEEKDAY + r")*)\b", re.IGNORECASE)
INTERVAL_RE = re.compile(r"^(\d+)\s+(days?|weeks?|months?|years?)\b", re.IGNORECASE)
PLAIN_UNIT_RE = re.compile(r"^(daily|day|weekly|week|monthly|month|yearly|year|annually)\b", re.IGNORECASE)


@dataclass(frozen=True)
class StageMatch:
    value: Any
    remaining: str


@dataclass(frozen=True)
class ExtractedEntry:
    title: str
    occurrences: Tuple[date, ...]
    anchor: date
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    rule: Optional[RecurrenceRule] = None
    source_tag: str = SOURCE_CALENDAR_NLP

    def to_records(
        self,
        user_id: Optional[UUID] = None,
        goal_id: Optional[UUID] = None,
    ) -> List[OccurrenceRecord]:
        """One store record per occurrence, with category/priority defaults applied."""
        return [
            OccurrenceRecord(
                title=self.title,
                date=occurrence,
                source_tag=self.source_tag,
                user_id=user_id,
                goal_id=goal_id,
                category=self.category or DEFAULT_CATEGORY,
                priority=self.priority or DEFAULT_PRIORITY,
            )
            for occurrence in self.occurrences
        ]


@dataclass(frozen=True)
class RecurrenceClause:
    rule: RecurrenceRule
    text: str


def _cut(text: str, start: int, end: int) -> str:
    return f"{text[:start]} {text[end:]}"


def _unit_frequency(token: str) -> Frequency:
    token = token.lower()
    if token.startswith("da"):
        return Frequency.DAILY
    if token.startswith("week"):
        return Frequency.WEEKLY
    if token.startswith("month"):
        return Frequency.MONTHLY
    return Frequency.ANNUALLY


def _weekday_number(token: str) -> int:
    return _WEEKDAY_PREFIXES[token.strip().lower()[:3]]


def _month_number(token: str) -> int:
    return _MONTH_PREFIXES.index(token.lower()[:3]) + 1


def _normalize_year(year: int) -> int:
    return 2000 + year if year < 100 else year


def _build_date(year: int, month: int, day: int, token: str) -> date:
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise ExtractionError(f"'{token.strip()}' is not a valid calendar date", token) from exc


def find_date_expression(text: str, reference: date) -> Optional[Tuple[date, int, int]]:
    """Resolve the first date expression in ``text`` by fixed precedence.

    Returns the date and the span it occupied, or ``None`` when nothing matches.
    An expression that looks like a date but names an impossible day raises
    ``ExtractionError``.
    """
    match = ISO_DATE_RE.search(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build_date(year, month, day, match.group(0)), match.start(), match.end()

    match = DAY_MONTH_NUMERIC_RE.search(text)
    if match:
        year = _normalize_year(int(match.group(3))) if match.group(3) else reference.year
        resolved = _build_date(year, int(match.group(2)), int(match.group(1)), match.group(0))
        return resolved, match.start(), match.end()

    match = DAY_MONTH_NAME_RE.search(text)
    if match:
        resolved = _build_date(reference.year, _month_number(match.group(2)), int(match.group(1)), match.group(0))
        return resolved, match.start(), match.end()

    match = MONTH_NAME_DAY_RE.search(text)
    if match:
        resolved = _build_date(reference.year, _month_number(match.group(1)), int(match.group(2)), match.group(0))
        return resolved, match.start(), match.end()

    match = RELATIVE_RE.search(text)
    if match:
        return _resolve_relative(match, reference), match.start(), match.end()

    match = IN_OFFSET_RE.search(text)
    if match:
        amount = int(match.group(1))
        frequency = _unit_frequency(match.group(2))
        if frequency is Frequency.DAILY:
            resolved = add_days(reference, amount)
        elif frequency is Frequency.WEEKLY:
            resolved = add_weeks(reference, amount)
        else:
            resolved = add_months_clamped(reference, amount)
        return resolved, match.start(), match.end()

    return None


def _resolve_relative(match: re.Match, reference: date) -> date:
    keyword = " ".join(match.group(1).lower().split())
    if keyword == "today":
        return reference
    if keyword == "tomorrow":
        return add_days(reference, 1)
    if keyword == "next week":
        return add_days(reference, 7)
    target = _weekday_number(match.group(2))
    for offset in range(1, 15):
        candidate = add_days(reference, offset)
        if candidate.isoweekday() == target:
            return candidate
    raise ExtractionError(f"Could not resolve '{match.group(0)}'")  # pragma: no cover - unreachable


class CategoryStage:
    """``#health`` style category tags."""

    def try_extract(self, text: str, reference: date) -> Optional[StageMatch]:
        match = CATEGORY_RE.search(text)
        if not match:
            return None
        return StageMatch(Category(match.group(1).lower()), _cut(text, match.start(), match.end()))


class PriorityStage:
    """``!high``/``!top``/``!normal``/``!low`` priority tags."""

    def try_extract(self, text: str, reference: date) -> Optional[StageMatch]:
        match = PRIORITY_RE.search(text)
        if not match:
            return None
        return StageMatch(PRIORITY_TAGS[match.group(1).lower()], _cut(text, match.start(), match.end()))


class AnchorDateStage:
    """First date expression ahead of any ``every`` clause."""

    def try_extract(self, text: str, reference: date) -> Optional[StageMatch]:
        every = EVERY_RE.search(text)
        head_end = every.start() if every else len(text)
        found = find_date_expression(text[:head_end], reference)
        if not found:
            return None
        resolved, start, end = found
        return StageMatch(resolved, _cut(text, start, end))


class RecurrenceStage:
    """Everything from the first standalone ``every`` to the end of the text."""

    def try_extract(self, text: str, reference: date) -> Optional[StageMatch]:
        every = EVERY_RE.search(text)
        if not every:
            return None
        clause = text[every.start():].strip()
        rule = self._parse_clause(text[every.end():], reference)
        return StageMatch(RecurrenceClause(rule=rule, text=clause), text[: every.start()])

    def _parse_clause(self, tail: str, reference: date) -> RecurrenceRule:
        until: Optional[date] = None
        count: Optional[int] = None

        until_match = UNTIL_RE.search(tail)
        if until_match:
            expression = until_match.group(1).strip()
            found = find_date_expression(expression, reference)
            if not found:
                raise ExtractionError(f"Could not understand the date after 'until' ({expression or 'nothing'})")
            until = found[0]
            tail = _cut(tail, until_match.start(), until_match.end())

        count_match = FOR_COUNT_RE.search(tail)
        if count_match:
            count = int(count_match.group(1))
            tail = _cut(tail, count_match.start(), count_match.end())

        tail = tail.strip()
        try:
            bound = EndBound(count=count, until=until) if (count is not None or until is not None) else NO_BOUND
            return self._select_rule(tail, bound)
        except RuleConstructionError as exc:
            raise ExtractionError(f"Invalid repeat rule: {exc}") from exc

    @staticmethod
    def _select_rule(tail: str, bound: EndBound) -> RecurrenceRule:
        weekdays = WEEKDAY_LIST_RE.match(tail)
        if weekdays:
            days = {Weekday(_weekday_number(token)) for token in weekdays.group(1).split(",")}
            return WeekdaySet(days=frozenset(days), end_bound=bound)

        interval = INTERVAL_RE.match(tail)
        if interval:
            return Interval(_unit_frequency(interval.group(2)), int(interval.group(1)), bound)

        plain = PLAIN_UNIT_RE.match(tail)
        if plain:
            frequency = _unit_frequency(plain.group(1))
            if bound.is_open:
                return FixedCount(frequency)
            return Interval(frequency, 1, bound)

        raise ExtractionError(f"Unrecognised repeat rule after 'every': {tail or 'nothing'}")


@dataclass
class EntryExtractor:
    """Runs the extraction stages in their fixed order over one line of text."""

    category_stage: CategoryStage = field(default_factory=CategoryStage)
    priority_stage: PriorityStage = field(default_factory=PriorityStage)
    anchor_stage: AnchorDateStage = field(default_factory=AnchorDateStage)
    recurrence_stage: RecurrenceStage = field(default_factory=RecurrenceStage)

    @property
    def stages(self) -> Sequence[Any]:
        return (self.category_stage, self.priority_stage, self.anchor_stage, self.recurrence_stage)

    def extract(self, raw_text: str, reference_date: date) -> ExtractedEntry:
        working = f" {raw_text.strip()} "
        results: List[Optional[Any]] = []
        for stage in self.stages:
            matched = stage.try_extract(working, reference_date)
            if matched is None:
                results.append(None)
                continue
            results.append(matched.value)
            working = matched.remaining

        category, priority, anchor, clause = results
        title = " ".join(working.split())
        if not title:
            raise ExtractionError("Please include a title.", raw_text)

        anchor = anchor or reference_date
        if clause is None:
            occurrences: List[date] = [anchor]
            rule = None
        else:
            rule = clause.rule
            occurrences = generate_occurrences(rule, anchor)
            if not occurrences:
                raise ExtractionError("Repeat rule ends before the first date; nothing to schedule.", raw_text)

        logger.debug(
            "Parsed entry title=%r anchor=%s occurrences=%d rule=%s",
            title,
            anchor,
            len(occurrences),
            type(rule).__name__ if rule else None,
        )
        return ExtractedEntry(
            title=title,
            occurrences=tuple(occurrences),
            anchor=anchor,
            category=category,
            priority=priority,
            rule=rule,
        )


_default_extractor = EntryExtractor()


def parse_entry(text: str, reference_date: date) -> ExtractedEntry:
    """Parse one quick-add line relative to ``reference_date``.

    Raises ``ExtractionError`` for an empty title, an unreadable ``until`` date,
    an impossible explicit date, or a repeat rule that yields no dates.
    """
    return _default_extractor.extract(text, reference_date)
