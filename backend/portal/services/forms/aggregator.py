"""Response aggregation into per-field summaries and the flat CSV export.

Everything here is a pure function of (fields, responses); nothing touches
the database, so the same input always renders the same output.
"""

import csv
import io
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from fractions import Fraction
from typing import Any

from portal.schemas.forms import ChoiceFieldSummary, OptionTally, TextFieldSummary
from portal.services.forms.fields import (
    CHOICE_KINDS,
    MULTI_VALUE_KINDS,
    TEXT_KINDS,
    ChoiceField,
    FormField,
    is_answered,
)

MULTI_VALUE_SEPARATOR = ", "
EXPORT_LEADING_COLUMNS = ("Respondent Name", "Respondent ID", "Submitted At")
EXPORT_FILENAME_SUFFIX = " - Responses.csv"


@dataclass(frozen=True)
class ResponseRecord:
    """One submission flattened for aggregation."""

    respondent_name: str
    respondent_external_id: str
    submitted_at: datetime | str
    answers: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExportTable:
    header: list[str]
    rows: list[list[str]]


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def percentage(part: int, whole: int) -> int:
    """Round part/whole*100 to the nearest integer, halves rounding up.

    A zero denominator yields 0.
    """
    if whole <= 0:
        return 0
    return math.floor(Fraction(part * 100, whole) + Fraction(1, 2))


# ---------------------------------------------------------------------------
# Per-field summaries
# ---------------------------------------------------------------------------


def _summarize_single_choice(f: ChoiceField, values: list[Any], total: int) -> ChoiceFieldSummary:
    answered_total = sum(1 for v in values if is_answered(v))
    counts = {option: 0 for option in f.options}
    for value in values:
        if isinstance(value, str) and value in counts:
            counts[value] += 1
    return ChoiceFieldSummary(
        field_id=f.id,
        label=f.label,
        kind=f.kind,
        total_responses=total,
        answered_total=answered_total,
        options=[
            OptionTally(option=option, count=counts[option], percentage=percentage(counts[option], answered_total))
            for option in f.options
        ],
    )


def _summarize_multi_choice(f: ChoiceField, values: list[Any], total: int) -> ChoiceFieldSummary:
    answered_total = sum(1 for v in values if is_answered(v))
    counts = {option: 0 for option in f.options}
    for value in values:
        if not isinstance(value, (list, tuple)):
            continue
        for option in {v for v in value if isinstance(v, str)} & counts.keys():
            counts[option] += 1
    # Denominator is every response: picking no boxes is a valid answer
    return ChoiceFieldSummary(
        field_id=f.id,
        label=f.label,
        kind=f.kind,
        total_responses=total,
        answered_total=answered_total,
        options=[
            OptionTally(option=option, count=counts[option], percentage=percentage(counts[option], total))
            for option in f.options
        ],
    )


def _summarize_free_input(f: FormField, values: list[Any], total: int) -> TextFieldSummary:
    answered_values = [v for v in values if is_answered(v)]
    answered = len(answered_values)
    return TextFieldSummary(
        field_id=f.id,
        label=f.label,
        kind=f.kind,
        total_responses=total,
        answered=answered,
        skipped=total - answered,
        percentage_answered=percentage(answered, total),
        answers=[str(v) for v in answered_values] if f.kind in TEXT_KINDS else None,
    )


def summarize_field(f: FormField, responses: Sequence[ResponseRecord]) -> ChoiceFieldSummary | TextFieldSummary:
    values = [r.answers.get(f.id) for r in responses]
    total = len(responses)
    if f.kind in MULTI_VALUE_KINDS:
        return _summarize_multi_choice(f, values, total)
    if f.kind in CHOICE_KINDS:
        return _summarize_single_choice(f, values, total)
    return _summarize_free_input(f, values, total)


def summarize(
    fields: Sequence[FormField], responses: Sequence[ResponseRecord]
) -> list[ChoiceFieldSummary | TextFieldSummary]:
    """Summaries for every field, in field order."""
    return [summarize_field(f, responses) for f in fields]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return MULTI_VALUE_SEPARATOR.join(str(v) for v in value)
    return str(value)


def _timestamp(value: datetime | str) -> str:
    return value.isoformat() if isinstance(value, datetime) else str(value)


def build_export(fields: Sequence[FormField], responses: Sequence[ResponseRecord]) -> ExportTable:
    """One row per response, one column per field after the respondent columns."""
    header = [*EXPORT_LEADING_COLUMNS, *(f.label for f in fields)]
    rows = [
        [
            r.respondent_name,
            r.respondent_external_id,
            _timestamp(r.submitted_at),
            *(export_cell(r.answers.get(f.id)) for f in fields),
        ]
        for r in responses
    ]
    return ExportTable(header=header, rows=rows)


def render_csv(table: ExportTable) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(table.header)
    writer.writerows(table.rows)
    return output.getvalue()


def export_filename(title: str) -> str:
    return f"{title}{EXPORT_FILENAME_SUFFIX}"
