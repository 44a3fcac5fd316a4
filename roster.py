"""
Search, sort and CSV export over a snapshot of an admin's students.

Everything here works on plain dicts as they come out of MongoDB and never
writes back to the database.
"""

import csv
import io
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from grading import parse_percentage, with_stats

ASCENDING = "ascending"
DESCENDING = "descending"

SEARCH_FIELDS = ("name", "course", "roll_number", "grade")
SORT_FIELDS = ("roll_number", "name", "course", "percentage", "grade")


@dataclass(frozen=True)
class SortConfig:
    key: Optional[str] = None
    direction: str = ASCENDING
    is_subject: bool = False

    def request(self, key: str, is_subject: bool = False) -> "SortConfig":
        """Sort by key, flipping to descending if it is already ascending."""
        direction = ASCENDING
        if self.key == key and self.direction == ASCENDING:
            direction = DESCENDING
        return SortConfig(key, direction, is_subject)


def subject_columns(records: Iterable[Mapping[str, Any]]) -> List[str]:
    subjects = set()
    for record in records:
        subjects.update((record.get("marks") or {}).keys())
    return sorted(subjects)


def matches(record: Mapping[str, Any], term: Optional[str]) -> bool:
    if not term:
        return True
    needle = term.lower()
    for field in SEARCH_FIELDS:
        value = record.get(field)
        if value is not None and needle in str(value).lower():
            return True
    return False


def _sort_value(record: Mapping[str, Any], key: str, is_subject: bool) -> Tuple[int, Any]:
    if is_subject:
        value: Any = (record.get("marks") or {}).get(key, 0)
    elif key == "percentage":
        value = parse_percentage(record.get("percentage"))
    else:
        value = record.get(key)

    # rank keeps numbers, text and missing values from being compared to each other
    if value is None:
        return (0, 0)
    if isinstance(value, str):
        return (2, value.lower())
    if isinstance(value, (int, float)):
        return (1, value)
    # lists, dicts and the like have no order; they tie after everything else
    return (3, 0)


def view(
    records: Iterable[Mapping[str, Any]],
    search_term: Optional[str] = None,
    sort_key: Optional[str] = None,
    direction: str = ASCENDING,
    is_subject_key: bool = False,
) -> List[Dict[str, Any]]:
    rows = [row for row in (with_stats(r) for r in records) if matches(row, search_term)]
    if not sort_key:
        return rows
    # sorted() is stable in both directions, so ties keep their input order
    return sorted(
        rows,
        key=lambda row: _sort_value(row, sort_key, is_subject_key),
        reverse=direction == DESCENDING,
    )


def format_score(value: Any) -> str:
    text = str(value)
    return text[:-2] if text.endswith(".0") else text


def csv_rows(rows: Sequence[Mapping[str, Any]], subjects: Sequence[str]) -> List[List[str]]:
    table = [["Roll Number", "Name", "Course", *subjects, "Total", "Percentage", "Grade"]]
    for row in rows:
        marks = row.get("marks") or {}
        table.append([
            str(row.get("roll_number", "")),
            row.get("name", ""),
            row.get("course", ""),
            *[format_score(marks.get(subject, 0)) for subject in subjects],
            format_score(sum(marks.values())),
            f"{row.get('percentage') or '0'}%",
            row.get("grade", ""),
        ])
    return table


def write_csv(rows: Sequence[Mapping[str, Any]], subjects: Sequence[str]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerows(csv_rows(rows, subjects))
    return output.getvalue()
