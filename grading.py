"""
Percentage and letter grade computation for student marks, plus
roster-wide summary statistics.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from errors import ValidationError

TWO_PLACES = Decimal("0.01")

# Inclusive lower bounds, checked highest first
GRADE_THRESHOLDS = (
    (Decimal(90), "A+"),
    (Decimal(80), "A"),
    (Decimal(70), "B"),
    (Decimal(60), "C"),
    (Decimal(50), "D"),
)
FAILING_GRADE = "F"


class Stats(NamedTuple):
    percentage: str
    grade: str


class Summary(NamedTuple):
    count: int
    average_percentage: str
    top_performer: str


def _to_decimal(value: Any) -> Decimal:
    # str() keeps 89.99 as 89.99 instead of its binary expansion
    return Decimal(str(value))


def _format(value: Decimal) -> str:
    return str(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def grade_for(percentage: Any) -> str:
    value = _to_decimal(percentage)
    for lower_bound, grade in GRADE_THRESHOLDS:
        if value >= lower_bound:
            return grade
    return FAILING_GRADE


def compute_stats(marks: Optional[Mapping[str, Any]]) -> Stats:
    """Average the scores in marks and grade the result.

    An empty or missing mapping scores 0.00 / F. Scores are expected to
    have gone through clean_marks already.
    """
    if not marks:
        return Stats("0.00", FAILING_GRADE)
    total = sum((_to_decimal(v) for v in marks.values()), Decimal(0))
    percentage = _format(total / len(marks))
    return Stats(percentage, grade_for(percentage))


def clean_marks(marks: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Trim subject names and check every score is a number in [0, 100]."""
    cleaned: Dict[str, Any] = {}
    for subject, score in (marks or {}).items():
        name = subject.strip() if isinstance(subject, str) else ""
        if not name:
            raise ValidationError("Subject name cannot be empty")
        if "." in name or name.startswith("$"):
            raise ValidationError(f"Subject name cannot contain '.' or start with '$': {name}")
        if name in cleaned:
            raise ValidationError(f"Duplicate subject: {name}")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValidationError(f"Score for {name} must be a number")
        if math.isnan(score) or not 0 <= score <= 100:
            raise ValidationError(f"Score for {name} must be between 0 and 100")
        cleaned[name] = score
    return cleaned


def parse_percentage(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def with_stats(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of record with percentage/grade filled in if missing.

    Used at read time for rows saved before stats were persisted; the stored
    document is left alone.
    """
    row = dict(record)
    if not row.get("percentage") or not row.get("grade"):
        stats = compute_stats(row.get("marks"))
        row["percentage"] = row.get("percentage") or stats.percentage
        row["grade"] = row.get("grade") or stats.grade
    return row


def aggregate(records: Iterable[Mapping[str, Any]]) -> Summary:
    rows: List[Dict[str, Any]] = [with_stats(r) for r in records]
    if not rows:
        return Summary(0, "0.00", "-")

    total = Decimal(0)
    top_name, top_value = "-", None
    for row in rows:
        value = _to_decimal(parse_percentage(row["percentage"]))
        total += value
        # strict comparison keeps the first of equal scores
        if top_value is None or value > top_value:
            top_name, top_value = row.get("name", "-"), value
    return Summary(len(rows), _format(total / len(rows)), top_name)
