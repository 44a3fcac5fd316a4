import csv
import io

from roster import (
    ASCENDING,
    DESCENDING,
    SortConfig,
    csv_rows,
    format_score,
    matches,
    subject_columns,
    view,
    write_csv,
)

ROSTER = [
    {"roll_number": 1, "name": "Zoe", "course": "Physics", "marks": {"Math": 90, "Art": 70},
     "percentage": "80.00", "grade": "A"},
    {"roll_number": 2, "name": "adam", "course": "Biology", "marks": {"Bio": 55},
     "percentage": "55.00", "grade": "D"},
    {"roll_number": 3, "name": "Mia", "course": "Physics", "marks": {"Math": 60, "Bio": 100}},
    {"roll_number": 12, "name": "Ben", "course": "Chemistry", "marks": {"Math": 60},
     "percentage": "60.00", "grade": "C"},
]


def names(rows):
    return [r["name"] for r in rows]


def test_no_term_matches_everything():
    assert names(view(ROSTER)) == ["Zoe", "adam", "Mia", "Ben"]
    assert matches(ROSTER[0], "")


def test_search_is_case_insensitive_across_fields():
    assert names(view(ROSTER, "PHYS")) == ["Zoe", "Mia"]
    assert names(view(ROSTER, "Adam")) == ["adam"]
    assert names(view(ROSTER, "12")) == ["Ben"]
    assert names(view(ROSTER, "d")) == ["adam"]


def test_search_matches_backfilled_grade():
    legacy = [{"roll_number": 9, "name": "Kim", "course": "Law", "marks": {"Math": 95}}]
    assert names(view(legacy, "A+")) == ["Kim"]
    assert names(view(ROSTER, "b")) == ["adam", "Ben"]


def test_search_with_no_match_is_empty():
    assert view(ROSTER, "nobody") == []


def test_sort_by_name_ignores_case():
    assert names(view(ROSTER, sort_key="name")) == ["adam", "Ben", "Mia", "Zoe"]
    assert names(view(ROSTER, sort_key="name", direction=DESCENDING)) == ["Zoe", "Mia", "Ben", "adam"]


def test_sort_by_roll_number_is_numeric():
    assert [r["roll_number"] for r in view(ROSTER, sort_key="roll_number", direction=DESCENDING)] == [12, 3, 2, 1]


def test_sort_by_percentage_uses_backfilled_values():
    assert names(view(ROSTER, sort_key="percentage")) == ["adam", "Ben", "Zoe", "Mia"]


def test_sort_by_subject_treats_missing_as_zero():
    assert names(view(ROSTER, sort_key="Bio", is_subject_key=True)) == ["Zoe", "Ben", "adam", "Mia"]
    assert names(view(ROSTER, sort_key="Math", is_subject_key=True)) == ["adam", "Mia", "Ben", "Zoe"]


def test_sort_by_unorderable_field_keeps_input_order():
    assert names(view(ROSTER, sort_key="marks")) == ["Zoe", "adam", "Mia", "Ben"]
    assert names(view(ROSTER, sort_key="marks", direction=DESCENDING)) == ["Zoe", "adam", "Mia", "Ben"]


def test_descending_keeps_ties_in_input_order():
    assert names(view(ROSTER, sort_key="Math", direction=DESCENDING, is_subject_key=True)) == [
        "Zoe", "Mia", "Ben", "adam",
    ]


def test_filter_runs_before_sort():
    assert names(view(ROSTER, "physics", sort_key="name")) == ["Mia", "Zoe"]


def test_sort_toggle():
    config = SortConfig().request("Math", is_subject=True)
    assert config == SortConfig("Math", ASCENDING, True)
    config = config.request("Math", is_subject=True)
    assert config.direction == DESCENDING
    config = config.request("Math", is_subject=True)
    assert config.direction == ASCENDING
    assert config.request("name").direction == ASCENDING


def test_toggling_twice_restores_ascending_order():
    first = SortConfig().request("Math", True)
    again = first.request("Math", True).request("Math", True)
    sort = lambda c: names(view(ROSTER, sort_key=c.key, direction=c.direction, is_subject_key=c.is_subject))
    assert sort(again) == sort(first) == ["adam", "Mia", "Ben", "Zoe"]


def test_subject_columns_are_sorted_union():
    assert subject_columns(ROSTER) == ["Art", "Bio", "Math"]
    assert subject_columns([]) == []
    assert subject_columns([{"name": "x"}]) == []


def test_format_score():
    assert format_score(100) == "100"
    assert format_score(80.5) == "80.5"
    assert format_score(0) == "0"
    assert format_score(80.555) == "80.555"
    assert format_score(72.0) == "72"


def test_csv_rows():
    rows = view(ROSTER, sort_key="roll_number")
    table = csv_rows(rows[:3], subject_columns(ROSTER))
    assert table[0] == ["Roll Number", "Name", "Course", "Art", "Bio", "Math", "Total", "Percentage", "Grade"]
    assert table[1] == ["1", "Zoe", "Physics", "70", "0", "90", "160", "80.00%", "A"]
    assert table[3] == ["3", "Mia", "Physics", "0", "100", "60", "160", "80.00%", "A"]


def test_write_csv_quotes_commas():
    rows = [{"roll_number": 1, "name": "Doe, Jane", "course": "Art", "marks": {},
             "percentage": "0.00", "grade": "F"}]
    parsed = list(csv.reader(io.StringIO(write_csv(rows, []))))
    assert parsed[1] == ["1", "Doe, Jane", "Art", "0", "0.00%", "F"]
