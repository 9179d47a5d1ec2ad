"""Tests for the skip-the-questions decision."""

import pytest

from classifier import is_metadata_column, is_simple
from models import ExtractedContent


def content(**overrides):
    data = {
        "contentType": "table",
        "headers": ["Date", "Alice", "Bob"],
        "rows": [["Mon", "9-5", ""]],
        "rawText": "Date Alice Bob",
        "metadata": {"hasMultiplePeople": True, "potentialNames": ["Alice", "Bob"]},
    }
    data.update(overrides)
    return ExtractedContent.model_validate(data)


UNCERTAIN = [{"location": "row 1, column 2", "readValue": "RL", "alternativeValue": "BL", "reason": "smudged"}]


@pytest.mark.parametrize(
    "overrides",
    [
        {"contentType": "text"},
        {"contentType": "email"},
        {"metadata": {"hasMultiplePeople": False, "potentialNames": ["Alice"]}},
        {"metadata": {"hasMultiplePeople": True, "potentialNames": ["Alice"]}},
    ],
)
def test_uncertain_cells_always_force_questions(overrides):
    assert not is_simple(content(uncertainCells=UNCERTAIN, **overrides))


def test_text_and_email_are_simple():
    assert is_simple(content(contentType="email"))
    assert is_simple(content(contentType="text"))


def test_explicit_single_person_is_simple():
    assert is_simple(content(metadata={"hasMultiplePeople": False, "potentialNames": ["A", "B"]}))


def test_unknown_people_flag_falls_through_to_names():
    assert not is_simple(content(metadata={"potentialNames": ["Alice", "Bob"]}))


def test_duplicate_names_count_once():
    assert is_simple(content(metadata={"hasMultiplePeople": True, "potentialNames": ["Alice", " alice ", ""]}))


def test_calendar_with_several_names_needs_questions():
    assert not is_simple(content(contentType="calendar", headers=["Sun", "Mon"], rows=[["a", "b"]]))


def test_grid_with_one_person_column_is_simple():
    data = content(
        headers=["Date", "Day", "Alice", "Notes"],
        rows=[["1/1", "Mon", "9-5", ""]],
        metadata={"hasMultiplePeople": True, "potentialNames": ["Alice", "Manager Sam"]},
    )
    assert is_simple(data)


def test_grid_with_several_person_columns_is_not_simple():
    assert not is_simple(content())


def test_list_without_headers_is_not_simple():
    assert not is_simple(content(contentType="list", headers=None, rows=None))


@pytest.mark.parametrize("header", ["Date", "WEEKDAY", "Roster notes", "날짜", "메모", "Week 3"])
def test_metadata_columns(header):
    assert is_metadata_column(header)


def test_person_column_is_not_metadata():
    assert not is_metadata_column("Alice")
