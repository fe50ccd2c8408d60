from datetime import date

import pytest

from work_status import (
    WorkStatus,
    derive_work_status,
    get_status_color,
    get_status_label,
)


def test_no_actual_dates_is_not_ready():
    assert derive_work_status({}) is WorkStatus.NOT_READY
    assert derive_work_status({"actual_start_date": None, "actual_close_date": None}) is WorkStatus.NOT_READY


def test_blank_strings_count_as_missing():
    detail = {"actual_start_date": "  ", "actual_close_date": ""}
    assert derive_work_status(detail) is WorkStatus.NOT_READY


def test_start_date_only_is_in_progress():
    assert derive_work_status({"actual_start_date": date(2024, 3, 1)}) is WorkStatus.IN_PROGRESS


def test_close_date_wins_even_without_start():
    detail = {"actual_start_date": None, "actual_close_date": "2024-03-10"}
    assert derive_work_status(detail) is WorkStatus.COMPLETED


def test_reads_attributes_from_objects():
    class Detail:
        actual_start_date = date(2024, 3, 1)
        actual_close_date = date(2024, 3, 5)

    assert derive_work_status(Detail()) is WorkStatus.COMPLETED


@pytest.mark.parametrize(
    "status, label, color",
    [
        (WorkStatus.NOT_READY, "Not Ready", "gray"),
        ("IN_PROGRESS", "In Progress", "blue"),
        ("completed", "Completed", "green"),
        ("in progress", "In Progress", "blue"),
    ],
)
def test_labels_and_colors(status, label, color):
    assert get_status_label(status) == label
    assert get_status_color(status) == color


def test_unknown_status_has_no_label():
    assert get_status_label("ARCHIVED") is None
    assert get_status_color(None) is None
