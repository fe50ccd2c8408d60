from datetime import date, datetime

from progress_summary import EMPTY_SUMMARY, current_progress, progress_history, work_order_progress


def _report(report_id, progress, report_date, deleted_at=None):
    return {
        "id": report_id,
        "progress_percentage": progress,
        "report_date": report_date,
        "deleted_at": deleted_at,
    }


def test_no_reports_means_zero_progress():
    assert current_progress([]) == EMPTY_SUMMARY
    assert current_progress(None).value == 0


def test_latest_report_date_wins_regardless_of_order():
    reports = [
        _report(1, 80, date(2024, 5, 3)),
        _report(2, 40, date(2024, 5, 1)),
        _report(3, 60, date(2024, 5, 2)),
    ]
    summary = current_progress(reports)
    assert summary.value == 80
    assert summary.as_of == date(2024, 5, 3)
    assert summary.count == 3


def test_progress_may_go_down_when_a_later_report_says_so():
    reports = [_report(1, 90, "2024-05-01"), _report(2, 70, "2024-05-02")]
    assert current_progress(reports).value == 70


def test_same_day_reports_pick_the_highest_id():
    reports = [_report(7, 100, "2024-05-02"), _report(3, 50, "2024-05-02")]
    assert current_progress(reports).value == 100


def test_soft_deleted_reports_are_ignored():
    reports = [
        _report(1, 40, date(2024, 5, 1)),
        _report(2, 100, date(2024, 5, 5), deleted_at=datetime(2024, 5, 6)),
    ]
    summary = current_progress(reports)
    assert summary.value == 40
    assert summary.count == 1
    assert not summary.is_complete


def test_complete_only_at_one_hundred():
    assert current_progress([_report(1, 99, "2024-05-01")]).is_complete is False
    assert current_progress([_report(1, 100, "2024-05-01")]).is_complete is True


def test_out_of_range_values_are_clamped():
    assert current_progress([_report(1, 150, "2024-05-01")]).value == 100
    assert current_progress([_report(1, -5, "2024-05-01")]).value == 0


def test_history_is_chronological():
    reports = [
        _report(2, 60, "2024-05-03"),
        _report(1, 20, "2024-05-01"),
    ]
    assert progress_history(reports) == [
        {"date": "2024-05-01", "progress": 20},
        {"date": "2024-05-03", "progress": 60},
    ]


def test_work_order_progress_averages_current_values():
    details = [
        {"progress_reports": [_report(1, 100, "2024-05-01")]},
        {"progress_reports": [_report(2, 50, "2024-05-01")]},
        {"progress_reports": []},
        {"progress_reports": [_report(3, 100, "2024-05-01")], "deleted_at": datetime(2024, 5, 2)},
    ]
    assert work_order_progress(details) == 50
    assert work_order_progress([]) == 0
