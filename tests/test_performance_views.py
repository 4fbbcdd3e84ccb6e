"""Tests for the read-side aggregation."""

import pytest

from scripts.lib.errors import DataFetchError
from scripts.lib.performance_views import PerformanceReader, aggregate_metrics, aggregate_view


def _row(user_id, day, **kwargs):
    row = {"user_id": user_id, "user_name": user_id.title(), "date": day}
    row.update(kwargs)
    return row


class TestAggregateMetrics:
    def test_sums_counts_and_averages_rates(self):
        rows = [
            _row("ana", "2024-03-01", calls=10, meetings_completed=2, conversion_rate=50, lead_time=4),
            _row("ana", "2024-03-02", calls=6, meetings_completed=1, conversion_rate=25, lead_time=None),
        ]
        totals = aggregate_metrics(rows)
        assert totals.record_count == 2
        assert totals.calls == 16
        assert totals.meetings_completed == 3
        assert totals.conversion_rate == 37.5
        assert totals.lead_time == 2.0

    def test_empty(self):
        totals = aggregate_metrics([])
        assert totals.record_count == 0
        assert totals.conversion_rate == 0.0
        assert totals.calls == 0


class TestAggregateView:
    def test_per_user_breakdown(self):
        rows = [
            _row("ana", "2024-03-01", calls=10),
            _row("bruno", "2024-03-01", calls=3),
            _row("ana", "2024-03-02", calls=5),
        ]
        view = aggregate_view(rows, start="2024-03-01", end="2024-03-02")
        assert view.totals.calls == 18
        assert view.by_user["ana"].metrics.calls == 15
        assert view.by_user["ana"].metrics.record_count == 2
        assert view.by_user["bruno"].user_name == "Bruno"
        assert view.used_fallback is False


class TestPerformanceReader:
    def test_window_filter(self, fake_db):
        fake_db.tables["performance_data"] = [
            _row("ana", "2024-02-28"), _row("ana", "2024-03-01"),
            _row("ana", "2024-03-05"), _row("ana", "2024-03-06"),
        ]
        rows, used_fallback = PerformanceReader(fake_db).load("2024-03-01", "2024-03-05")
        assert [r["date"] for r in rows] == ["2024-03-05", "2024-03-01"]
        assert used_fallback is False

    def test_window_larger_than_one_response_is_read_fully(self, fake_db):
        fake_db.tables["performance_data"] = [
            _row(f"user{i:02d}", f"2024-03-{d:02d}", calls=1, conversion_rate=10)
            for d in range(1, 31) for i in range(85)
        ]
        view, rows = PerformanceReader(fake_db).view("2024-03-01", "2024-03-31")

        assert len(rows) == 2550
        assert fake_db.select_calls == 3
        assert view.totals.record_count == 2550
        assert view.totals.calls == 2550
        assert view.totals.conversion_rate == 10.0
        assert view.used_fallback is False

    def test_paging_does_not_repeat_or_skip_rows_sharing_a_date(self, fake_db):
        fake_db.tables["performance_data"] = [
            _row(f"user{i}", "2024-03-01") for i in (3, 1, 4, 0, 2)
        ] + [_row(f"user{i}", "2024-03-02") for i in (1, 0)]
        rows, _ = PerformanceReader(fake_db, chunk_size=2).load("2024-03-01", "2024-03-31")

        assert [(r["date"], r["user_id"]) for r in rows] == [
            ("2024-03-02", "user0"), ("2024-03-02", "user1"),
            ("2024-03-01", "user0"), ("2024-03-01", "user1"), ("2024-03-01", "user2"),
            ("2024-03-01", "user3"), ("2024-03-01", "user4"),
        ]
        assert fake_db.select_calls == 4

    def test_empty_window_falls_back_to_recent_rows(self, fake_db):
        fake_db.tables["performance_data"] = [
            _row(f"user{i}", f"2024-01-{(i % 28) + 1:02d}", calls=1) for i in range(37)
        ]
        view, rows = PerformanceReader(fake_db).view("2024-06-01", "2024-06-30")
        assert len(rows) == 37
        assert view.used_fallback is True
        assert view.totals.record_count == 37
        assert view.totals.calls == 37

    def test_fallback_is_capped(self, fake_db):
        fake_db.tables["performance_data"] = [_row("ana", f"2024-01-{d:02d}") for d in range(1, 31)]
        rows, used_fallback = PerformanceReader(fake_db, fallback_limit=10).load("2025-01-01", "2025-01-31")
        assert len(rows) == 10
        assert rows[0]["date"] == "2024-01-30"
        assert used_fallback is True

    def test_no_rows_at_all(self, fake_db):
        rows, used_fallback = PerformanceReader(fake_db).load("2024-03-01", "2024-03-31")
        assert rows == []
        assert used_fallback is False

    def test_last_sync_at(self, fake_db):
        fake_db.tables["performance_data"] = [
            _row("ana", "2024-03-01", updated_at="2024-03-01T10:00:00+00:00"),
            _row("bruno", "2024-03-01", updated_at="2024-03-01T12:30:00+00:00"),
        ]
        assert PerformanceReader(fake_db).last_sync_at() == "2024-03-01T12:30:00+00:00"

    def test_query_failure_raises(self, fake_db):
        fake_db.fail_selects = True
        with pytest.raises(DataFetchError):
            PerformanceReader(fake_db).load("2024-03-01", "2024-03-31")
