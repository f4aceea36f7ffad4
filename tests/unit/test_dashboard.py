# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for the CLI text views."""

from remote_purge.metrics.dashboard import format_queue, format_table, summarize
from remote_purge.metrics.state import MetricsSnapshot
from remote_purge.purge_queue.models import PurgeEntry, PurgeStatus


def _snapshot(breach=False):
    return MetricsSnapshot(
        generated_at=0.0,
        pending={
            "total": 2,
            "oldest_age": 420.0,
            "over_threshold": 0,
            "destinations": {"b2": {"count": 2, "oldest_age": 420.0}},
        },
        throughput={
            "completed_total": 3,
            "success_rate": 0.75,
            "average_duration": 95.0,
            "average_attempts": 1.5,
        },
        failures={"total": 1},
        forecast={
            "aggregate": {"label": "Clearing ~1.0 entries/min", "trend": "clearing"},
            "destinations": {"b2": {"trend": "clearing", "forecast_seconds": 120.0}},
        },
        saturation={"breach_imminent": breach, "time_to_threshold": 180.0},
        backlog={"trend": "draining"},
        quotas={"b2": [{"ratio": 0.5, "captured_at": 0.0}]},
    )


class TestSummarize:

    def test_headline_fields(self):
        s = summarize(_snapshot(breach=True))

        assert s["pending"] == 2
        assert s["completed_total"] == 3
        assert s["failed_total"] == 1
        assert s["success_rate"] == 0.75
        assert s["breach_imminent"] is True
        assert s["forecast_label"] == "Clearing ~1.0 entries/min"
        assert s["backlog_trend"] == "draining"

    def test_empty_snapshot_defaults(self):
        s = summarize(MetricsSnapshot())

        assert s["pending"] == 0
        assert s["success_rate"] is None
        assert s["breach_imminent"] is False
        assert s["backlog_trend"] == "insufficient"


class TestFormatTable:

    def test_no_snapshot(self):
        assert "No metrics snapshot yet" in format_table(None)

    def test_summary_and_destination_rows(self):
        text = format_table(_snapshot())

        assert "Generated:       1970-01-01 00:00:00 UTC" in text
        assert "oldest 7m 00s" in text
        assert "Success rate: 75.0%" in text
        assert "Saturation:      ok (threshold in 3m 00s)" in text
        row = [line for line in text.splitlines() if line.startswith("b2")][0]
        assert "clearing" in row
        assert "2m 00s" in row
        assert "50.0%" in row

    def test_breach_flag(self):
        assert "BREACH IMMINENT" in format_table(_snapshot(breach=True))


class TestFormatQueue:

    def test_empty(self):
        assert format_queue([]) == "Purge queue is empty."

    def test_rows(self):
        entries = [
            PurgeEntry(file="backup-A.zip", destinations=["b2"], status=PurgeStatus.RETRY,
                       attempts=1, next_attempt_at=60.0, last_error="503 Slow Down"),
            PurgeEntry(file="backup-B.zip", destinations=[], status=PurgeStatus.COMPLETED,
                       attempts=1),
        ]

        lines = format_queue(entries).splitlines()

        assert lines[0].startswith("File")
        assert "backup-A.zip" in lines[2]
        assert "1970-01-01 00:01:00" in lines[2]
        assert lines[2].endswith("503 Slow Down")
        assert "completed" in lines[3]
