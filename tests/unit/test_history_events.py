# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for the event emitter and the operator history sink."""

import json

from remote_purge.monitoring import EventEmitter, HistorySink


# ---------------------------------------------------------------------------
# EventEmitter
# ---------------------------------------------------------------------------


class TestEventEmitter:

    def test_emit_reaches_subscribers_in_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.subscribe("completed", lambda t, p: calls.append(("first", p["file"])))
        emitter.subscribe("completed", lambda t, p: calls.append(("second", p["file"])))

        delivered = emitter.emit("completed", {"file": "a.zip"})

        assert delivered == 2
        assert calls == [("first", "a.zip"), ("second", "a.zip")]

    def test_emit_without_subscribers(self):
        assert EventEmitter().emit("delayed", {"file": "a.zip"}) == 0

    def test_failing_handler_skipped(self):
        emitter = EventEmitter()
        calls = []
        emitter.subscribe("delayed", lambda t, p: 1 / 0)
        emitter.subscribe("delayed", lambda t, p: calls.append(t))

        delivered = emitter.emit("delayed", {"file": "a.zip"})

        assert delivered == 1
        assert calls == ["delayed"]

    def test_unsubscribe(self):
        emitter = EventEmitter()
        calls = []

        def handler(topic, payload):
            calls.append(topic)

        emitter.subscribe("completed", handler)
        emitter.unsubscribe("completed", handler)
        emitter.unsubscribe("completed", handler)
        emitter.emit("completed", {})

        assert calls == []


# ---------------------------------------------------------------------------
# HistorySink
# ---------------------------------------------------------------------------


class TestHistorySink:

    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "logs" / "history.jsonl"
        sink = HistorySink(str(path), clock=lambda: 42.0)

        sink.log("remote_purge", "success", "Purged a.zip from nas")
        sink.log("remote_purge", "failure", "Giving up on b.zip")

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert lines == [
            {"timestamp": 42.0, "category": "remote_purge", "level": "success",
             "message": "Purged a.zip from nas"},
            {"timestamp": 42.0, "category": "remote_purge", "level": "failure",
             "message": "Giving up on b.zip"},
        ]

    def test_unknown_level_becomes_info(self):
        sink = HistorySink(path=None)

        sink.log("remote_purge", "shouting", "hello")

        assert sink.recent()[0]["level"] == "info"

    def test_recent_filters_by_category_and_is_bounded(self):
        sink = HistorySink(path=None, recent_size=3)
        for i in range(5):
            sink.log("remote_purge" if i % 2 == 0 else "other", "info", str(i))

        assert [line["message"] for line in sink.recent()] == ["2", "3", "4"]
        assert [line["message"] for line in sink.recent("remote_purge")] == ["2", "4"]

    def test_unwritable_path_does_not_raise(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        sink = HistorySink(str(blocker / "history.jsonl"))

        sink.log("remote_purge", "warning", "still recorded in memory")

        assert sink.recent()[0]["message"] == "still recorded in memory"
