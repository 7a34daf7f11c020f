"""状态事件输出端单元测试"""

import json
import logging

import pytest

from models.data_models import AttentionState, StatusEvent
from sinks.status_sinks import (
    STATUS_COLORS,
    STATUS_LABELS,
    EventLog,
    FanoutSink,
    JsonLinesStatusSink,
    LoggingStatusSink,
    StatusSink,
    status_color,
    status_label,
)


def _event(status=AttentionState.DROWSY, ts=1700000000.0):
    return StatusEvent(status=status, confidence=0.95, timestamp=ts)


class TestLabels:
    def test_every_state_has_label_and_color(self):
        assert set(STATUS_LABELS) == set(AttentionState)
        assert set(STATUS_COLORS) == set(AttentionState)

    def test_unset_state(self):
        assert status_label(None) == "Unknown"
        assert status_color(None) == STATUS_COLORS[AttentionState.NO_FACE]

    def test_label(self):
        assert status_label(AttentionState.LOOKING_AWAY) == "Looking Away"


class TestLoggingStatusSink:
    def test_drowsy_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="sinks.status_sinks"):
            LoggingStatusSink("alice").publish(_event())
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "alice" in record.getMessage()
        assert "Drowsy" in record.getMessage()

    def test_attentive_logged_as_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="sinks.status_sinks"):
            LoggingStatusSink().publish(_event(AttentionState.ATTENTIVE))
        assert caplog.records[-1].levelno == logging.INFO


class TestEventLog:
    def test_since(self):
        log = EventLog()
        log.publish(_event(AttentionState.ATTENTIVE))
        log.publish(_event(AttentionState.DROWSY))
        entries, total = log.since(1)
        assert total == 2
        assert [e["status"] for e in entries] == ["drowsy"]
        assert entries[0]["label"] == "Drowsy"
        assert entries[0]["timestamp"] == 1700000000000

    def test_bounded(self):
        log = EventLog(max_entries=3)
        for i in range(5):
            log.publish(_event(ts=float(i)))
        entries, total = log.since()
        assert total == 5
        assert [e["timestamp"] for e in entries] == [2000, 3000, 4000]

    def test_cursor_survives_trimming(self):
        log = EventLog(max_entries=3)
        for i in range(3):
            log.publish(_event(ts=float(i)))
        _, cursor = log.since()
        assert cursor == 3

        log.publish(_event(AttentionState.DROWSY, ts=10.0))
        entries, total = log.since(cursor)
        assert total == 4
        assert [e["status"] for e in entries] == ["drowsy"]

        # 已被裁掉的序号从最早保留的条目开始返回
        entries, _ = log.since(0)
        assert [e["timestamp"] for e in entries] == [1000, 2000, 10000]

    def test_latest(self):
        log = EventLog()
        assert log.latest() is None
        log.publish(_event(AttentionState.NO_FACE))
        assert log.latest()["status"] == "no_face"


class TestJsonLinesStatusSink:
    def test_appends_messages(self, tmp_path):
        path = tmp_path / "out" / "events.jsonl"
        sink = JsonLinesStatusSink(str(path))
        sink.publish(_event(AttentionState.LOOKING_AWAY))
        sink.publish(_event(AttentionState.ATTENTIVE))
        sink.close()
        sink.close()

        lines = path.read_text(encoding="utf-8").splitlines()
        messages = [json.loads(line) for line in lines]
        assert [m["type"] for m in messages] == ["attention_update"] * 2
        assert [m["data"]["status"] for m in messages] == ["looking_away", "attentive"]


class _FailingSink(StatusSink):
    def publish(self, event):
        raise RuntimeError("boom")


class TestFanoutSink:
    def test_failure_is_isolated(self, caplog):
        log = EventLog()
        sink = FanoutSink([_FailingSink(), log])
        with caplog.at_level(logging.ERROR, logger="sinks.status_sinks"):
            sink.publish(_event())
        assert log.since()[1] == 1
        assert "_FailingSink" in caplog.text

    def test_base_sink_is_abstract(self):
        with pytest.raises(NotImplementedError):
            StatusSink().publish(_event())
