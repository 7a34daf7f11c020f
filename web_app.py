"""Flask Web 服务 - 按参与者维护注意力分类会话"""

import logging
import threading
from typing import Dict, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import BadRequest

from classifiers.attention_classifier import AttentionClassifier
from models.data_models import FeatureSample, ThresholdConfig, payload_timestamp
from sinks.status_sinks import EventLog, FanoutSink, LoggingStatusSink, status_label

logger = logging.getLogger(__name__)

app = Flask(__name__)


class ParticipantSession:
    """单个参与者的分类器和事件日志，调用按会话串行化。"""

    def __init__(self, participant: str, config: ThresholdConfig):
        self.participant = participant
        self.classifier = AttentionClassifier(config)
        self.event_log = EventLog()
        self._sink = FanoutSink([LoggingStatusSink(participant), self.event_log])
        self._lock = threading.Lock()

    def ingest(self, sample: Optional[FeatureSample], now: Optional[float] = None):
        """送入一个样本，返回 (状态事件或 None, 当前已提交状态)"""
        with self._lock:
            event = self.classifier.ingest(sample, now=now)
            if event is not None:
                self._sink.publish(event)
            return event, self.classifier.state

    def reset(self):
        with self._lock:
            self.classifier.reset()

    def snapshot(self) -> dict:
        with self._lock:
            state = self.classifier.state
            counters = self.classifier.counters
            return {
                "participant": self.participant,
                "state": state.value if state is not None else None,
                "label": status_label(state),
                "counters": {
                    "eye_closed_streak": counters.eye_closed_streak,
                    "looking_away_streak": counters.looking_away_streak,
                    "attentive_streak": counters.attentive_streak,
                },
                "config": self.classifier.config.to_dict(),
                "latest_event": self.event_log.latest(),
            }


class SessionRegistry:
    """参与者 ID → 会话，会话之间不共享任何状态。"""

    def __init__(self):
        self._sessions: Dict[str, ParticipantSession] = {}
        self._lock = threading.Lock()

    def start(self, participant: str, config: ThresholdConfig) -> Optional[ParticipantSession]:
        """创建会话；已存在时返回 None"""
        with self._lock:
            if participant in self._sessions:
                return None
            session = ParticipantSession(participant, config)
            self._sessions[participant] = session
        logger.info("会话开始: %s", participant)
        return session

    def end(self, participant: str) -> bool:
        with self._lock:
            session = self._sessions.pop(participant, None)
        if session is None:
            return False
        logger.info("会话结束: %s", participant)
        return True

    def get(self, participant: str) -> Optional[ParticipantSession]:
        with self._lock:
            return self._sessions.get(participant)

    def clear(self):
        with self._lock:
            self._sessions.clear()


registry = SessionRegistry()


def _not_found(participant):
    return jsonify({"success": False, "message": f"会话不存在: {participant}"}), 404


# ---- Flask 路由 ----

@app.route("/api/sessions/<participant>", methods=["POST"])
def api_start_session(participant):
    data = request.get_json(silent=True) or {}
    try:
        config = ThresholdConfig.from_dict(data)
    except ValueError as e:
        return jsonify({"success": False, "message": f"阈值配置无效: {e}"}), 400

    session = registry.start(participant, config)
    if session is None:
        return jsonify({"success": False, "message": f"会话已存在: {participant}"}), 409
    return jsonify({"success": True, "participant": participant, "config": config.to_dict()}), 201


@app.route("/api/sessions/<participant>", methods=["DELETE"])
def api_end_session(participant):
    if not registry.end(participant):
        return _not_found(participant)
    return jsonify({"success": True})


@app.route("/api/sessions/<participant>/samples", methods=["POST"])
def api_ingest(participant):
    session = registry.get(participant)
    if session is None:
        return _not_found(participant)

    try:
        payload = request.get_json(force=True)
        sample = FeatureSample.from_payload(payload)
    except BadRequest:
        return jsonify({"success": False, "message": "请求体不是合法 JSON"}), 400
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    event, state = session.ingest(sample, now=payload_timestamp(payload))
    return jsonify({
        "success": True,
        "event": event.to_message() if event is not None else None,
        "state": state.value if state is not None else None,
    })


@app.route("/api/sessions/<participant>/status")
def api_status(participant):
    session = registry.get(participant)
    if session is None:
        return _not_found(participant)
    return jsonify(session.snapshot())


@app.route("/api/sessions/<participant>/events")
def api_events(participant):
    session = registry.get(participant)
    if session is None:
        return _not_found(participant)
    since = request.args.get("since", 0, type=int)
    events, total = session.event_log.since(since)
    return jsonify({"events": events, "total": total})


@app.route("/api/sessions/<participant>/reset", methods=["POST"])
def api_reset(participant):
    session = registry.get(participant)
    if session is None:
        return _not_found(participant)
    session.reset()
    return jsonify({"success": True})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
