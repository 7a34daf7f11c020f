"""状态事件输出模块：日志、JSON Lines 文件、内存事件日志"""

import json
import logging
import os
import threading
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from models.data_models import AttentionState, StatusEvent

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    AttentionState.ATTENTIVE: "Attentive",
    AttentionState.LOOKING_AWAY: "Looking Away",
    AttentionState.DROWSY: "Drowsy",
    AttentionState.NO_FACE: "No Face Detected",
}

# BGR，供 OpenCV 绘制
STATUS_COLORS = {
    AttentionState.ATTENTIVE: (94, 197, 34),
    AttentionState.LOOKING_AWAY: (11, 158, 245),
    AttentionState.DROWSY: (68, 68, 239),
    AttentionState.NO_FACE: (128, 114, 107),
}

_UNKNOWN_COLOR = (128, 114, 107)

_LOG_LEVELS = {
    AttentionState.ATTENTIVE: logging.INFO,
    AttentionState.LOOKING_AWAY: logging.WARNING,
    AttentionState.DROWSY: logging.WARNING,
    AttentionState.NO_FACE: logging.WARNING,
}


def status_label(state: Optional[AttentionState]) -> str:
    if state is None:
        return "Unknown"
    return STATUS_LABELS.get(state, "Unknown")


def status_color(state: Optional[AttentionState]) -> tuple:
    if state is None:
        return _UNKNOWN_COLOR
    return STATUS_COLORS.get(state, _UNKNOWN_COLOR)


class StatusSink:
    """状态事件接收端基类"""

    def publish(self, event: StatusEvent) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingStatusSink(StatusSink):
    """将状态变化写入日志"""

    def __init__(self, participant: str = "local", log: Optional[logging.Logger] = None):
        self.participant = participant
        self._logger = log if log is not None else logger

    def publish(self, event):
        self._logger.log(
            _LOG_LEVELS.get(event.status, logging.INFO),
            "[%s] 状态变化: %s (置信度 %.0f%%)",
            self.participant,
            status_label(event.status),
            event.confidence * 100,
        )


class EventLog(StatusSink):
    """有界的内存事件日志，超出上限时丢弃最早的条目"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self.max_entries = max_entries
        self._entries: List[dict] = []
        # 累计发布数，以及被裁掉的最早条目数
        self._total = 0
        self._dropped = 0
        self._lock = threading.Lock()

    def publish(self, event):
        entry = event.to_dict()
        entry["time"] = datetime.fromtimestamp(event.timestamp).strftime("%H:%M:%S")
        entry["label"] = status_label(event.status)
        with self._lock:
            self._entries.append(entry)
            self._total += 1
            overflow = len(self._entries) - self.max_entries
            if overflow > 0:
                self._entries = self._entries[overflow:]
                self._dropped += overflow

    def since(self, index: int = 0) -> Tuple[List[dict], int]:
        """
        获取序号 index 之后的事件及累计发布总数。

        序号按发布顺序单调递增，不受裁剪影响；已被裁掉的事件无法再取回。
        """
        with self._lock:
            start = max(0, index - self._dropped)
            return list(self._entries[start:]), self._total

    def latest(self) -> Optional[dict]:
        with self._lock:
            return self._entries[-1] if self._entries else None


class JsonLinesStatusSink(StatusSink):
    """每个事件追加一行 JSON 消息"""

    def __init__(self, path: str):
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._file = open(path, "a", encoding="utf-8")

    def publish(self, event):
        self._file.write(json.dumps(event.to_message(), ensure_ascii=False) + "\n")
        self._file.flush()

    def close(self):
        if not self._file.closed:
            self._file.close()


class FanoutSink(StatusSink):
    """依次发布到多个接收端，单个接收端失败不影响其余接收端"""

    def __init__(self, sinks: Iterable[StatusSink]):
        self.sinks = list(sinks)

    def publish(self, event):
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception("状态事件发布失败: %s", type(sink).__name__)

    def close(self):
        for sink in self.sinks:
            sink.close()
