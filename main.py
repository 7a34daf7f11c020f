"""注意力监测系统入口文件"""

import argparse
import json
import logging
import sys
import time
from typing import List, Optional

import cv2

from classifiers.attention_classifier import AttentionClassifier
from detectors.face_detector import FaceDetector
from detectors.feature_extractor import FeatureExtractor
from display.renderer import DisplayRenderer
from models.data_models import (
    FaceLandmarks,
    FeatureSample,
    StatusEvent,
    ThresholdConfig,
    payload_timestamp,
)
from sinks.status_sinks import (
    EventLog,
    FanoutSink,
    JsonLinesStatusSink,
    LoggingStatusSink,
    StatusSink,
)

logger = logging.getLogger(__name__)


def load_threshold_config(config_path: Optional[str] = None) -> ThresholdConfig:
    """
    从 JSON 配置文件加载阈值参数，缺失字段使用默认值。

    文件不存在或格式错误时记录警告并使用默认值；
    取值不合法时抛出 ValueError。
    """
    if config_path is None:
        return ThresholdConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认阈值", config_path)
        return ThresholdConfig()
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认阈值", config_path)
        return ThresholdConfig()

    if not isinstance(data, dict):
        logger.warning("配置文件内容不是对象 %s，使用默认阈值", config_path)
        return ThresholdConfig()

    return ThresholdConfig.from_dict(data)


class MonitoringSession:
    """单个参与者的监测会话：关键点 → 特征 → 分类器 → 事件输出。"""

    def __init__(
        self,
        config: Optional[ThresholdConfig] = None,
        sinks: Optional[List[StatusSink]] = None,
        participant: str = "local",
        face_detector: Optional[FaceDetector] = None,
    ):
        self.participant = participant
        self.classifier = AttentionClassifier(config)
        self.extractor = FeatureExtractor()
        self.event_log = EventLog()
        self.sink = FanoutSink(
            [LoggingStatusSink(participant), self.event_log] + list(sinks or [])
        )
        self._face_detector = face_detector
        self._renderer = None
        self._cap = None
        self.last_sample: Optional[FeatureSample] = None

    @property
    def face_detector(self) -> FaceDetector:
        # 回放模式不需要加载 MediaPipe
        if self._face_detector is None:
            self._face_detector = FaceDetector()
        return self._face_detector

    def process_sample(
        self,
        sample: Optional[FeatureSample],
        now: Optional[float] = None,
    ) -> Optional[StatusEvent]:
        """输入一帧特征，状态变化时发布并返回事件。"""
        self.last_sample = sample
        event = self.classifier.ingest(sample, now=now)
        if event is not None:
            self.sink.publish(event)
        return event

    def process_landmarks(
        self,
        landmarks: Optional[FaceLandmarks],
        timestamp: Optional[float] = None,
    ) -> Optional[StatusEvent]:
        timestamp = timestamp if timestamp is not None else time.time()
        sample = None
        if landmarks is not None:
            sample = self.extractor.extract(landmarks, timestamp)
        return self.process_sample(sample, now=timestamp)

    def process_frame(self, frame) -> Optional[StatusEvent]:
        landmarks = self.face_detector.detect(frame)
        return self.process_landmarks(landmarks)

    def replay(self, path: str) -> List[StatusEvent]:
        """
        回放 JSON Lines 特征记录，每行一个特征消息（null 表示无人脸）。

        Returns:
            回放过程中产生的事件列表
        """
        events = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                    sample = FeatureSample.from_payload(payload)
                except ValueError as e:
                    logger.warning("跳过第 %d 行: %s", line_no, e)
                    continue
                # 无人脸记录的事件时间取记录自带的时间戳
                event = self.process_sample(sample, now=payload_timestamp(payload))
                if event is not None:
                    events.append(event)
        logger.info("回放完成: %s，共 %d 个状态事件", path, len(events))
        return events

    def run(self, camera_index: int = 0, display: bool = True):
        """启动摄像头检测循环。"""
        self._cap = cv2.VideoCapture(camera_index)

        if not self._cap.isOpened():
            logger.error("无法打开摄像头 %d", camera_index)
            sys.exit(1)

        if display:
            self._renderer = DisplayRenderer()

        try:
            self._main_loop(display)
        finally:
            self.stop()

    def _main_loop(self, display: bool):
        while True:
            ret, frame = self._cap.read()
            if not ret:
                continue

            landmarks = self.face_detector.detect(frame)
            self.process_landmarks(landmarks)

            if not display:
                continue

            rendered = self._renderer.render(
                frame, landmarks, self.last_sample,
                self.classifier.state, self.classifier.counters,
            )
            cv2.imshow("Attention Monitor", rendered)

            # 按 q 退出
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break

    def stop(self):
        """释放摄像头、窗口、检测器和输出端。"""
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        self._cap = None
        if self._renderer is not None:
            cv2.destroyAllWindows()
        if self._face_detector is not None:
            self._face_detector.close()
        self.sink.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="注意力状态监测")
    parser.add_argument("--config", type=str, default=None, help="JSON 阈值配置文件路径")
    parser.add_argument("--replay", type=str, default=None, help="回放 JSON Lines 特征记录，不打开摄像头")
    parser.add_argument("--events-out", type=str, default=None, help="将状态事件追加写入 JSON Lines 文件")
    parser.add_argument("--camera", type=int, default=0, help="摄像头编号")
    parser.add_argument("--no-display", action="store_true", help="不显示视频窗口")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_threshold_config(args.config)
    except ValueError as e:
        logger.error("阈值配置无效: %s", e)
        return 2

    sinks = []
    if args.events_out:
        sinks.append(JsonLinesStatusSink(args.events_out))

    session = MonitoringSession(config=config, sinks=sinks)

    if args.replay:
        try:
            session.replay(args.replay)
        finally:
            session.stop()
        return 0

    session.run(camera_index=args.camera, display=not args.no_display)
    return 0


if __name__ == "__main__":
    sys.exit(main())
