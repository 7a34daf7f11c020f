"""界面渲染模块 - 在视频帧上绘制关键点、特征数值和注意力状态。"""

from typing import Optional

import cv2
import numpy as np

from models.data_models import AttentionState, FaceLandmarks, FeatureSample, StreakCounters
from sinks.status_sinks import status_color, status_label


def format_value(v: float) -> str:
    """格式化浮点数为两位小数字符串。"""
    return f"{v:.2f}"


class DisplayRenderer:
    """在视频帧上绘制检测结果和当前注意力状态。"""

    _TEXT_COLOR = (0, 255, 0)
    _COUNTER_COLOR = (255, 255, 0)
    _BAR_HEIGHT = 40

    def render(
        self,
        frame: np.ndarray,
        landmarks: Optional[FaceLandmarks],
        sample: Optional[FeatureSample],
        state: Optional[AttentionState],
        counters: StreakCounters,
    ) -> np.ndarray:
        """渲染检测结果到视频帧，返回渲染后的帧图像。"""
        output = frame.copy()

        if landmarks is not None:
            self._draw_landmarks(output, landmarks)

        self._draw_features(output, sample)
        self._draw_counters(output, counters)
        self._draw_status_bar(output, state)

        return output

    @staticmethod
    def _draw_landmarks(frame: np.ndarray, landmarks: FaceLandmarks) -> None:
        """绘制人脸关键点（绿色小圆点）。"""
        for x, y in landmarks.all_landmarks:
            cv2.circle(frame, (int(x), int(y)), 1, (0, 255, 0), -1)

    def _draw_features(self, frame: np.ndarray, sample: Optional[FeatureSample]) -> None:
        """在左上角绘制 EAR、偏航角、俯仰角。"""
        if sample is None:
            lines = ["EAR: --", "Yaw: --", "Pitch: --"]
        else:
            lines = [
                f"EAR: {format_value(sample.eye_aspect_ratio)}",
                f"Yaw: {sample.head_yaw_degrees:.1f}",
                f"Pitch: {sample.head_pitch_degrees:.1f}",
            ]
        y = 30
        for text in lines:
            cv2.putText(
                frame, text, (10, y),
                cv2.FONT_HERSHEY_SIMPLEX, 0.7, self._TEXT_COLOR, 2,
            )
            y += 30

    def _draw_counters(self, frame: np.ndarray, counters: StreakCounters) -> None:
        """在右上角绘制三个连续帧计数。"""
        w = frame.shape[1]
        lines = [
            f"Closed: {counters.eye_closed_streak}",
            f"Away: {counters.looking_away_streak}",
            f"Attn: {counters.attentive_streak}",
        ]
        y = 30
        for text in lines:
            cv2.putText(
                frame, text, (w - 160, y),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, self._COUNTER_COLOR, 2,
            )
            y += 25

    def _draw_status_bar(self, frame: np.ndarray, state: Optional[AttentionState]) -> None:
        """在底部绘制状态色条和状态文字。"""
        h, w = frame.shape[:2]
        top = max(0, h - self._BAR_HEIGHT)
        cv2.rectangle(frame, (0, top), (w, h), status_color(state), -1)
        cv2.putText(
            frame, status_label(state).upper(), (10, h - 12),
            cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2,
        )
