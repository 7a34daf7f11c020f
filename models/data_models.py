"""核心数据模型定义"""

import math
import time
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Dict, List, Optional, Tuple


class AttentionState(str, Enum):
    """参与者注意力状态，值即为推送给监控端的字符串"""
    ATTENTIVE = "attentive"
    LOOKING_AWAY = "looking_away"
    DROWSY = "drowsy"
    NO_FACE = "no_face"


# 每个状态固定的置信度（策略常量，不是计算出的概率）
STATE_CONFIDENCE = {
    AttentionState.DROWSY: 0.95,
    AttentionState.LOOKING_AWAY: 0.90,
    AttentionState.ATTENTIVE: 0.95,
    AttentionState.NO_FACE: 0.80,
}


@dataclass
class FaceLandmarks:
    """人脸关键点检测结果（像素坐标）"""
    left_eye: List[Tuple[float, float]]
    right_eye: List[Tuple[float, float]]
    head_pose_points: Dict[str, Tuple[float, float]]
    all_landmarks: List[Tuple[float, float]]


@dataclass(frozen=True)
class FeatureSample:
    """一次特征观测：EAR 与头部偏航/俯仰角"""
    eye_aspect_ratio: float
    head_yaw_degrees: float
    head_pitch_degrees: float
    timestamp: float = field(default_factory=time.time)

    def is_finite(self) -> bool:
        """三个测量值均为有限数时返回 True"""
        return all(
            math.isfinite(v)
            for v in (self.eye_aspect_ratio, self.head_yaw_degrees, self.head_pitch_degrees)
        )

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> Optional["FeatureSample"]:
        """
        解析特征提取端的消息格式。

        格式: {"eye_aspect_ratio": float, "head_pose": {"yaw": float, "pitch": float},
               "timestamp": 毫秒}
        None、空字典或 {"no_face": true} 表示本周期未检测到人脸。

        Raises:
            ValueError: 结构不合法或字段不是数值
        """
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise ValueError(f"特征消息必须是对象: {payload!r}")
        if not payload or payload.get("no_face"):
            return None

        head_pose = payload.get("head_pose")
        if not isinstance(head_pose, dict):
            raise ValueError("特征消息缺少 head_pose")

        try:
            ear = _as_float(payload["eye_aspect_ratio"])
            yaw = _as_float(head_pose["yaw"])
            pitch = _as_float(head_pose["pitch"])
        except KeyError as e:
            raise ValueError(f"特征消息缺少字段: {e.args[0]}") from None

        timestamp_ms = payload.get("timestamp")
        if timestamp_ms is None:
            timestamp = time.time()
        else:
            timestamp = _as_float(timestamp_ms) / 1000.0

        return cls(
            eye_aspect_ratio=ear,
            head_yaw_degrees=yaw,
            head_pitch_degrees=pitch,
            timestamp=timestamp,
        )


def payload_timestamp(payload) -> Optional[float]:
    """取消息自带的毫秒时间戳并换算为秒；缺失或不是数值时返回 None"""
    if not isinstance(payload, dict):
        return None
    value = payload.get("timestamp")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value / 1000.0


def _as_float(value) -> float:
    # bool 是 int 的子类，需要单独排除
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"不是数值: {value!r}")
    return float(value)


@dataclass(frozen=True)
class ThresholdConfig:
    """分类器调参参数，构造时校验，之后不可变"""
    eye_closed_threshold: float = 0.12
    eye_open_threshold: float = 0.18
    drowsy_frame_count: int = 9
    yaw_extreme_degrees: float = 50.0
    yaw_moderate_degrees: float = 30.0
    pitch_down_degrees: float = 20.0
    pitch_up_degrees: float = 20.0
    looking_away_frame_count: int = 9
    attentive_frame_count: int = 6

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{f.name} 必须是数值: {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"{f.name} 必须是有限数: {value!r}")
            if value < 0:
                raise ValueError(f"{f.name} 不能为负数: {value!r}")

        for name in ("drowsy_frame_count", "looking_away_frame_count", "attentive_frame_count"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} 必须是 >= 1 的整数: {value!r}")

        if self.eye_open_threshold <= self.eye_closed_threshold:
            raise ValueError(
                f"eye_open_threshold ({self.eye_open_threshold}) 必须大于 "
                f"eye_closed_threshold ({self.eye_closed_threshold})"
            )
        if self.yaw_moderate_degrees > self.yaw_extreme_degrees:
            raise ValueError(
                f"yaw_moderate_degrees ({self.yaw_moderate_degrees}) 不能大于 "
                f"yaw_extreme_degrees ({self.yaw_extreme_degrees})"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ThresholdConfig":
        """从部分字段构建配置，缺失或为 None 的字段使用默认值，未知字段忽略。"""
        if not isinstance(data, dict):
            raise ValueError(f"配置必须是对象: {data!r}")
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StreakCounters:
    """三个独立的连续帧计数器"""
    eye_closed_streak: int = 0
    looking_away_streak: int = 0
    attentive_streak: int = 0

    def reset(self):
        self.eye_closed_streak = 0
        self.looking_away_streak = 0
        self.attentive_streak = 0


@dataclass(frozen=True)
class StatusEvent:
    """状态变化事件，仅在提交状态改变时产生"""
    status: AttentionState
    confidence: float
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "timestamp": int(round(self.timestamp * 1000)),
        }

    def to_message(self) -> dict:
        """推送到监控通道的消息封装"""
        return {"type": "attention_update", "data": self.to_dict()}


@dataclass
class CalibrationResult:
    """阈值校准结果"""
    eye_closed_threshold: float
    eye_open_threshold: float
    accuracy: float
    recall: float
    ear_distribution: dict
