"""特征提取模块：从人脸关键点几何计算 EAR 与头部偏航/俯仰角"""

import math
import time
from typing import List, Optional, Tuple

from models.data_models import FaceLandmarks, FeatureSample

# 几何偏移到角度的经验缩放系数
YAW_SCALE_DEGREES = 180.0
PITCH_SCALE_DEGREES = 120.0
EYE_ASYMMETRY_SCALE = 100.0


def calculate_ear(eye_points: List[Tuple[float, float]]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值，分母为零时返回 0.0
    """
    p1, p2, p3, p4, p5, p6 = eye_points

    vertical_1 = math.dist(p2, p6)
    vertical_2 = math.dist(p3, p5)
    horizontal = math.dist(p1, p4)

    if horizontal == 0.0:
        return 0.0

    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def estimate_head_pose(points: dict) -> Tuple[float, float]:
    """
    用面部几何关系估计头部偏航角和俯仰角（度）。

    偏航: 鼻尖相对双眼外角中点的水平偏移 / 双眼间距；
          侧脸时双眼宽度不对称更可靠，取两者中绝对值较大者。
    俯仰: 鼻尖相对双眼外角中点的垂直偏移 / 额头到下巴的距离。

    Returns:
        (yaw, pitch)，几何退化时对应角度为 0.0
    """
    nose = points["nose_tip"]
    left_outer = points["left_eye_outer"]
    right_outer = points["right_eye_outer"]

    center_x = (left_outer[0] + right_outer[0]) / 2.0
    center_y = (left_outer[1] + right_outer[1]) / 2.0

    face_width = math.dist(left_outer, right_outer)
    yaw = 0.0
    if face_width > 0.0:
        yaw = (nose[0] - center_x) / face_width * YAW_SCALE_DEGREES

    left_width = math.dist(left_outer, points["left_eye_inner"])
    right_width = math.dist(points["right_eye_inner"], right_outer)
    yaw_from_eyes = (right_width / (left_width + 0.001) - 1.0) * EYE_ASYMMETRY_SCALE
    if abs(yaw_from_eyes) > abs(yaw):
        yaw = yaw_from_eyes

    face_height = math.dist(points["forehead"], points["chin"])
    pitch = 0.0
    if face_height > 0.0:
        pitch = (nose[1] - center_y) / face_height * PITCH_SCALE_DEGREES

    return yaw, pitch


class FeatureExtractor:
    """将 FaceLandmarks 转换为分类器使用的 FeatureSample"""

    def extract(
        self,
        landmarks: FaceLandmarks,
        timestamp: Optional[float] = None,
    ) -> FeatureSample:
        left_ear = calculate_ear(landmarks.left_eye)
        right_ear = calculate_ear(landmarks.right_eye)
        yaw, pitch = estimate_head_pose(landmarks.head_pose_points)

        return FeatureSample(
            eye_aspect_ratio=(left_ear + right_ear) / 2.0,
            head_yaw_degrees=yaw,
            head_pitch_degrees=pitch,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
