"""FeatureExtractor 单元测试"""

import pytest

from detectors.feature_extractor import FeatureExtractor, calculate_ear, estimate_head_pose
from models.data_models import FaceLandmarks, FeatureSample


def _eye(cx, cy, width=30.0, height=10.0):
    """生成 6 点眼睛轮廓，EAR = height / width"""
    half_w = width / 2
    half_h = height / 2
    return [
        (cx - half_w, cy),
        (cx - half_w / 3, cy - half_h),
        (cx + half_w / 3, cy - half_h),
        (cx + half_w, cy),
        (cx + half_w / 3, cy + half_h),
        (cx - half_w / 3, cy + half_h),
    ]


def _pose_points(nose_dx=0.0, nose_dy=0.0):
    """正面人脸：双眼外角 (200,200)/(400,200)，额头到下巴 300 像素"""
    return {
        "nose_tip": (300.0 + nose_dx, 200.0 + nose_dy),
        "left_eye_outer": (200.0, 200.0),
        "left_eye_inner": (260.0, 200.0),
        "right_eye_inner": (340.0, 200.0),
        "right_eye_outer": (400.0, 200.0),
        "chin": (300.0, 400.0),
        "forehead": (300.0, 100.0),
    }


class TestCalculateEar:
    def test_open_eye(self):
        assert calculate_ear(_eye(0, 0, width=30, height=9)) == pytest.approx(0.3)

    def test_closed_eye(self):
        assert calculate_ear(_eye(0, 0, width=30, height=0)) == pytest.approx(0.0)

    def test_zero_width_returns_zero(self):
        assert calculate_ear([(1.0, 1.0)] * 6) == 0.0


class TestEstimateHeadPose:
    def test_frontal_face(self):
        yaw, pitch = estimate_head_pose(_pose_points())
        assert yaw == pytest.approx(0.0, abs=0.1)
        assert pitch == pytest.approx(0.0)

    def test_nose_offset_gives_yaw(self):
        # 偏移 20 像素 / 眼距 200 像素 * 180 = 18 度
        yaw, _ = estimate_head_pose(_pose_points(nose_dx=20.0))
        assert yaw == pytest.approx(18.0, abs=0.1)

    def test_nose_below_eyes_gives_positive_pitch(self):
        # 下移 50 像素 / 脸高 300 像素 * 120 = 20 度
        _, pitch = estimate_head_pose(_pose_points(nose_dy=50.0))
        assert pitch == pytest.approx(20.0)

    def test_eye_asymmetry_wins_when_stronger(self):
        points = _pose_points()
        # 右眼宽度 30，左眼宽度 60 → (0.5 - 1) * 100 ≈ -50
        points["right_eye_inner"] = (370.0, 200.0)
        yaw, _ = estimate_head_pose(points)
        assert yaw == pytest.approx(-50.0, abs=0.1)

    def test_degenerate_face(self):
        points = {key: (10.0, 10.0) for key in _pose_points()}
        yaw, pitch = estimate_head_pose(points)
        assert yaw == pytest.approx(-100.0)
        assert pitch == 0.0


class TestFeatureExtractor:
    def test_extract(self):
        landmarks = FaceLandmarks(
            left_eye=_eye(230, 200, width=60, height=12),
            right_eye=_eye(370, 200, width=60, height=18),
            head_pose_points=_pose_points(nose_dy=50.0),
            all_landmarks=[],
        )
        sample = FeatureExtractor().extract(landmarks, timestamp=12.5)
        assert isinstance(sample, FeatureSample)
        assert sample.eye_aspect_ratio == pytest.approx(0.25)
        assert sample.head_pitch_degrees == pytest.approx(20.0)
        assert sample.timestamp == 12.5

    def test_extract_default_timestamp(self):
        landmarks = FaceLandmarks(
            left_eye=_eye(230, 200), right_eye=_eye(370, 200),
            head_pose_points=_pose_points(), all_landmarks=[],
        )
        assert FeatureExtractor().extract(landmarks).timestamp > 0
