"""人脸关键点检测模块，基于 MediaPipe FaceMesh"""

from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import FaceLandmarks

# 关键点索引常量
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]

HEAD_POSE_INDICES = {
    "nose_tip": 1,
    "left_eye_outer": 33,
    "left_eye_inner": 133,
    "right_eye_inner": 362,
    "right_eye_outer": 263,
    "chin": 152,
    "forehead": 10,
}


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测单个人脸的关键点"""

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        static_image_mode: bool = False,
        face_mesh=None,
    ):
        """初始化 MediaPipe FaceMesh；face_mesh 可注入已构建的实例"""
        if face_mesh is None:
            face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=static_image_mode,
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
        self._face_mesh = face_mesh

    def detect(self, frame: np.ndarray) -> Optional[FaceLandmarks]:
        """
        检测单帧图像中的人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧

        Returns:
            FaceLandmarks 对象；未检测到人脸时返回 None
        """
        h, w = frame.shape[:2]

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        results = self._face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return None

        face = results.multi_face_landmarks[0]

        # 将归一化坐标转换为像素坐标
        all_landmarks = [
            (lm.x * w, lm.y * h) for lm in face.landmark
        ]

        left_eye = [all_landmarks[i] for i in LEFT_EYE_INDICES]
        right_eye = [all_landmarks[i] for i in RIGHT_EYE_INDICES]
        head_pose_points = {
            key: all_landmarks[idx] for key, idx in HEAD_POSE_INDICES.items()
        }

        return FaceLandmarks(
            left_eye=left_eye,
            right_eye=right_eye,
            head_pose_points=head_pose_points,
            all_landmarks=all_landmarks,
        )

    def close(self):
        """释放 MediaPipe 资源"""
        self._face_mesh.close()
