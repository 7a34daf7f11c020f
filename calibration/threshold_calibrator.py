"""阈值校准模块，利用标注数据统计分析优化睁眼/闭眼 EAR 阈值"""

import argparse
import json
import logging
import math
import os
from datetime import datetime
from typing import List, Optional, Tuple

import cv2
import numpy as np
from sklearn.metrics import accuracy_score, recall_score, roc_curve

from detectors.face_detector import FaceDetector
from detectors.feature_extractor import FeatureExtractor
from models.data_models import CalibrationResult, ThresholdConfig

logger = logging.getLogger(__name__)

# 标注 → 类别
_LABELS = {"open": "normal", "closed": "closed"}

DEFAULT_HYSTERESIS_MARGIN = 0.06


def compute_stats(values: list) -> dict:
    """
    计算一组数值的统计信息。

    Args:
        values: 非空浮点数列表

    Returns:
        {"mean": float, "std": float, "min": float, "max": float}
    """
    n = len(values)
    mean = sum(values) / n
    std = math.sqrt(sum((x - mean) ** 2 for x in values) / n)
    return {
        "mean": mean,
        "std": std,
        "min": min(values),
        "max": max(values),
    }


class ThresholdCalibrator:
    """加载标注 EAR 数据，统计分布，通过 ROC 分析输出闭眼阈值和滞回上限"""

    def __init__(self):
        self._ear_data: List[Tuple[float, str]] = []  # (ear_value, label)
        self._source: str = ""
        self._calibration_result: Optional[CalibrationResult] = None

    def load_recording(self, path: str) -> None:
        """
        加载 JSON Lines 标注记录，每行 {"eye_aspect_ratio": float, "label": "open"|"closed"}。

        无法解析或标注未知的行会被跳过并记录警告。
        """
        if not os.path.isfile(path):
            raise ValueError(f"记录文件无效: {path}")

        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    ear = float(record["eye_aspect_ratio"])
                    label = _LABELS[record["label"]]
                except (ValueError, KeyError, TypeError):
                    logger.warning("跳过无效记录 %s:%d", path, line_no)
                    continue
                if math.isfinite(ear):
                    self._ear_data.append((ear, label))

        self._source = os.path.basename(path)
        logger.info("记录加载完成: EAR 样本 %d 条", len(self._ear_data))

    def load_dataset(self, dataset_path: str, face_detector: Optional[FaceDetector] = None) -> None:
        """
        加载图像数据集（open/closed 子目录）并提取 EAR 值。

        Args:
            dataset_path: 数据集根目录路径
            face_detector: 可注入的检测器，缺省时以静态图像模式创建
        """
        if not os.path.isdir(dataset_path):
            raise ValueError(f"数据集路径无效: {dataset_path}")

        owns_detector = face_detector is None
        if owns_detector:
            face_detector = FaceDetector(static_image_mode=True)
        extractor = FeatureExtractor()

        try:
            for subdir, label in _LABELS.items():
                dir_path = os.path.join(dataset_path, subdir)
                if not os.path.isdir(dir_path):
                    logger.warning("子目录不存在: %s", dir_path)
                    continue
                self._process_images(dir_path, label, face_detector, extractor)
        finally:
            if owns_detector:
                face_detector.close()

        self._source = os.path.basename(os.path.normpath(dataset_path))
        logger.info("数据集加载完成: EAR 样本 %d 条", len(self._ear_data))

    def _process_images(self, dir_path, label, face_detector, extractor) -> None:
        for filename in sorted(os.listdir(dir_path)):
            filepath = os.path.join(dir_path, filename)
            image = cv2.imread(filepath)
            if image is None:
                logger.warning("无法读取图像: %s", filepath)
                continue
            landmarks = face_detector.detect(image)
            if landmarks is None:
                continue
            sample = extractor.extract(landmarks, timestamp=0.0)
            self._ear_data.append((sample.eye_aspect_ratio, label))

    def compute_statistics(self) -> dict:
        """
        计算各类别的 EAR 分布统计。

        Returns:
            {"normal": {mean, std, min, max}, "closed": {...}}
        """
        groups = {}  # type: dict
        for value, label in self._ear_data:
            groups.setdefault(label, []).append(value)
        return {label: compute_stats(values) for label, values in groups.items()}

    def optimize_thresholds(
        self,
        hysteresis_margin: float = DEFAULT_HYSTERESIS_MARGIN,
    ) -> CalibrationResult:
        """
        基于 ROC 曲线分析输出最优闭眼阈值。

        使用 Youden's J statistic (max(tpr - fpr)) 确定闭眼阈值，
        睁眼阈值 = 闭眼阈值 + hysteresis_margin。
        数据缺失或只有单一类别时返回默认阈值。
        """
        if hysteresis_margin <= 0:
            raise ValueError(f"hysteresis_margin 必须为正数: {hysteresis_margin}")

        defaults = ThresholdConfig()
        closed_threshold = defaults.eye_closed_threshold
        open_threshold = defaults.eye_open_threshold
        acc, rec = 0.0, 0.0

        if self._ear_data:
            ear_values = np.array([v for v, _ in self._ear_data])
            # 闭眼时 EAR 低，用 -EAR 作为 score
            ear_scores = -ear_values
            ear_labels = np.array([1 if lab == "closed" else 0 for _, lab in self._ear_data])

            if len(np.unique(ear_labels)) == 2:
                fpr, tpr, thresholds = roc_curve(ear_labels, ear_scores)
                j_scores = tpr - fpr
                best_idx = np.argmax(j_scores)
                # roc_curve 的首个阈值是 inf，对应不判定任何正类
                boundary = float(-thresholds[max(best_idx, 1)])
                # 分类器按 "<" 判定闭眼，取边界与下一个更大 EAR 的中点
                above = ear_values[ear_values > boundary]
                closed_threshold = (boundary + float(above.min())) / 2.0 if above.size else boundary
                preds = (ear_values < closed_threshold).astype(int)
                acc = float(accuracy_score(ear_labels, preds))
                rec = float(recall_score(ear_labels, preds))
                open_threshold = closed_threshold + hysteresis_margin

        self._calibration_result = CalibrationResult(
            eye_closed_threshold=round(closed_threshold, 4),
            eye_open_threshold=round(open_threshold, 4),
            accuracy=acc,
            recall=rec,
            ear_distribution=self.compute_statistics(),
        )
        return self._calibration_result

    def export_config(self, output_path: str, base: Optional[ThresholdConfig] = None) -> ThresholdConfig:
        """
        导出 JSON 配置文件，非 EAR 参数沿用 base。

        Returns:
            导出的 ThresholdConfig
        """
        if self._calibration_result is None:
            self.optimize_thresholds()

        result = self._calibration_result
        data = (base or ThresholdConfig()).to_dict()
        data["eye_closed_threshold"] = result.eye_closed_threshold
        data["eye_open_threshold"] = result.eye_open_threshold
        # 校验组合后的配置
        config = ThresholdConfig.from_dict(data)

        data["calibration_info"] = {
            "accuracy": result.accuracy,
            "recall": result.recall,
            "ear_distribution": result.ear_distribution,
            "calibrated_at": datetime.now().isoformat(),
            "source": self._source,
        }

        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4, ensure_ascii=False)

        logger.info("配置文件已导出: %s", output_path)
        return config


def main(argv=None):
    parser = argparse.ArgumentParser(description="EAR 阈值校准")
    parser.add_argument("source", help="JSON Lines 标注记录文件或 open/closed 图像数据集目录")
    parser.add_argument("--output", default="config/thresholds.json", help="输出配置文件路径")
    parser.add_argument("--margin", type=float, default=DEFAULT_HYSTERESIS_MARGIN, help="滞回区间宽度")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    calibrator = ThresholdCalibrator()
    if os.path.isdir(args.source):
        calibrator.load_dataset(args.source)
    else:
        calibrator.load_recording(args.source)

    result = calibrator.optimize_thresholds(hysteresis_margin=args.margin)
    logger.info(
        "闭眼阈值 %.4f，睁眼阈值 %.4f，准确率 %.3f，召回率 %.3f",
        result.eye_closed_threshold, result.eye_open_threshold, result.accuracy, result.recall,
    )
    calibrator.export_config(args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
