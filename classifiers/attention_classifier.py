"""注意力状态分类模块：滞回 + 去抖状态机，只在状态真正变化时输出事件"""

import logging
import time
from dataclasses import replace
from typing import List, Optional

from evaluators.attention_rules import AttentionRule, default_rules
from models.data_models import (
    STATE_CONFIDENCE,
    AttentionState,
    FeatureSample,
    StatusEvent,
    StreakCounters,
    ThresholdConfig,
)

logger = logging.getLogger(__name__)


class AttentionClassifier:
    """
    单个参与者的注意力状态机。

    每次 ingest() 输入一帧特征（或 None 表示未检测到人脸），
    按规则链得出候选状态，与已提交状态不同时提交并返回 StatusEvent。
    实例不可在多个参与者之间共享，也不支持并发调用。
    """

    def __init__(
        self,
        config: Optional[ThresholdConfig] = None,
        rules: Optional[List[AttentionRule]] = None,
    ):
        self._config = config if config is not None else ThresholdConfig()
        self._rules = rules if rules is not None else default_rules()
        self._counters = StreakCounters()
        self._state: Optional[AttentionState] = None

    @property
    def config(self) -> ThresholdConfig:
        return self._config

    @property
    def state(self) -> Optional[AttentionState]:
        """当前已提交状态，初始为 None（未设置）"""
        return self._state

    @property
    def counters(self) -> StreakCounters:
        """计数器快照"""
        return replace(self._counters)

    def ingest(
        self,
        sample: Optional[FeatureSample],
        now: Optional[float] = None,
    ) -> Optional[StatusEvent]:
        """
        处理一帧输入。

        Args:
            sample: 特征样本；None 表示本周期未检测到人脸
            now: 无人脸事件的时间戳，缺省为当前时间

        Returns:
            状态变化时返回 StatusEvent，否则返回 None
        """
        if sample is None:
            # 人脸丢失立即上报，不做去抖
            timestamp = now if now is not None else time.time()
            return self._commit(AttentionState.NO_FACE, timestamp)

        if not sample.is_finite():
            logger.debug("忽略非有限特征样本: %s", sample)
            return None

        candidate = self._evaluate(sample)
        if candidate is None:
            return None
        return self._commit(candidate, sample.timestamp)

    def reset(self):
        """清零所有计数器并回到未设置状态，不产生事件"""
        self._counters.reset()
        self._state = None

    def _evaluate(self, sample: FeatureSample) -> Optional[AttentionState]:
        for rule in self._rules:
            verdict = rule.evaluate(sample, self._counters, self._config)
            if verdict is None:
                continue
            if verdict.candidate is None:
                logger.debug("%s 去抖中: %s", rule.name, self._counters)
                return self._state
            return verdict.candidate
        return self._state

    def _commit(self, candidate: AttentionState, timestamp: float) -> Optional[StatusEvent]:
        if candidate == self._state:
            return None

        previous = self._state
        self._state = candidate
        self._clear_other_counters(candidate)

        logger.debug(
            "状态变化: %s -> %s",
            previous.value if previous is not None else "unset",
            candidate.value,
        )
        return StatusEvent(
            status=candidate,
            confidence=STATE_CONFIDENCE[candidate],
            timestamp=timestamp,
        )

    def _clear_other_counters(self, state: AttentionState):
        if state == AttentionState.DROWSY:
            self._counters.looking_away_streak = 0
            self._counters.attentive_streak = 0
        elif state == AttentionState.LOOKING_AWAY:
            self._counters.eye_closed_streak = 0
            self._counters.attentive_streak = 0
        elif state == AttentionState.ATTENTIVE:
            self._counters.eye_closed_streak = 0
            self._counters.looking_away_streak = 0
