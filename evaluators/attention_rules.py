"""注意力判定规则链，按固定优先级依次评估"""

from dataclasses import dataclass
from typing import List, Optional

from models.data_models import AttentionState, FeatureSample, StreakCounters, ThresholdConfig


@dataclass(frozen=True)
class RuleVerdict:
    """规则结论。candidate 为 None 表示维持当前已提交状态（仍在去抖窗口内）。"""
    candidate: Optional[AttentionState]


# 停止评估后续规则，维持当前状态
HOLD = RuleVerdict(candidate=None)


class AttentionRule:
    """
    规则基类。

    evaluate() 返回:
        None          无意见，继续评估下一条规则
        HOLD          停止评估，候选状态等于当前状态
        RuleVerdict   停止评估，给出候选状态
    """

    name = "rule"

    def evaluate(
        self,
        sample: FeatureSample,
        counters: StreakCounters,
        config: ThresholdConfig,
    ) -> Optional[RuleVerdict]:
        raise NotImplementedError


class DrowsinessRule(AttentionRule):
    """闭眼检测（最高优先级），EAR 使用双阈值滞回区间"""

    name = "drowsiness"

    def evaluate(self, sample, counters, config):
        ear = sample.eye_aspect_ratio

        if ear < config.eye_closed_threshold:
            counters.eye_closed_streak += 1
            counters.looking_away_streak = 0
            counters.attentive_streak = 0
            if counters.eye_closed_streak >= config.drowsy_frame_count:
                return RuleVerdict(AttentionState.DROWSY)
            return HOLD

        if ear > config.eye_open_threshold:
            counters.eye_closed_streak = 0
        # 两个阈值之间为死区：计数既不增加也不清零
        return None


class LookingAwayRule(AttentionRule):
    """头部偏转检测：大角度偏航，或中等偏航同时抬头/低头"""

    name = "looking_away"

    @staticmethod
    def is_looking_away(sample: FeatureSample, config: ThresholdConfig) -> bool:
        abs_yaw = abs(sample.head_yaw_degrees)
        abs_pitch = abs(sample.head_pitch_degrees)

        is_extreme = abs_yaw > config.yaw_extreme_degrees
        # 抬头和低头共用 pitch_down_degrees
        is_moderate_and_tilted = (
            abs_yaw > config.yaw_moderate_degrees and abs_pitch > config.pitch_down_degrees
        )
        return is_extreme or is_moderate_and_tilted

    def evaluate(self, sample, counters, config):
        if not self.is_looking_away(sample, config):
            counters.looking_away_streak = 0
            return None

        counters.looking_away_streak += 1
        counters.attentive_streak = 0
        if counters.looking_away_streak >= config.looking_away_frame_count:
            return RuleVerdict(AttentionState.LOOKING_AWAY)
        return HOLD


class AttentiveRule(AttentionRule):
    """闭眼和偏转计数都为 0 时累计专注帧"""

    name = "attentive"

    def evaluate(self, sample, counters, config):
        if counters.eye_closed_streak != 0 or counters.looking_away_streak != 0:
            return None

        counters.attentive_streak += 1
        if counters.attentive_streak >= config.attentive_frame_count:
            return RuleVerdict(AttentionState.ATTENTIVE)
        return HOLD


def default_rules() -> List[AttentionRule]:
    """默认规则链：闭眼 > 偏转 > 专注"""
    return [DrowsinessRule(), LookingAwayRule(), AttentiveRule()]
