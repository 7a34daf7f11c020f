"""注意力规则链单元测试：每条规则单独验证"""

import pytest

from evaluators.attention_rules import (
    HOLD,
    AttentiveRule,
    DrowsinessRule,
    LookingAwayRule,
    RuleVerdict,
    default_rules,
)
from models.data_models import AttentionState, FeatureSample, StreakCounters, ThresholdConfig


@pytest.fixture
def config():
    return ThresholdConfig(drowsy_frame_count=3, looking_away_frame_count=2, attentive_frame_count=2)


def _sample(ear=0.30, yaw=0.0, pitch=0.0):
    return FeatureSample(eye_aspect_ratio=ear, head_yaw_degrees=yaw, head_pitch_degrees=pitch, timestamp=0.0)


class TestDefaultRules:
    def test_priority_order(self):
        assert [type(r) for r in default_rules()] == [DrowsinessRule, LookingAwayRule, AttentiveRule]

    def test_fresh_instances(self):
        assert default_rules()[0] is not default_rules()[0]


class TestDrowsinessRule:
    def test_closed_holds_until_count(self, config):
        rule = DrowsinessRule()
        counters = StreakCounters(looking_away_streak=4, attentive_streak=2)
        assert rule.evaluate(_sample(ear=0.05), counters, config) is HOLD
        assert counters == StreakCounters(eye_closed_streak=1)
        assert rule.evaluate(_sample(ear=0.05), counters, config) is HOLD
        assert rule.evaluate(_sample(ear=0.05), counters, config) == RuleVerdict(AttentionState.DROWSY)

    def test_open_resets_and_passes(self, config):
        counters = StreakCounters(eye_closed_streak=2, attentive_streak=1)
        assert DrowsinessRule().evaluate(_sample(ear=0.25), counters, config) is None
        assert counters == StreakCounters(attentive_streak=1)

    def test_dead_zone_passes_untouched(self, config):
        counters = StreakCounters(eye_closed_streak=2, looking_away_streak=1, attentive_streak=0)
        assert DrowsinessRule().evaluate(_sample(ear=0.15), counters, config) is None
        assert counters == StreakCounters(eye_closed_streak=2, looking_away_streak=1)


class TestLookingAwayRule:
    @pytest.mark.parametrize(
        "yaw, pitch, expected",
        [
            (0.0, 0.0, False),
            (50.0, 0.0, False),
            (50.1, 0.0, True),
            (-55.0, 0.0, True),
            (35.0, 19.0, False),
            (35.0, 21.0, True),
            (35.0, -21.0, True),
            (30.0, 40.0, False),
            (-31.0, -40.0, True),
        ],
    )
    def test_is_looking_away(self, config, yaw, pitch, expected):
        assert LookingAwayRule.is_looking_away(_sample(yaw=yaw, pitch=pitch), config) is expected

    def test_pitch_up_limit_does_not_change_tilt(self):
        # 俯仰只按绝对值与 pitch_down_degrees 比较
        config = ThresholdConfig(pitch_down_degrees=20.0, pitch_up_degrees=35.0)
        assert LookingAwayRule.is_looking_away(_sample(yaw=40.0, pitch=25.0), config)
        assert LookingAwayRule.is_looking_away(_sample(yaw=40.0, pitch=-25.0), config)
        assert not LookingAwayRule.is_looking_away(_sample(yaw=40.0, pitch=-19.0), config)

    def test_streak_and_verdict(self, config):
        rule = LookingAwayRule()
        counters = StreakCounters(attentive_streak=3)
        assert rule.evaluate(_sample(yaw=70.0), counters, config) is HOLD
        assert counters == StreakCounters(looking_away_streak=1)
        assert rule.evaluate(_sample(yaw=70.0), counters, config) == RuleVerdict(AttentionState.LOOKING_AWAY)

    def test_forward_resets(self, config):
        counters = StreakCounters(looking_away_streak=1, attentive_streak=1)
        assert LookingAwayRule().evaluate(_sample(), counters, config) is None
        assert counters == StreakCounters(attentive_streak=1)


class TestAttentiveRule:
    def test_counts_when_clean(self, config):
        rule = AttentiveRule()
        counters = StreakCounters()
        assert rule.evaluate(_sample(), counters, config) is HOLD
        assert rule.evaluate(_sample(), counters, config) == RuleVerdict(AttentionState.ATTENTIVE)
        assert counters.attentive_streak == 2

    @pytest.mark.parametrize(
        "counters",
        [StreakCounters(eye_closed_streak=1), StreakCounters(looking_away_streak=1)],
    )
    def test_no_opinion_when_disqualified(self, config, counters):
        assert AttentiveRule().evaluate(_sample(), counters, config) is None
        assert counters.attentive_streak == 0
