"""
Tests for the per-category stopping policy.
"""

from onboarding.stopping import StopReason, should_stop, stop_reason


class TestConfidence:
    """Confidence at or above the target always stops."""

    def test_confident_on_first_question(self):
        assert should_stop(0.9, 1, []) is True

    def test_exactly_at_target(self):
        assert stop_reason(0.85, 1) == StopReason.CONFIDENT

    def test_confidence_wins_over_other_rules(self):
        assert stop_reason(0.95, 12, [0.0, 0.0, 0.0]) == StopReason.CONFIDENT

    def test_custom_target(self):
        assert should_stop(0.7, 1, [], confidence_target=0.6) is True
        assert should_stop(0.7, 1, []) is False


class TestQuestionCap:
    def test_hard_cap_regardless_of_deltas(self):
        assert should_stop(0.2, 10, []) is True
        assert should_stop(0.2, 10, [0.5, 0.5, 0.5]) is True
        assert stop_reason(0.2, 10, [0.5]) == StopReason.QUESTION_CAP

    def test_below_cap_continues(self):
        assert should_stop(0.2, 9, [0.3, 0.3, 0.3]) is False


class TestPlateau:
    """Learning has stalled when recent confidence changes are small."""

    def test_needs_three_deltas(self):
        assert should_stop(0.4, 3, [0.01, 0.01]) is False

    def test_small_changes_stop(self):
        assert stop_reason(0.4, 4, [0.3, 0.05, 0.02, 0.01]) == StopReason.PLATEAU

    def test_uses_absolute_values(self):
        # Mean of raw values is ~0, mean of magnitudes is 0.2
        assert should_stop(0.4, 4, [0.2, -0.2, 0.2]) is False

    def test_only_last_three_count(self):
        assert should_stop(0.4, 5, [0.0, 0.0, 0.0, 0.4, 0.4]) is False

    def test_boundary_is_exclusive(self):
        assert should_stop(0.4, 4, [0.1, 0.1, 0.1]) is False
