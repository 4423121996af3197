"""
Tests for the TrainingEpisode model.

Run with: pytest src/correlator/training/model_test.py -v
"""

import pytest

from correlator.errors import ValidationError
from correlator.training import TrainingEpisode


def make_episode(**overrides) -> TrainingEpisode:
    state = {
        "source_dataset_id": "A",
        "target_dataset_id": "B",
        "available_signatures": ["s1", "s2"],
        "proposed_correlations": [{"type": "temporal"}],
    }
    data = {
        "episode_id": "ep-1",
        "step_number": 1,
        "state": state,
        "action": {"correlation_type": "temporal", "method": "mcts", "parameters": {"lag": 1}},
        "next_state": state,
        "reward": 1.0,
    }
    return TrainingEpisode.new({**data, **overrides})


class TestRules:
    """Tests for TrainingEpisode.check_rules()"""

    def test_done_at_step_zero(self):
        with pytest.raises(ValidationError) as exc_info:
            make_episode(step_number=0, done=True).validate()

        assert exc_info.value.fields == {"done"}

    def test_done_later_is_fine(self):
        assert make_episode(step_number=4, done=True).validate().done is True

    def test_required_records(self):
        with pytest.raises(ValidationError) as exc_info:
            TrainingEpisode.new(episode_id="ep-1").validate()

        assert exc_info.value.fields == {"state", "action", "next_state"}

    def test_experience_type(self):
        with pytest.raises(ValidationError):
            make_episode(experience_type="replay").validate()


class TestDerived:
    """Tests for TrainingEpisode derived values"""

    @pytest.mark.parametrize(
        "correlation_type,parameters,expected",
        [
            ("temporal", {}, 1),
            ("temporal", {"lag": 1, "window": 7}, 3),
            ("weighted_many_to_many", {"w": 1}, 4),
        ],
    )
    def test_action_complexity(self, correlation_type, parameters, expected):
        episode = make_episode(
            action={"correlation_type": correlation_type, "method": "mcts", "parameters": parameters}
        )

        assert episode.action_complexity() == expected

    def test_state_complexity(self):
        assert make_episode().state_complexity() == pytest.approx(2 * 0.3 + 0.5)

    def test_td_target(self):
        episode = make_episode(reward=1.0)
        following = make_episode(step_number=2, metrics={"episode_reward": 2.0})
        terminal = make_episode(step_number=2, done=True, metrics={"episode_reward": 2.0})

        assert episode.td_target() == 1.0
        assert episode.td_target(following, gamma=0.5) == 2.0
        assert episode.td_target(terminal) == 1.0
        assert episode.advantage(0.25, following, gamma=0.5) == 1.75

    def test_to_public(self):
        public = make_episode(experience_type="exploitation").to_public()

        assert public["is_exploitation"] is True
        assert public["is_terminal"] is False
        assert public["state"]["available_signatures"] == ["s1", "s2"]

    def test_to_public_before_validation(self):
        public = TrainingEpisode.new(episode_id="ep-1").to_public()

        assert public["action_complexity"] == 0
        assert public["state_complexity"] == 0.0
        assert public["action"] is None


class TestMutators:
    """Tests for TrainingEpisode mutators"""

    def test_update_priority_floor(self):
        assert make_episode().update_priority(-3).priority == 0.0

    def test_update_reward(self):
        assert make_episode().update_reward(-0.5).reward == -0.5

    def test_update_metrics_ignores_unknown(self):
        episode = make_episode().update_metrics({"success_rate": 0.4, "bogus": 1})

        assert episode.metrics.success_rate == 0.4
        assert not hasattr(episode.metrics, "bogus")
        episode.validate()
