from typing import Any, ClassVar, Literal

from pydantic import Field

from correlator.entity import Count, Entity, Identifier, NonNegative, Record, Score
from correlator.errors import Violation


class EpisodeState(Record):
    source_dataset_id: Identifier
    target_dataset_id: Identifier
    available_signatures: list[str] = Field(default_factory=list)
    proposed_correlations: list[dict[str, Any]] = Field(default_factory=list)
    validation_history: list[dict[str, Any]] = Field(default_factory=list)
    current_score: Score = 0.0


class EpisodeAction(Record):
    correlation_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: Score = 0.0
    method: str
    reasoning: str = ""
    computational_cost: NonNegative = 0.0


class DatasetComplexity(Record):
    source: Score = 0.5
    target: Score = 0.5


class EpisodeEnvironment(Record):
    difficulty: Score = 0.5
    complexity: Score = 0.5
    dataset_complexity: DatasetComplexity = Field(default_factory=DatasetComplexity)


class EpisodeMetrics(Record):
    episode_reward: float = 0.0
    episode_length: Count = 0
    success_rate: Score = 0.0
    exploration_rate: Score = 0.0
    validation_accuracy: Score = 0.0
    computation_time: NonNegative = 0.0


class EpisodeMetadata(Record):
    experiment_id: str = ""
    hyperparameters: dict[str, Any] = Field(default_factory=dict)
    seed: int | None = None
    tags: list[str] = Field(default_factory=list)


class TrainingEpisode(Entity):
    """One step of a reinforcement-learning episode over a dataset pair."""

    table_name: ClassVar[str] = "training_episodes"
    json_columns: ClassVar[frozenset[str]] = frozenset(
        {"state", "action", "next_state", "environment", "metrics", "metadata"}
    )
    search_fields: ClassVar[tuple[str, ...]] = ("algorithm",)

    episode_id: Identifier
    step_number: Count = 0
    state: EpisodeState
    action: EpisodeAction
    reward: float = 0.0
    next_state: EpisodeState
    done: bool = False
    priority: NonNegative = 1.0
    generator_model: str = ""
    validator_model: str = ""
    algorithm: Literal["", "mcts", "evolutionary", "neural", "ensemble"] = ""
    environment: EpisodeEnvironment = Field(default_factory=EpisodeEnvironment)
    metrics: EpisodeMetrics = Field(default_factory=EpisodeMetrics)
    metadata: EpisodeMetadata = Field(default_factory=EpisodeMetadata)
    experience_type: Literal["exploration", "exploitation", "training", "evaluation"] = (
        "exploration"
    )

    def check_rules(self) -> list[Violation]:
        if self.done and self.step_number == 0:
            return [Violation("done", "terminal_step", "Episode cannot be done at step 0")]
        return []

    def derived(self) -> dict[str, Any]:
        return {
            "is_terminal": self.done,
            "is_exploration": self.experience_type == "exploration",
            "is_exploitation": self.experience_type == "exploitation",
            "action_complexity": self.action_complexity(),
            "state_complexity": self.state_complexity(),
        }

    def action_complexity(self) -> int:
        if self.action is None:
            return 0
        base = 3 if self.action.correlation_type == "weighted_many_to_many" else 1
        return base + len(self.action.parameters)

    def state_complexity(self) -> float:
        if self.state is None:
            return 0.0
        return (
            len(self.state.available_signatures) * 0.3
            + len(self.state.proposed_correlations) * 0.5
            + len(self.state.validation_history) * 0.2
        )

    def td_target(self, next_step: "TrainingEpisode | None" = None, gamma: float = 0.99) -> float:
        """Temporal-difference target for this step's reward."""
        if next_step is not None and not next_step.done:
            return self.reward + gamma * next_step.metrics.episode_reward
        return self.reward

    def advantage(
        self, value: float, next_step: "TrainingEpisode | None" = None, gamma: float = 0.99
    ) -> float:
        return self.td_target(next_step, gamma) - value

    def update_priority(self, priority: float):
        self.priority = max(0.0, priority)
        return self.touch()

    def update_reward(self, reward: float):
        self.reward = reward
        return self.touch()

    def update_metrics(self, metrics: dict[str, Any]):
        """Overwrite known metric fields; unknown keys are ignored."""
        known = {k: v for k, v in metrics.items() if k in EpisodeMetrics.model_fields}
        self.metrics = self.metrics.model_copy(update=known)
        return self.touch()
