from typing import Any, ClassVar, Literal

from pydantic import Field

from correlator.entity import Count, Entity, Identifier, NonNegative, Record, Score
from correlator.errors import Violation


class Genome(Record):
    correlation_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    transformations: list[dict[str, Any]] = Field(default_factory=list)
    weights: list[float] = Field(default_factory=list)
    activation_functions: list[str] = Field(default_factory=list)
    structure: dict[str, Any] = Field(default_factory=dict)


class MutationInfo(Record):
    type: Literal["point", "insert", "delete", "swap", "crossover", "none"] = "none"
    rate: Score = 0.0
    strength: NonNegative = 0.0
    locations: list[float] = Field(default_factory=list)
    changes: list[dict[str, Any]] = Field(default_factory=list)


class CrossoverInfo(Record):
    type: Literal["single_point", "multi_point", "uniform", "none"] = "none"
    points: list[float] = Field(default_factory=list)
    parent1_contribution: Score = 0.5
    parent2_contribution: Score = 0.5


class EvolutionParameters(Record):
    population_size: int = Field(default=100, ge=1)
    mutation_rate: Score = 0.1
    crossover_rate: Score = 0.8
    tournament_size: int = Field(default=5, ge=1)
    elitism_count: Count = 1
    selection_method: Literal["tournament", "roulette", "rank", "uniform"] = "tournament"


class EvolutionMetadata(Record):
    experiment_id: str = ""
    objective_weights: dict[str, Any] = Field(default_factory=dict)
    constraints: list[dict[str, Any]] = Field(default_factory=list)
    dominance: list[str] = Field(default_factory=list)
    crowding_distance: NonNegative = 0.0
    rank: Count = 0


class EvolutionRecord(Entity):
    """One individual of one generation in an evolutionary search."""

    table_name: ClassVar[str] = "evolution_records"
    json_columns: ClassVar[frozenset[str]] = frozenset(
        {"genome", "mutation_info", "crossover_info", "parameters", "metadata"}
    )
    search_fields: ClassVar[tuple[str, ...]] = ("species",)

    generation: Count = 0
    individual_id: Identifier
    genome: Genome
    fitness: float = 0.0
    parent1_id: Identifier | None = None
    parent2_id: Identifier | None = None
    mutation_info: MutationInfo = Field(default_factory=MutationInfo)
    crossover_info: CrossoverInfo = Field(default_factory=CrossoverInfo)
    population_id: Identifier
    species: str = Field(default="", max_length=100)
    novelty_score: NonNegative = 0.0
    complexity: NonNegative = 0.0
    diversity: Score = 0.0
    evaluation_time: Count = 0
    algorithm: Literal["", "genetic_programming", "cma_es", "nsga2", "spea2", "custom"] = ""
    parameters: EvolutionParameters = Field(default_factory=EvolutionParameters)
    metadata: EvolutionMetadata = Field(default_factory=EvolutionMetadata)

    def check_rules(self) -> list[Violation]:
        broken = []
        if self.mutation_info.type == "none" and self.mutation_info.rate > 0:
            broken.append(
                Violation(
                    "mutation_info.rate",
                    "mutation_consistency",
                    "Mutation rate must be 0 for no mutation type",
                )
            )
        if self.parent1_id and self.parent2_id and self.crossover_info.type == "none":
            broken.append(
                Violation(
                    "crossover_info.type",
                    "crossover_consistency",
                    "Crossover type cannot be none when both parents exist",
                )
            )
        return broken

    def derived(self) -> dict[str, Any]:
        return {
            "is_elite": self.is_elite(),
            "pareto_rank": self.metadata.rank,
            "crowding_distance": self.metadata.crowding_distance,
            "mutation_count": len(self.mutation_info.changes),
            "crossover_points": len(self.crossover_info.points),
            "parent_contribution": self.parent_contribution(),
        }

    def is_elite(self) -> bool:
        return self.metadata.rank == 0

    def is_dominated_by(self, other: "EvolutionRecord") -> bool:
        return other.id in self.metadata.dominance

    def parent_contribution(self) -> float:
        if not self.parent1_id and not self.parent2_id:
            return 0.0
        if not (self.parent1_id and self.parent2_id):
            # Cloned from a single parent
            return 1.0
        return self.crossover_info.parent1_contribution + self.crossover_info.parent2_contribution

    def age(self, current_generation: int) -> int:
        return current_generation - self.generation

    def shares_parents_with(self, other: "EvolutionRecord") -> bool:
        if not (self.parent1_id and self.parent2_id and other.parent1_id and other.parent2_id):
            return False
        return sorted([self.parent1_id, self.parent2_id]) == sorted(
            [other.parent1_id, other.parent2_id]
        )

    def update_fitness(self, fitness: float):
        self.fitness = fitness
        return self.touch()

    def add_mutation(self, type: str, rate: float, strength: float, locations=None, changes=None):
        self.mutation_info = MutationInfo.model_construct(
            type=type,
            rate=rate,
            strength=strength,
            locations=locations or [],
            changes=changes or [],
        )
        return self.touch()

    def add_crossover(
        self,
        type: str,
        points: list[float],
        parent1_contribution: float = 0.5,
        parent2_contribution: float = 0.5,
    ):
        self.crossover_info = CrossoverInfo.model_construct(
            type=type,
            points=points,
            parent1_contribution=parent1_contribution,
            parent2_contribution=parent2_contribution,
        )
        return self.touch()

    def update_diversity(self, diversity: float):
        self.diversity = max(0.0, min(1.0, diversity))
        return self.touch()

    def update_novelty_score(self, score: float):
        self.novelty_score = max(0.0, score)
        return self.touch()
