from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field

from correlator.entity import Count, Entity, Identifier, NonNegative, Record, Score, new_id
from correlator.errors import Violation

Severity = Literal["low", "medium", "high", "critical"]


class CounterExample(Record):
    id: str = Field(default_factory=new_id)
    input: dict[str, Any]
    expected: dict[str, Any]
    actual: dict[str, Any]
    error: str
    severity: Severity = "medium"


class ValidationCase(Record):
    id: str = Field(default_factory=new_id)
    input: dict[str, Any]
    expected: dict[str, Any]
    actual: dict[str, Any]
    passed: bool
    execution_time: NonNegative = 0.0


class FailureMode(Record):
    type: str
    description: str
    frequency: Score = 0.0
    severity: Severity = "medium"
    examples: list[dict[str, Any]] = Field(default_factory=list)


class Validation(Entity):
    """The outcome of checking one correlation against data."""

    table_name: ClassVar[str] = "validations"
    json_columns: ClassVar[frozenset[str]] = frozenset(
        {"counter_examples", "test_cases", "failure_modes", "metadata"}
    )
    search_fields: ClassVar[tuple[str, ...]] = ("validation_method",)

    correlation_id: Identifier
    validity_score: Score = 0.0
    statistical_score: Score = 0.0
    semantic_score: Score = 0.0
    structural_score: Score = 0.0
    conservation_error: NonNegative = 0.0
    test_accuracy: Score = 0.0
    confidence_interval: Annotated[list[Score], Field(min_length=2, max_length=2)] = Field(
        default_factory=lambda: [0.0, 1.0]
    )
    counter_examples: list[CounterExample] = Field(default_factory=list)
    validation_method: Literal[
        "", "statistical", "semantic", "structural", "conservation", "ensemble", "cross_validation"
    ] = ""
    test_cases: list[ValidationCase] = Field(default_factory=list)
    failure_modes: list[FailureMode] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    validation_time: Count = 0
    data_size: Count = 0
    sample_size: Count = 0

    def check_rules(self) -> list[Violation]:
        lower, upper = self.confidence_interval
        if lower > upper:
            return [
                Violation(
                    "confidence_interval",
                    "interval_order",
                    "Confidence interval lower bound must be less than or equal to upper bound",
                )
            ]
        return []

    def derived(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid(),
            "is_reliable": self.is_reliable(),
            "pass_rate": self.pass_rate(),
            "critical_failures": len(self.critical_failures()),
            "confidence": self.overall_confidence(),
        }

    def is_valid(self) -> bool:
        return self.validity_score >= 0.5

    def is_reliable(self) -> bool:
        return (
            self.validity_score >= 0.7
            and self.test_accuracy >= 0.8
            and self.conservation_error <= 0.1
        )

    def pass_rate(self) -> float:
        if not self.test_cases:
            return 0.0
        return sum(1 for case in self.test_cases if case.passed) / len(self.test_cases)

    def critical_failures(self) -> list[FailureMode]:
        return [mode for mode in self.failure_modes if mode.severity == "critical"]

    def high_severity_counter_examples(self) -> list[CounterExample]:
        return [ce for ce in self.counter_examples if ce.severity in ("high", "critical")]

    def overall_confidence(self) -> float:
        """Validity adjusted for accuracy, conservation error and counter-examples."""
        accuracy_bonus = self.test_accuracy * 0.2
        conservation_penalty = min(0.3, self.conservation_error)
        counter_example_penalty = min(0.2, len(self.counter_examples) * 0.05)
        score = self.validity_score + accuracy_bonus - conservation_penalty - counter_example_penalty
        return max(0.0, min(1.0, score))

    def update_scores(self, scores: dict[str, float]):
        """Set any of the score fields, clamped to [0, 1]."""
        for name in (
            "validity_score",
            "statistical_score",
            "semantic_score",
            "structural_score",
            "test_accuracy",
        ):
            if isinstance(scores.get(name), (int, float)):
                setattr(self, name, max(0.0, min(1.0, float(scores[name]))))
        return self.touch()

    def add_counter_example(self, input, expected, actual, error: str, severity: Severity = "medium"):
        example = CounterExample(
            input=input, expected=expected, actual=actual, error=error, severity=severity
        )
        self.counter_examples = [*self.counter_examples, example]
        return self.touch()

    def add_test_case(self, input, expected, actual, passed: bool, execution_time: float = 0.0):
        case = ValidationCase(
            input=input,
            expected=expected,
            actual=actual,
            passed=passed,
            execution_time=execution_time,
        )
        self.test_cases = [*self.test_cases, case]
        return self.touch()

    def add_failure_mode(
        self,
        type: str,
        description: str,
        frequency: float = 0.0,
        severity: Severity = "medium",
        examples: list | None = None,
    ):
        mode = FailureMode(
            type=type,
            description=description,
            frequency=max(0.0, min(1.0, frequency)),
            severity=severity,
            examples=examples or [],
        )
        self.failure_modes = [*self.failure_modes, mode]
        return self.touch()
