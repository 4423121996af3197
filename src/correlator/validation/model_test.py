"""
Tests for the Validation model.

Run with: pytest src/correlator/validation/model_test.py -v
"""

import pytest

from correlator.errors import ValidationError
from correlator.validation import Validation


def make_validation(**overrides) -> Validation:
    return Validation.new({"correlation_id": "c-1", **overrides})


class TestRules:
    """Tests for Validation.check_rules()"""

    def test_interval_order(self):
        with pytest.raises(ValidationError) as exc_info:
            make_validation(confidence_interval=[0.9, 0.1]).validate()

        assert [v.rule for v in exc_info.value.violations] == ["interval_order"]

    @pytest.mark.parametrize("interval", [[0.5], [0.1, 0.2, 0.3], [0.1, 1.2]])
    def test_interval_shape(self, interval):
        with pytest.raises(ValidationError):
            make_validation(confidence_interval=interval).validate()

    def test_counter_example_severity(self):
        validation = make_validation(
            counter_examples=[
                {"input": {}, "expected": {}, "actual": {}, "error": "x", "severity": "fatal"}
            ]
        )

        with pytest.raises(ValidationError) as exc_info:
            validation.validate()

        assert exc_info.value.fields == {"counter_examples.0.severity"}


class TestDerived:
    """Tests for Validation derived values"""

    def test_pass_rate(self):
        validation = make_validation()
        assert validation.pass_rate() == 0.0

        validation.add_test_case({}, {}, {}, passed=True)
        validation.add_test_case({}, {}, {}, passed=False)

        assert validation.pass_rate() == 0.5

    @pytest.mark.parametrize(
        "validity,accuracy,error,expected",
        [
            (0.7, 0.8, 0.1, True),
            (0.69, 0.9, 0.0, False),
            (0.9, 0.79, 0.0, False),
            (0.9, 0.9, 0.11, False),
        ],
    )
    def test_is_reliable(self, validity, accuracy, error, expected):
        validation = make_validation(
            validity_score=validity, test_accuracy=accuracy, conservation_error=error
        )

        assert validation.is_reliable() is expected

    def test_overall_confidence(self):
        validation = make_validation(validity_score=0.8, test_accuracy=0.5, conservation_error=0.05)
        validation.add_counter_example({}, {}, {}, "a")
        validation.add_counter_example({}, {}, {}, "b")

        assert validation.overall_confidence() == pytest.approx(0.8 + 0.1 - 0.05 - 0.1)

    @pytest.mark.parametrize(
        "validity,accuracy,error,expected",
        [(1.0, 1.0, 0.0, 1.0), (0.0, 0.0, 5.0, 0.0)],
    )
    def test_overall_confidence_is_clamped(self, validity, accuracy, error, expected):
        validation = make_validation(
            validity_score=validity, test_accuracy=accuracy, conservation_error=error
        )

        assert validation.overall_confidence() == expected

    def test_failures_and_counter_examples(self):
        validation = make_validation()
        validation.add_failure_mode("drift", "Seasonal", frequency=3, severity="critical")
        validation.add_failure_mode("gap", "Missing days")
        validation.add_counter_example({}, {}, {}, "low", severity="low")
        validation.add_counter_example({}, {}, {}, "high", severity="high")

        public = validation.to_public()

        assert validation.failure_modes[0].frequency == 1.0
        assert public["critical_failures"] == 1
        assert [ce.error for ce in validation.high_severity_counter_examples()] == ["high"]

    def test_update_scores_clamps(self):
        validation = make_validation()

        validation.update_scores({"validity_score": 1.4, "semantic_score": -2, "other": 9})

        assert validation.validity_score == 1.0
        assert validation.semantic_score == 0.0
        validation.validate()
