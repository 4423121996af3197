"""
Tests for the DatasetSignature model.

Run with: pytest src/correlator/signature/model_test.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from correlator.errors import ValidationError
from correlator.signature import DatasetSignature
from correlator.signature.model import SemanticSignature, TemporalSignature, TimeRange


def make_signature(**overrides) -> DatasetSignature:
    data = {
        "dataset_id": "ds-1",
        "statistical": {"distributions": {"price": "normal"}, "cardinality": {"price": 120}},
        "semantic": {"context_vector": [0.1, 0.2, 0.3]},
    }
    return DatasetSignature.new({**data, **overrides})


class TestSchema:
    """Tests for DatasetSignature field validation"""

    def test_defaults(self):
        signature = make_signature().validate()

        assert signature.version == 1
        assert signature.algorithm == "default"
        assert signature.compression_ratio == 0.0
        assert signature.temporal is None
        assert signature.spatial is None
        assert signature.structural.constraints == []

    def test_dataset_id_required(self):
        with pytest.raises(ValidationError) as exc_info:
            DatasetSignature.new().validate()

        assert exc_info.value.fields == {"dataset_id"}

    @pytest.mark.parametrize(
        "overrides,fields",
        [
            ({"version": 0}, {"version"}),
            ({"compression_ratio": 1.5}, {"compression_ratio"}),
            ({"computation_time": -1}, {"computation_time"}),
            ({"algorithm": "magic"}, {"algorithm"}),
            ({"semantic": {"context_vector": ["a"]}}, {"semantic.context_vector.0"}),
        ],
    )
    def test_field_constraints(self, overrides, fields):
        with pytest.raises(ValidationError) as exc_info:
            make_signature(**overrides).validate()

        assert exc_info.value.fields == fields

    def test_nested_records_are_built_on_construction(self):
        signature = make_signature(
            temporal={"time_range": {"start": None, "end": None}, "patterns": [{"period": 7}]}
        )

        assert isinstance(signature.semantic, SemanticSignature)
        assert isinstance(signature.temporal, TemporalSignature)
        assert isinstance(signature.temporal.time_range, TimeRange)
        assert signature.temporal.patterns == [{"period": 7}]


class TestRules:
    """Tests for DatasetSignature.check_rules()"""

    def test_expiry_before_computation(self):
        computed = datetime(2024, 1, 10, tzinfo=timezone.utc)

        with pytest.raises(ValidationError) as exc_info:
            make_signature(computed_at=computed, expires_at=computed - timedelta(days=1)).validate()

        assert exc_info.value.fields == {"expires_at"}

    def test_inverted_time_range(self):
        temporal = {
            "time_range": {"start": "2024-02-01T00:00:00+00:00", "end": "2024-01-01T00:00:00+00:00"}
        }

        with pytest.raises(ValidationError) as exc_info:
            make_signature(temporal=temporal).validate()

        assert exc_info.value.fields == {"temporal.time_range"}

    def test_inverted_bounds(self):
        with pytest.raises(ValidationError) as exc_info:
            make_signature(spatial={"bounds": {"north": 10.0, "south": 20.0}}).validate()

        assert exc_info.value.fields == {"spatial.bounds"}

    def test_partial_components_are_fine(self):
        signature = make_signature(
            temporal={"time_range": {"start": "2024-01-01T00:00:00+00:00"}},
            spatial={"bounds": {"east": 3.0}},
        ).validate()

        assert signature.temporal.time_range.end is None
        assert signature.spatial.bounds.east == 3.0


class TestDerived:
    """Tests for DatasetSignature derived values"""

    @pytest.mark.parametrize(
        "expires_in,expected",
        [(None, False), (timedelta(days=1), False), (timedelta(days=-1), True)],
    )
    def test_is_expired(self, expires_in, expected):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        expires_at = now + expires_in if expires_in else None

        assert make_signature(expires_at=expires_at).is_expired(now) is expected

    def test_compression_info(self):
        signature = make_signature(compression_ratio=0.25).validate()
        size = signature.size()

        info = signature.compression_info()

        assert size > 0
        assert info == {
            "ratio": 0.25,
            "original_size": size,
            "compressed_size": int(size * 0.25),
            "savings": int(size * 0.75),
        }

    def test_to_public(self):
        public = make_signature().validate().to_public()

        assert public["is_expired"] is False
        assert public["compression_info"]["ratio"] == 0.0
        assert public["semantic"]["context_vector"] == [0.1, 0.2, 0.3]

    def test_round_trip_through_storage(self):
        signature = make_signature(
            temporal={"time_range": {"start": "2024-01-01T00:00:00+00:00"}}
        ).validate()

        restored = DatasetSignature.from_database(signature.to_database()).validate()

        assert restored.to_database() == signature.to_database()
        assert restored.temporal.time_range.start == datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestMutators:
    """Tests for DatasetSignature mutators"""

    def test_update_stats(self):
        signature = make_signature().validate()
        computed_at = signature.computed_at

        signature.update_stats(computation_time=1500, compression_ratio=0.4)

        assert signature.computation_time == 1500
        assert signature.compression_ratio == 0.4
        assert signature.computed_at >= computed_at
        signature.validate()

    def test_set_expiration(self):
        signature = make_signature().validate().set_expiration(days=7)

        remaining = signature.expires_at - datetime.now(timezone.utc)
        assert timedelta(days=6) < remaining <= timedelta(days=7)
        assert signature.is_expired() is False

    def test_increment_version(self):
        signature = make_signature().validate()
        before = signature.updated_at

        signature.increment_version()

        assert signature.version == 2
        assert signature.updated_at > before
