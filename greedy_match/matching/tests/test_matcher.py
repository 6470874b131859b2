"""Tests for GreedyMatcher and match_units."""

import numpy as np
import pandas as pd
import pytest
from pandas.testing import assert_frame_equal

from greedy_match.core import ConfigurationError, DataError
from greedy_match.matching import matcher as matcher_module
from greedy_match.matching.matcher import MODEL_TYPE, GreedyMatcher, MatchResult, match_units
from greedy_match.matching.rounds import MatchingAbortedError


def _table(mapping, id_column="id", score_column="score"):
    return pd.DataFrame({id_column: list(mapping), score_column: list(mapping.values())})


def _random_tables(seed, n_subjects=60, n_controls=90):
    rng = np.random.default_rng(seed)
    subjects = pd.DataFrame(
        {"id": [f"S{i}" for i in range(n_subjects)], "score": rng.beta(2, 3, size=n_subjects)}
    )
    controls = pd.DataFrame(
        {"id": [f"C{i}" for i in range(n_controls)], "score": rng.beta(2, 5, size=n_controls)}
    )
    return subjects, controls


def _make_config(**overrides):
    config = {"match_ratio": 1, "score_diff": 0.05, "opt": "none", "seed": 123}
    config.update(overrides)
    return config


class TestScenarios:
    """Small worked examples with known outcomes."""

    def test_competing_subjects_share_one_control(self):
        """Two subjects want C1; one gets it, the other stays unmatched."""
        subjects = _table({"S1": 0.50, "S2": 0.52})
        controls = _table({"C1": 0.51, "C2": 0.90})

        result = match_units(subjects, controls, match_ratio=1, score_diff=0.02, opt="none", seed=7)
        final = result.final_records

        assert final["subject_id"].tolist() == ["S1", "S2"]
        assert final["control_id"].tolist().count("C1") == 1
        assert final["control_id"].tolist().count(None) == 1
        assert "C2" not in final["control_id"].tolist()

        again = match_units(subjects, controls, match_ratio=1, score_diff=0.02, opt="none", seed=7)
        assert_frame_equal(final, again.final_records)

    def test_close_serves_exact_tie_first(self):
        """With opt=close, S1-C1 (diff 0) is committed before S2 is considered."""
        subjects = _table({"S1": 0.10, "S2": 0.11})
        controls = _table({"C1": 0.10, "C2": 0.105, "C3": 0.30})

        result = match_units(subjects, controls, match_ratio=1, score_diff=0.05, opt="close")

        pairs = result.artifacts["matched_pairs"]
        assert pairs[["subject_id", "control_id"]].values.tolist() == [["S1", "C1"], ["S2", "C2"]]
        assert pairs["round"].tolist() == [1, 2]
        assert "C3" not in result.final_records["control_id"].tolist()

    def test_subject_without_candidates_is_reported(self):
        """S3 has no control in range; S1 and S2 each take one of the two controls."""
        subjects = _table({"S1": 0.2, "S2": 0.2, "S3": 0.9})
        controls = _table({"C1": 0.21, "C2": 0.19})

        result = match_units(subjects, controls, match_ratio=1, score_diff=0.05, opt="num")
        final = result.final_records

        assert final["subject_id"].tolist() == ["S1", "S2", "S3"]
        assert set(final["control_id"].iloc[:2]) == {"C1", "C2"}
        assert final["control_id"].iloc[2] is None
        unmatched = result.artifacts["unmatched_subjects"]
        assert unmatched["subject_id"].tolist() == ["S3"]
        assert unmatched["reason"].tolist() == ["no_candidates"]
        summary = result.data["match_summary"]
        assert summary["n_no_candidates"] == 1
        assert summary["n_matched_subjects"] == 2
        assert summary["n_rounds"] == 2

    @pytest.mark.parametrize("opt", ["none", "num", "close"])
    def test_ratio_two_takes_two_in_caliper_controls(self, opt):
        """Exactly two of C1..C3 are committed to S1, never C4."""
        subjects = _table({"S1": 0.5})
        controls = _table({"C1": 0.50, "C2": 0.49, "C3": 0.51, "C4": 0.99})

        result = match_units(subjects, controls, match_ratio=2, score_diff=0.05, opt=opt)
        matched = result.final_records["control_id"].tolist()

        assert len(matched) == 2
        assert set(matched) <= {"C1", "C2", "C3"}

    def test_ratio_two_close_prefers_exact_match(self):
        """Under opt=close the zero-difference control is always among the two."""
        subjects = _table({"S1": 0.5})
        controls = _table({"C1": 0.50, "C2": 0.49, "C3": 0.51, "C4": 0.99})

        result = match_units(subjects, controls, match_ratio=2, score_diff=0.05, opt="close")

        assert "C1" in result.final_records["control_id"].tolist()


class TestMatchingProperties:
    """Invariants that hold on arbitrary inputs."""

    @pytest.mark.parametrize("opt", ["none", "num", "close"])
    @pytest.mark.parametrize("ratio", [1, 2, 3])
    def test_invariants(self, opt, ratio):
        """No control reuse, ratio cap, caliper, and every subject present."""
        subjects, controls = _random_tables(seed=ratio)
        score_diff = 0.03

        result = match_units(subjects, controls, match_ratio=ratio, score_diff=score_diff, opt=opt, seed=99)
        final = result.final_records
        pairs = result.artifacts["matched_pairs"]

        assert not pairs["control_id"].duplicated().any()
        assert pairs.groupby("subject_id").size().eq(ratio).all()
        assert (pairs["abs_diff"] <= score_diff).all()
        assert set(final["subject_id"]) == set(subjects["id"])
        assert len(final) == len(pairs) + len(result.artifacts["unmatched_subjects"])

    @pytest.mark.parametrize("opt", ["none", "num", "close"])
    def test_deterministic_for_fixed_seed(self, opt):
        """Identical inputs and seed give identical output."""
        subjects, controls = _random_tables(seed=4)

        first = match_units(subjects, controls, match_ratio=2, score_diff=0.04, opt=opt, seed=2024)
        second = match_units(subjects, controls, match_ratio=2, score_diff=0.04, opt=opt, seed=2024)

        assert_frame_equal(first.final_records, second.final_records)
        assert_frame_equal(first.artifacts["matched_pairs"], second.artifacts["matched_pairs"])

    def test_unserved_subjects_have_no_spare_controls(self):
        """Each unmatched subject has fewer than match_ratio unused controls in range."""
        subjects, controls = _random_tables(seed=8)
        ratio, score_diff = 2, 0.02

        result = match_units(subjects, controls, match_ratio=ratio, score_diff=score_diff, opt="none", seed=1)

        used = set(result.artifacts["matched_pairs"]["control_id"])
        free = controls.loc[~controls["id"].isin(used)]
        for _, row in result.artifacts["unmatched_subjects"].iterrows():
            in_range = (free["score"] - row["subject_score"]).abs() <= score_diff
            assert in_range.sum() < ratio

    def test_output_sorted_regardless_of_input_order(self):
        """Shuffled input still yields rows ordered by subject id."""
        subjects, controls = _random_tables(seed=12)
        shuffled = subjects.sample(frac=1.0, random_state=3)

        result = match_units(shuffled, controls, match_ratio=1, score_diff=0.03, opt="close", seed=5)

        assert result.final_records["subject_id"].tolist() == sorted(subjects["id"].tolist())


class TestGreedyMatcher:
    """Tests for the matcher lifecycle and error handling."""

    def test_connect(self):
        """connect() stores normalised parameters."""
        matcher = GreedyMatcher()

        assert matcher.connect(_make_config(opt="CLOSE")) is True
        assert matcher.validate_connection()
        assert matcher.config["opt"] == "close"
        assert matcher.config["seed"] == 123

    def test_connect_default_seed(self):
        """A null seed falls back to the fixed default."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config(seed=None))

        assert matcher.config["seed"] == 20240101

    @pytest.mark.parametrize("missing", ["match_ratio", "score_diff"])
    def test_connect_missing_required(self, missing):
        """match_ratio and score_diff are mandatory."""
        config = _make_config()
        config.pop(missing)

        with pytest.raises(ConfigurationError, match=f"{missing} is required"):
            GreedyMatcher().connect(config)

    @pytest.mark.parametrize(
        "overrides",
        [{"match_ratio": 0}, {"match_ratio": 2.5}, {"score_diff": -0.01}, {"score_diff": "wide"}],
    )
    def test_connect_invalid_values(self, overrides):
        """Invalid parameters fail before any data is touched."""
        with pytest.raises(ConfigurationError):
            GreedyMatcher().connect(_make_config(**overrides))

    def test_unknown_opt_falls_back(self):
        """Unknown policies run as 'none'."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config(opt="farthest"))

        assert matcher.config["opt"] == "none"

    def test_match_requires_connect(self):
        """Calling match() first is an error."""
        with pytest.raises(ConnectionError, match="not connected"):
            GreedyMatcher().match(_table({"S1": 0.5}), _table({"C1": 0.5}))

    def test_get_required_columns(self):
        """Required columns follow the configured names."""
        matcher = GreedyMatcher()
        assert matcher.get_required_columns() == {"subjects": [], "controls": []}

        matcher.connect(_make_config(subject_id_column="patient", control_score_column="ps"))

        assert matcher.get_required_columns() == {"subjects": ["patient", "score"], "controls": ["id", "ps"]}

    def test_empty_table_rejected(self):
        """An empty table fails data validation."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config())

        with pytest.raises(ConfigurationError, match="Data validation failed"):
            matcher.match(_table({}), _table({"C1": 0.5}))

    def test_missing_column_rejected(self):
        """A missing score column fails data validation."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config())

        with pytest.raises(ConfigurationError, match="Data validation failed"):
            matcher.match(_table({"S1": 0.5}), pd.DataFrame({"id": ["C1"]}))

    def test_non_numeric_score(self):
        """Non-numeric scores are a data error naming the offending ids."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config())
        controls = pd.DataFrame({"id": ["C1", "C2"], "score": [0.5, "high"]})

        with pytest.raises(DataError, match="controls") as exc_info:
            matcher.match(_table({"S1": 0.5}), controls)

        assert exc_info.value.ids == ["C2"]

    def test_infinite_score(self):
        """An infinite score is a data error, not a match for every control."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config())
        subjects = pd.DataFrame({"id": ["S1", "S2"], "score": [0.5, np.inf]})

        with pytest.raises(DataError, match="non-finite") as exc_info:
            matcher.match(subjects, _table({"C1": 0.5}))

        assert exc_info.value.ids == ["S2"]

    def test_duplicate_ids(self):
        """Repeated subject ids are a data error."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config())
        subjects = pd.DataFrame({"id": ["S1", "S1"], "score": [0.5, 0.6]})

        with pytest.raises(DataError, match="duplicate ids"):
            matcher.match(subjects, _table({"C1": 0.5}))

    def test_max_rounds_abort_propagates(self):
        """Host bounds surface as MatchingAbortedError."""
        matcher = GreedyMatcher()
        matcher.connect(_make_config(max_rounds=1))

        with pytest.raises(MatchingAbortedError) as exc_info:
            matcher.match(_table({"S1": 0.1, "S2": 0.5}), _table({"C1": 0.1, "C2": 0.5}))

        assert len(exc_info.value.matches) == 1

    def test_unexpected_errors_are_wrapped(self, monkeypatch):
        """Unexpected failures become RuntimeError with the cause attached."""

        def broken(*args, **kwargs):
            raise KeyError("boom")

        monkeypatch.setattr(matcher_module, "assemble_results", broken)
        matcher = GreedyMatcher()
        matcher.connect(_make_config())

        with pytest.raises(RuntimeError, match="Matching failed") as exc_info:
            matcher.match(_table({"S1": 0.5}), _table({"C1": 0.5}))

        assert isinstance(exc_info.value.__cause__, KeyError)


class TestMatchResult:
    """Tests for result content."""

    def test_result_shape(self):
        """Parameters, summary and all three artifacts are present."""
        result = match_units(_table({"S1": 0.5, "S2": 0.9}), _table({"C1": 0.51}), 1, 0.05, seed=1)

        assert isinstance(result, MatchResult)
        assert result.model_type == MODEL_TYPE
        assert result.data["match_params"] == {"match_ratio": 1, "score_diff": 0.05, "opt": "none", "seed": 1}
        summary = result.data["match_summary"]
        assert summary["n_subjects"] == 2
        assert summary["n_controls"] == 1
        assert summary["n_candidate_pairs"] == 1
        assert summary["n_matched_pairs"] == 1
        assert summary["mean_abs_diff"] == pytest.approx(0.01)
        assert set(result.artifacts) == {"final_records", "matched_pairs", "unmatched_subjects"}

    def test_to_dict(self):
        """to_dict() flattens data next to model_type and metadata."""
        result = match_units(_table({"S1": 0.5}), _table({"C1": 0.9}), 1, 0.05)

        as_dict = result.to_dict()

        assert as_dict["model_type"] == MODEL_TYPE
        assert as_dict["match_summary"]["n_matched_pairs"] == 0
        assert as_dict["match_summary"]["mean_abs_diff"] is None
        assert as_dict["metadata"] == {}

    def test_custom_column_names(self):
        """Caller column names are mapped to the standard layout."""
        subjects = pd.DataFrame({"patient": [1, 2], "ps": [0.3, 0.6]})
        controls = pd.DataFrame({"donor": ["a", "b"], "propensity": [0.31, 0.61]})

        result = match_units(
            subjects,
            controls,
            1,
            0.05,
            subject_id_column="patient",
            subject_score_column="ps",
            control_id_column="donor",
            control_score_column="propensity",
        )

        final = result.final_records
        assert final["subject_id"].tolist() == [1, 2]
        assert final["control_id"].tolist() == ["a", "b"]
