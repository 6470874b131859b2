"""Greedy caliper matching of subjects to controls.

Pipeline: normalise tables -> generate candidates -> run rounds -> assemble
final records. The matcher validates everything that can be validated before
the first candidate pair is built, so configuration and data errors never
leave partial output behind.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from ..core.contracts import DataError, normalize_units
from ..core.validation import ConfigurationError, check_match_ratio, check_score_diff
from .assembler import NO_CANDIDATES, assemble_results, matches_to_frame, unmatched_subjects
from .candidates import DEFAULT_SEED, generate_candidates
from .policies import get_policy
from .rounds import MatchingAbortedError, MatchingLoop

MODEL_TYPE = "greedy_caliper_matching"


@dataclass
class MatchResult:
    """Standardized matching result container.

    Attributes:
        model_type: Identifier of the matcher that produced this result.
        data: JSON-serialisable parameters and summary statistics.
        metadata: Optional metadata about the run (filled by the caller).
        artifacts: Result tables keyed by format-agnostic name:
            ``final_records``, ``matched_pairs`` and ``unmatched_subjects``.
    """

    model_type: str
    data: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, pd.DataFrame] = field(default_factory=dict)

    @property
    def final_records(self) -> pd.DataFrame:
        return self.artifacts["final_records"]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage/serialization."""
        return {"model_type": self.model_type, **self.data, "metadata": self.metadata}


class GreedyMatcher:
    """Matches each subject to up to ``match_ratio`` controls within ``score_diff``.

    Constraints:
    - Subject and control tables each need an id column and a score column
    - Ids must be unique within a table; scores must be numeric
    - match_ratio is a positive integer, score_diff a non-negative number
    - Unknown ``opt`` values fall back to the ``none`` policy
    """

    def __init__(self):
        """Initialize the GreedyMatcher."""
        self.logger = logging.getLogger(__name__)
        self.is_connected = False
        self.config = None
        self.policy = None

    def connect(self, config: Dict[str, Any]) -> bool:
        """Initialize the matcher from the MATCHING section plus column names.

        Args:
            config: Dict with match_ratio, score_diff, opt, seed, max_rounds,
                time_limit and the four column names (subject_id_column,
                subject_score_column, control_id_column, control_score_column).

        Raises:
            ConfigurationError: If a parameter is missing or invalid.
        """
        self.validate_params(config)

        seed = config.get("seed")
        policy = get_policy(config.get("opt", "none"))

        self.config = {
            "match_ratio": check_match_ratio(config["match_ratio"]),
            "score_diff": check_score_diff(config["score_diff"]),
            "opt": policy.name,
            "seed": DEFAULT_SEED if seed is None else int(seed),
            "max_rounds": config.get("max_rounds"),
            "time_limit": config.get("time_limit"),
            "subject_id_column": config.get("subject_id_column", "id"),
            "subject_score_column": config.get("subject_score_column", "score"),
            "control_id_column": config.get("control_id_column", "id"),
            "control_score_column": config.get("control_score_column", "score"),
        }
        self.policy = policy
        self.is_connected = True
        return True

    def validate_connection(self) -> bool:
        """Validate that the matcher is properly initialized and ready to use."""
        return self.is_connected and self.config is not None

    def validate_params(self, params: Dict[str, Any]) -> None:
        """Validate required matching parameters.

        Raises:
            ConfigurationError: If match_ratio or score_diff is missing or invalid.
        """
        for name in ("match_ratio", "score_diff"):
            if params.get(name) is None:
                raise ConfigurationError(f"{name} is required for GreedyMatcher. Specify in MATCHING configuration.")
        check_match_ratio(params["match_ratio"])
        check_score_diff(params["score_diff"])

    def get_required_columns(self) -> Dict[str, List[str]]:
        """Required column names per table.

        Returns:
            Dict with ``subjects`` and ``controls`` column lists, empty before connect().
        """
        if not self.config:
            return {"subjects": [], "controls": []}
        return {
            "subjects": [self.config["subject_id_column"], self.config["subject_score_column"]],
            "controls": [self.config["control_id_column"], self.config["control_score_column"]],
        }

    def validate_data(self, subjects: pd.DataFrame, controls: pd.DataFrame) -> bool:
        """Check both tables are non-empty and carry the required columns."""
        required = self.get_required_columns()
        for table, df in (("subjects", subjects), ("controls", controls)):
            if df is None or df.empty:
                self.logger.warning(f"{table} table is empty")
                return False
            missing = [col for col in required[table] if col not in df.columns]
            if missing:
                self.logger.warning(f"{table} table is missing required columns: {missing}")
                return False
        return True

    def match(self, subjects: pd.DataFrame, controls: pd.DataFrame) -> MatchResult:
        """Match subjects to controls and return results.

        Args:
            subjects: Subject (treated) table.
            controls: Control table.

        Returns:
            MatchResult: Summary plus final_records, matched_pairs and
                unmatched_subjects tables.

        Raises:
            ConnectionError: If the matcher is not connected.
            ConfigurationError: If a table is empty or lacks a column.
            DataError: If scores are non-numeric or ids repeat.
            MatchingAbortedError: If a host bound stops the loop.
            RuntimeError: If matching fails unexpectedly.
        """
        if not self.is_connected:
            raise ConnectionError("Matcher not connected. Call connect() first.")

        if not self.validate_data(subjects, controls):
            raise ConfigurationError(f"Data validation failed. Required columns: {self.get_required_columns()}")

        subject_units = normalize_units(
            subjects, self.config["subject_id_column"], self.config["subject_score_column"], "subjects"
        )
        control_units = normalize_units(
            controls, self.config["control_id_column"], self.config["control_score_column"], "controls"
        )

        try:
            candidates = generate_candidates(
                subject_units, control_units, self.config["score_diff"], seed=self.config["seed"]
            )
            n_candidate_pairs = len(candidates)
            had_candidates = candidates.subjects()

            loop = MatchingLoop(
                candidates,
                self.policy,
                self.config["match_ratio"],
                max_rounds=self.config["max_rounds"],
                time_limit=self.config["time_limit"],
            )
            matches = loop.run()

            final_records = assemble_results(subject_units, matches)
            matched_pairs = matches_to_frame(matches)
            unmatched = unmatched_subjects(subject_units, matches, had_candidates)
        except (ConfigurationError, DataError, MatchingAbortedError):
            raise
        except Exception as e:
            self.logger.error(f"Error running GreedyMatcher: {e}")
            raise RuntimeError(f"Matching failed: {e}") from e

        n_no_candidates = int((unmatched["reason"] == NO_CANDIDATES).sum())
        mean_abs_diff = float(matched_pairs["abs_diff"].mean()) if len(matched_pairs) else None

        self.logger.info(
            f"Greedy matching complete ({self.policy.name}): "
            f"{len(subject_units) - len(unmatched)}/{len(subject_units)} subjects matched, "
            f"{len(matched_pairs)} pairs in {len(loop.history)} rounds"
        )

        return MatchResult(
            model_type=MODEL_TYPE,
            data={
                "match_params": {
                    "match_ratio": self.config["match_ratio"],
                    "score_diff": self.config["score_diff"],
                    "opt": self.policy.name,
                    "seed": self.config["seed"],
                },
                "match_summary": {
                    "n_subjects": int(len(subject_units)),
                    "n_controls": int(len(control_units)),
                    "n_candidate_pairs": int(n_candidate_pairs),
                    "n_rounds": len(loop.history),
                    "n_matched_subjects": int(len(subject_units) - len(unmatched)),
                    "n_unmatched_subjects": int(len(unmatched)),
                    "n_no_candidates": n_no_candidates,
                    "n_matched_pairs": int(len(matched_pairs)),
                    "mean_abs_diff": mean_abs_diff,
                },
            },
            artifacts={
                "final_records": final_records,
                "matched_pairs": matched_pairs,
                "unmatched_subjects": unmatched,
            },
        )


def match_units(
    subjects: pd.DataFrame,
    controls: pd.DataFrame,
    match_ratio: int,
    score_diff: float,
    opt: str = "none",
    seed: Optional[int] = None,
    **columns: str,
) -> MatchResult:
    """Functional shortcut around GreedyMatcher.

    Column names default to ``id`` and ``score`` for both tables and can be
    overridden with ``subject_id_column=...`` and friends.
    """
    matcher = GreedyMatcher()
    matcher.connect({"match_ratio": match_ratio, "score_diff": score_diff, "opt": opt, "seed": seed, **columns})
    return matcher.match(subjects, controls)
