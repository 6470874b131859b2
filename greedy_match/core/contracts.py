"""
Table contracts for greedy-match.

Subject and control tables arrive with caller-chosen column names. They are
normalised here into the standard ScoredUnit layout (``id``, ``score``) before
the matching engine sees them, and the engine's output follows the
FinalRecord layout defined below.
"""

from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Dict, List

import numpy as np
import pandas as pd

from .validation import ConfigurationError


class DataError(ValueError):
    """Raised when table contents are unusable (bad scores, ambiguous ids)."""

    def __init__(self, message: str, table: str, ids: List = None):
        self.table = table
        self.ids = list(ids or [])
        super().__init__(f"{table}: {message}")


@dataclass
class Schema:
    """Column contract with validation and renaming helpers."""

    required: List[str]
    optional: List[str] = field(default_factory=list)

    def validate(self, df: pd.DataFrame) -> bool:
        """Check DataFrame has required columns."""
        missing = [col for col in self.required if col not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")
        return True

    def from_external(self, df: pd.DataFrame, column_map: Dict[str, str]) -> pd.DataFrame:
        """Select and rename external columns ({external_name: standard_name})."""
        result = df.loc[:, list(column_map)].copy()
        return result.rename(columns=column_map)

    def all_columns(self) -> List[str]:
        """Return all columns (required + optional)."""
        return self.required + self.optional


# One subject or control: identifier plus propensity score.
ScoredUnitSchema = Schema(required=["id", "score"])

# Committed subject -> control assignment.
MatchedPairSchema = Schema(
    required=["subject_id", "control_id", "subject_score", "control_score"],
    optional=["abs_diff", "round"],
)

# One row per committed match, or one null-control row per unmatched subject.
FinalRecordSchema = Schema(required=["subject_id", "subject_score", "control_id", "control_score"])

UnmatchedSubjectSchema = Schema(required=["subject_id", "subject_score", "reason"])

# Id columns whose original type is recorded next to every written table.
ID_COLUMNS = ("subject_id", "control_id")


def normalize_units(df: pd.DataFrame, id_column: str, score_column: str, table: str) -> pd.DataFrame:
    """Validate a subject or control table and return it in ScoredUnit layout.

    Args:
        df: Raw input table.
        id_column: Column holding the unit identifier.
        score_column: Column holding the propensity score.
        table: Table name used in error messages ("subjects" or "controls").

    Returns:
        DataFrame with exactly the columns ``id`` and ``score`` (float), in
        input row order with a fresh RangeIndex.

    Raises:
        ConfigurationError: If the table is empty or a column is missing.
        DataError: If a score is missing, non-numeric or infinite, or an id repeats.
    """
    if df is None or df.empty:
        raise ConfigurationError(f"{table} table is empty")

    missing = [col for col in (id_column, score_column) if col not in df.columns]
    if missing:
        raise ConfigurationError(f"{table} table is missing columns {missing}")

    units = ScoredUnitSchema.from_external(df, {id_column: "id", score_column: "score"})
    units = units.reset_index(drop=True)

    if units["id"].isna().any():
        raise DataError(f"missing values in id column '{id_column}'", table)

    duplicated = units.loc[units["id"].duplicated(keep=False), "id"].unique().tolist()
    if duplicated:
        raise DataError(f"duplicate ids in column '{id_column}': {duplicated}", table, duplicated)

    numeric = pd.to_numeric(units["score"], errors="coerce")
    bad = units.loc[numeric.isna(), "id"].tolist()
    if bad:
        raise DataError(f"non-numeric or missing score in column '{score_column}' for ids {bad}", table, bad)

    infinite = units.loc[~np.isfinite(numeric), "id"].tolist()
    if infinite:
        raise DataError(f"non-finite score in column '{score_column}' for ids {infinite}", table, infinite)

    units["score"] = numeric.astype(float)
    ScoredUnitSchema.validate(units)
    return units


def id_kind(values: pd.Series) -> str:
    """Classify an id column as ``"integer"``, ``"float"`` or ``"text"`` from its non-null values."""
    present = values.dropna().tolist()
    if present and all(isinstance(v, Integral) and not isinstance(v, bool) for v in present):
        return "integer"
    if present and all(isinstance(v, Real) and not isinstance(v, bool) for v in present):
        return "float"
    return "text"


def restore_ids(df: pd.DataFrame, kinds: Dict[str, str]) -> pd.DataFrame:
    """Convert id columns read back from storage to their recorded kind.

    Missing ids become ``None``, so integer ids with gaps never turn into floats.
    """
    casts = {"integer": int, "float": float, "text": str}
    result = df.copy()
    for column, kind in kinds.items():
        if column not in result.columns:
            continue
        cast = casts[kind]
        restored = [None if pd.isna(value) else cast(value) for value in result[column].tolist()]
        result[column] = pd.Series(restored, index=result.index, dtype=object)
    return result
