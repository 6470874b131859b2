"""Join committed matches back onto the full subject table."""

from typing import Collection, Hashable, Sequence

import numpy as np
import pandas as pd

from ..core.contracts import FinalRecordSchema, MatchedPairSchema, UnmatchedSubjectSchema
from .rounds import MatchedPair

NO_CANDIDATES = "no_candidates"
CANDIDATES_EXHAUSTED = "candidates_exhausted"


def matches_to_frame(matches: Sequence[MatchedPair]) -> pd.DataFrame:
    """Committed matches as a DataFrame in commit order."""
    columns = MatchedPairSchema.all_columns()
    frame = pd.DataFrame([[getattr(m, col) for col in columns] for m in matches], columns=columns)
    frame["control_id"] = frame["control_id"].astype(object)
    return frame


def assemble_results(subjects: pd.DataFrame, matches: Sequence[MatchedPair]) -> pd.DataFrame:
    """Left-outer join of matches onto every original subject.

    A subject with K committed matches appears K times, once per control.
    A subject without matches appears once with null control fields.

    Args:
        subjects: Subject table in ScoredUnit layout (``id``, ``score``).
        matches: Pairs committed by the matching loop.

    Returns:
        DataFrame with FinalRecord columns, sorted by subject id then control
        id (unmatched rows last within a subject).
    """
    base = subjects.loc[:, ["id", "score"]].rename(columns={"id": "subject_id", "score": "subject_score"})

    if matches:
        matched = matches_to_frame(matches).loc[:, ["subject_id", "control_id", "control_score"]]
        final = base.merge(matched, on="subject_id", how="left", validate="one_to_many")
    else:
        final = base.assign(control_id=pd.Series([None] * len(base), index=base.index, dtype=object))
        final["control_score"] = np.nan

    final["control_id"] = final["control_id"].astype(object).where(final["control_id"].notna(), None)
    final = final.sort_values(["subject_id", "control_id"], kind="mergesort", na_position="last")
    final = final.reset_index(drop=True)

    FinalRecordSchema.validate(final)
    return final.loc[:, FinalRecordSchema.required]


def unmatched_subjects(
    subjects: pd.DataFrame,
    matches: Sequence[MatchedPair],
    had_candidates: Collection[Hashable],
) -> pd.DataFrame:
    """Subjects without any committed match, with the reason.

    ``no_candidates``: no control was ever within the caliper.
    ``candidates_exhausted``: candidates existed but fell below match_ratio
    before the subject was served.
    """
    matched_ids = {m.subject_id for m in matches}
    had_candidates = set(had_candidates)

    rows = [
        (subject_id, score, CANDIDATES_EXHAUSTED if subject_id in had_candidates else NO_CANDIDATES)
        for subject_id, score in zip(subjects["id"].tolist(), subjects["score"].tolist())
        if subject_id not in matched_ids
    ]
    return pd.DataFrame(rows, columns=UnmatchedSubjectSchema.required)
