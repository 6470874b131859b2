"""Candidate pairs within the caliper and the dual-indexed set that holds them.

The CandidateSet is built once by ``generate_candidates`` and afterwards only
shrinks: rounds remove served subjects, consumed controls and retired
subjects, never add pairs.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterator, List, Optional, Set

import numpy as np
import pandas as pd

from ..core.validation import check_score_diff
from .policies import closeness_key

logger = logging.getLogger(__name__)

DEFAULT_SEED = 20240101

# Subjects per vectorised block; bounds the size of the score-difference matrix.
_BLOCK_SIZE = 2048


@dataclass(frozen=True)
class CandidatePair:
    """A (subject, control) pair whose score difference is within the caliper.

    Attributes:
        subject_id: Identifier of the subject (treated unit).
        control_id: Identifier of the control.
        subject_score: Propensity score of the subject.
        control_score: Propensity score of the control.
        abs_diff: ``|subject_score - control_score|``, fixed at creation.
        random_key: Uniform draw in [0, 1) assigned once at generation and
            reused as the tie-breaker in every round.
        sequence: Position in the stable subject-major enumeration order.
        closeness_key: ``abs_diff`` rounded to its order-of-magnitude bucket.
    """

    subject_id: Hashable
    control_id: Hashable
    subject_score: float
    control_score: float
    abs_diff: float
    random_key: float
    sequence: int
    closeness_key: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "closeness_key", closeness_key(self.abs_diff))


class CandidateSet:
    """Live candidate pairs indexed by subject and, in reverse, by control.

    ``_by_subject`` maps subject_id -> {control_id: pair} and ``_by_control``
    maps control_id -> {subject_id}. Every mutation goes through ``_discard``
    so the two views always describe the same pairs. Subjects and controls
    with no live pairs are dropped from the indexes.
    """

    def __init__(self):
        self._by_subject: Dict[Hashable, Dict[Hashable, CandidatePair]] = {}
        self._by_control: Dict[Hashable, Set[Hashable]] = {}
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._by_subject

    def add(self, pair: CandidatePair) -> None:
        """Insert a pair. Only called during generation."""
        row = self._by_subject.setdefault(pair.subject_id, {})
        if pair.control_id in row:
            raise ValueError(f"Duplicate candidate pair ({pair.subject_id!r}, {pair.control_id!r})")
        row[pair.control_id] = pair
        self._by_control.setdefault(pair.control_id, set()).add(pair.subject_id)
        self._size += 1

    def subjects(self) -> List[Hashable]:
        """Subjects holding at least one live pair, in insertion order."""
        return list(self._by_subject)

    def num_subjects(self) -> int:
        """Number of subjects holding at least one live pair."""
        return len(self._by_subject)

    def controls(self) -> List[Hashable]:
        """Controls referenced by at least one live pair."""
        return list(self._by_control)

    def count(self, subject_id: Hashable) -> int:
        """Number of live pairs for the subject (0 if it has none)."""
        return len(self._by_subject.get(subject_id, ()))

    def pairs(self, subject_id: Hashable) -> List[CandidatePair]:
        """Live pairs for the subject."""
        return list(self._by_subject.get(subject_id, {}).values())

    def subjects_for_control(self, control_id: Hashable) -> Set[Hashable]:
        """Subjects currently holding a pair that references the control."""
        return set(self._by_control.get(control_id, ()))

    def get(self, subject_id: Hashable, control_id: Hashable) -> Optional[CandidatePair]:
        return self._by_subject.get(subject_id, {}).get(control_id)

    def __iter__(self) -> Iterator[CandidatePair]:
        for row in self._by_subject.values():
            yield from row.values()

    def remove_subject(self, subject_id: Hashable) -> int:
        """Remove every pair of the subject. Returns the number removed."""
        row = self._by_subject.get(subject_id)
        if not row:
            return 0
        removed = 0
        for control_id in list(row):
            self._discard(subject_id, control_id)
            removed += 1
        return removed

    def remove_control(self, control_id: Hashable) -> int:
        """Remove every pair referencing the control, for any subject."""
        removed = 0
        for subject_id in self.subjects_for_control(control_id):
            self._discard(subject_id, control_id)
            removed += 1
        return removed

    def _discard(self, subject_id: Hashable, control_id: Hashable) -> None:
        row = self._by_subject[subject_id]
        del row[control_id]
        if not row:
            del self._by_subject[subject_id]

        holders = self._by_control[control_id]
        holders.discard(subject_id)
        if not holders:
            del self._by_control[control_id]

        self._size -= 1


def generate_candidates(
    subjects: pd.DataFrame,
    controls: pd.DataFrame,
    score_diff: float,
    seed: Optional[int] = DEFAULT_SEED,
    block_size: int = _BLOCK_SIZE,
) -> CandidateSet:
    """Build the CandidateSet of all pairs within the caliper.

    Pairs are enumerated subject-major (subjects in table order, then controls
    in table order). Each qualifying pair draws its random key from one
    ``numpy.random.default_rng(seed)`` stream in that order, so the keys do
    not depend on ``block_size``.

    Args:
        subjects: Subject table in ScoredUnit layout (``id``, ``score``).
        controls: Control table in ScoredUnit layout.
        score_diff: Caliper; pairs with ``abs_diff <= score_diff`` qualify.
        seed: Seed for the random keys. ``None`` uses ``DEFAULT_SEED``.
        block_size: Subjects compared per vectorised block.

    Returns:
        CandidateSet: Subjects without any qualifying control are absent.

    Raises:
        ConfigurationError: If score_diff is negative or not a number.
    """
    score_diff = check_score_diff(score_diff)
    rng = np.random.default_rng(DEFAULT_SEED if seed is None else seed)

    subject_ids = subjects["id"].tolist()
    subject_scores = subjects["score"].to_numpy(dtype=float)
    control_ids = controls["id"].tolist()
    control_scores = controls["score"].to_numpy(dtype=float)

    candidates = CandidateSet()
    sequence = 0
    step = max(1, block_size)
    for start in range(0, len(subject_scores), step):
        block = subject_scores[start : start + step]
        diffs = np.abs(block[:, None] - control_scores[None, :])
        rows, cols = np.nonzero(diffs <= score_diff)
        keys = rng.random(len(rows))
        for row, col, key in zip(rows.tolist(), cols.tolist(), keys.tolist()):
            position = start + row
            candidates.add(
                CandidatePair(
                    subject_id=subject_ids[position],
                    control_id=control_ids[col],
                    subject_score=float(subject_scores[position]),
                    control_score=float(control_scores[col]),
                    abs_diff=float(diffs[row, col]),
                    random_key=key,
                    sequence=sequence,
                )
            )
            sequence += 1

    no_candidates = [sid for sid in subject_ids if sid not in candidates]
    logger.info(
        f"Generated {len(candidates)} candidate pairs for "
        f"{len(subject_ids) - len(no_candidates)}/{len(subject_ids)} subjects "
        f"(score_diff={score_diff})"
    )
    if no_candidates:
        logger.warning(
            f"{len(no_candidates)} subject(s) have no control within score_diff={score_diff} "
            f"and will stay unmatched: {no_candidates[:10]}"
        )
    return candidates
