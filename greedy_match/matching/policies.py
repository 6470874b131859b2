"""Selection policies deciding which subject is served next in a round.

Every policy defines one sort key per candidate pair. The same key ranks
subjects (a subject ranks by its best pair) and orders the chosen subject's
own candidates. Keys end with the pair's random key and enumeration sequence,
so each ranking is a total order and never depends on sort stability.

Available policies (``MATCHING.opt``):
- ``none``: random key only.
- ``num``: fewest live candidates first, then random key.
- ``close``: smallest rounded score difference first, then random key.
"""

import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Hashable, Iterable, List, Optional, Tuple

from ..core.registry import Registry

if TYPE_CHECKING:
    from .candidates import CandidatePair, CandidateSet

logger = logging.getLogger(__name__)

DEFAULT_POLICY = "none"

# (exclusive upper bound, decimal places); anything >= 0.1 keeps one place.
_CLOSENESS_BUCKETS = (
    (1e-8, 9),
    (1e-7, 8),
    (1e-6, 7),
    (1e-5, 6),
    (1e-4, 5),
    (1e-3, 4),
    (1e-2, 3),
    (1e-1, 2),
)


def closeness_key(abs_diff: float) -> float:
    """Round a score difference to the unit of its order of magnitude.

    Differences below 1e-8 round to a multiple of 1e-9, [1e-8, 1e-7) to a
    multiple of 1e-8, and so on up to 1e-1 and above, which round to a
    multiple of 0.1. Halves round up. Exactly zero is returned unchanged.

    Examples:
        >>> closeness_key(0.0)
        0.0
        >>> closeness_key(0.0123)
        0.01
        >>> closeness_key(0.00456)
        0.005
    """
    if abs_diff == 0:
        return 0.0

    places = 1
    for upper, bucket_places in _CLOSENESS_BUCKETS:
        if abs_diff < upper:
            places = bucket_places
            break

    unit = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(abs_diff))).quantize(unit, rounding=ROUND_HALF_UP))


class SelectionPolicy(ABC):
    """Ordering rule for subjects and for a subject's own candidates.

    Removing pairs may change a pair's key but never the relative order of
    the pairs left to one subject; ``SubjectQueue`` relies on this.
    """

    name: str = ""

    @abstractmethod
    def pair_key(self, pair: "CandidatePair", candidates: "CandidateSet") -> Tuple[Any, ...]:
        """Sort key of a live pair given the current candidate set. Lower ranks first."""
        pass

    def subject_key(self, subject_id: Hashable, candidates: "CandidateSet") -> Tuple[Any, ...]:
        """A subject ranks by the key of its best live pair."""
        return min(self.pair_key(pair, candidates) for pair in candidates.pairs(subject_id))

    def select_subject(self, eligible: Iterable[Hashable], candidates: "CandidateSet") -> Hashable:
        """Return the top-ranked subject among the eligible ones.

        Raises:
            ValueError: If no subject is eligible.
        """
        ranked = [(self.subject_key(subject_id, candidates), subject_id) for subject_id in eligible]
        if not ranked:
            raise ValueError("No eligible subject to select")
        return min(ranked, key=lambda item: item[0])[1]

    def order_candidates(self, subject_id: Hashable, candidates: "CandidateSet") -> List["CandidatePair"]:
        """The subject's live pairs, best first."""
        return sorted(candidates.pairs(subject_id), key=lambda pair: self.pair_key(pair, candidates))


POLICY_REGISTRY: Registry[SelectionPolicy] = Registry(SelectionPolicy, "selection policy")


@POLICY_REGISTRY.register_decorator("none")
class RandomOrderPolicy(SelectionPolicy):
    """No preference: rounds and candidates follow the random key."""

    name = "none"

    def pair_key(self, pair, candidates):
        return (pair.random_key, pair.sequence)


@POLICY_REGISTRY.register_decorator("num")
class FewestCandidatesPolicy(SelectionPolicy):
    """Serve subjects with the fewest live candidates first.

    Hard-to-match subjects go before their few controls are consumed by
    subjects with plenty of alternatives.
    """

    name = "num"

    def pair_key(self, pair, candidates):
        return (candidates.count(pair.subject_id), pair.random_key, pair.sequence)


@POLICY_REGISTRY.register_decorator("close")
class ClosenessPolicy(SelectionPolicy):
    """Serve the globally closest pair first, by rounded score difference."""

    name = "close"

    def pair_key(self, pair, candidates):
        return (pair.closeness_key, pair.random_key, pair.sequence)


class SubjectQueue:
    """Lazy priority queue of subjects ranked by a policy.

    Tracks each subject's best live pair and its key. Keys go stale as rounds
    remove pairs; ``refresh`` re-keys the subjects a round touched and
    ``pop_best`` skips entries that no longer match, so a round costs time in
    proportion to the pairs it removed rather than to the whole set.
    """

    def __init__(self, policy: SelectionPolicy, candidates: "CandidateSet"):
        self.policy = policy
        self.candidates = candidates
        self._best: Dict[Hashable, "CandidatePair"] = {}
        self._keys: Dict[Hashable, Tuple[Any, ...]] = {}
        self._heap: List[Tuple[Tuple[Any, ...], int, Hashable]] = []
        self._counter = itertools.count()
        for subject_id in candidates.subjects():
            self._push(subject_id, self._best_pair(subject_id))

    def _best_pair(self, subject_id: Hashable) -> "CandidatePair":
        return min(self.candidates.pairs(subject_id), key=lambda pair: self.policy.pair_key(pair, self.candidates))

    def _push(self, subject_id: Hashable, best: "CandidatePair") -> None:
        key = self.policy.pair_key(best, self.candidates)
        self._best[subject_id] = best
        self._keys[subject_id] = key
        heapq.heappush(self._heap, (key, next(self._counter), subject_id))

    def refresh(self, subject_ids: Iterable[Hashable]) -> None:
        """Re-key subjects that lost pairs since they were last keyed."""
        for subject_id in subject_ids:
            if subject_id not in self.candidates:
                self._best.pop(subject_id, None)
                self._keys.pop(subject_id, None)
                continue
            best = self._best.get(subject_id)
            if best is None or self.candidates.get(subject_id, best.control_id) is None:
                best = self._best_pair(subject_id)
            if self.policy.pair_key(best, self.candidates) != self._keys.get(subject_id):
                self._push(subject_id, best)

    def pop_best(self) -> Optional[Hashable]:
        """Remove and return the top-ranked live subject, or None if there is none."""
        while self._heap:
            key, _, subject_id = heapq.heappop(self._heap)
            if subject_id in self.candidates and self._keys.get(subject_id) == key:
                del self._keys[subject_id]
                del self._best[subject_id]
                return subject_id
        return None


def get_policy(name: Any) -> SelectionPolicy:
    """Look up a selection policy by its ``opt`` name.

    Unrecognized names fall back to ``none`` with a warning instead of failing
    the run.
    """
    key = str(name).strip().lower() if name is not None else ""
    if key not in POLICY_REGISTRY:
        logger.warning(
            f"Unknown selection policy {name!r}; using '{DEFAULT_POLICY}'. "
            f"Available: {POLICY_REGISTRY.keys()}"
        )
        key = DEFAULT_POLICY
    return POLICY_REGISTRY.get(key)
