"""Round execution and the loop that drives rounds until no subject is eligible.

A subject is eligible while it holds at least ``match_ratio`` live candidate
pairs. Counts only shrink, so a subject that falls below the bar is retired
for good: its pairs are removed, which never changes another subject's count.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, Iterable, List, Optional, Tuple

from ..core.validation import check_match_ratio
from .candidates import CandidateSet
from .policies import SelectionPolicy, SubjectQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchedPair:
    """A committed subject -> control assignment."""

    subject_id: Hashable
    control_id: Hashable
    subject_score: float
    control_score: float
    abs_diff: float
    round: int


@dataclass(frozen=True)
class RoundOutcome:
    """What one round committed and removed.

    Attributes:
        round: 1-based round number.
        subject_id: The subject served in this round.
        matches: Pairs committed for the subject.
        retired: Subjects retired at the start of the round for having fewer
            than ``match_ratio`` live pairs.
        pairs_removed: Live pairs removed during the round, retirements included.
        pairs_remaining: Size of the candidate set after the round.
    """

    round: int
    subject_id: Hashable
    matches: Tuple[MatchedPair, ...]
    retired: Tuple[Hashable, ...]
    pairs_removed: int
    pairs_remaining: int


class LoopState(Enum):
    ACTIVE = "active"
    DONE = "done"


class MatchingAbortedError(RuntimeError):
    """Raised when a host bound (rounds or wall-clock) stops the loop early.

    Attributes:
        matches: Pairs committed before the abort.
        rounds: Number of completed rounds.
    """

    def __init__(self, message: str, matches: List[MatchedPair], rounds: int):
        super().__init__(message)
        self.matches = list(matches)
        self.rounds = rounds


class MatchRound:
    """Executes single rounds against a shared candidate set.

    Subjects are ranked through a ``SubjectQueue`` built on the first round.
    Later rounds only re-check the subjects whose pairs the previous cascade
    removed; every other subject kept its count and its rank.
    """

    def __init__(self, candidates: CandidateSet, policy: SelectionPolicy, match_ratio: int):
        self.candidates = candidates
        self.policy = policy
        self.match_ratio = check_match_ratio(match_ratio)
        self._order = {subject_id: i for i, subject_id in enumerate(candidates.subjects())}
        self._queue: Optional[SubjectQueue] = None
        # None until the first round: every subject still has to be checked.
        self._touched: Optional[List[Hashable]] = None

    def eligible_subjects(self) -> List[Hashable]:
        """Subjects holding at least match_ratio live pairs."""
        return [
            subject_id
            for subject_id in self.candidates.subjects()
            if self.candidates.count(subject_id) >= self.match_ratio
        ]

    def has_eligible(self) -> bool:
        """Whether any subject holds match_ratio live pairs."""
        if self._touched is None:
            return bool(self.eligible_subjects())
        touched = [subject_id for subject_id in self._touched if subject_id in self.candidates]
        if any(self.candidates.count(subject_id) >= self.match_ratio for subject_id in touched):
            return True
        # Untouched subjects were at or above the bar after the last retirement.
        return self.candidates.num_subjects() > len(touched)

    def retire_ineligible(self, subject_ids: Optional[Iterable[Hashable]] = None) -> Tuple[List[Hashable], int]:
        """Remove the pairs of every subject below the bar.

        Args:
            subject_ids: Subjects to check; all live subjects when omitted.

        Returns:
            Tuple of (retired subject ids, number of pairs removed).
        """
        pool = self.candidates.subjects() if subject_ids is None else subject_ids
        retired = []
        removed = 0
        for subject_id in pool:
            if subject_id in self.candidates and self.candidates.count(subject_id) < self.match_ratio:
                removed += self.candidates.remove_subject(subject_id)
                retired.append(subject_id)
        return retired, removed

    def _in_input_order(self, subject_ids: Iterable[Hashable]) -> List[Hashable]:
        return sorted(subject_ids, key=self._order.__getitem__)

    def execute(self, round_number: int) -> RoundOutcome:
        """Serve the top-ranked subject and cascade the removals.

        Raises:
            ValueError: If no subject is eligible.
        """
        retired, removed = self.retire_ineligible(self._touched)
        if self._queue is None:
            self._queue = SubjectQueue(self.policy, self.candidates)

        subject_id = self._queue.pop_best()
        if subject_id is None:
            raise ValueError("No eligible subject to select")
        chosen = self.policy.order_candidates(subject_id, self.candidates)[: self.match_ratio]
        matches = tuple(
            MatchedPair(
                subject_id=pair.subject_id,
                control_id=pair.control_id,
                subject_score=pair.subject_score,
                control_score=pair.control_score,
                abs_diff=pair.abs_diff,
                round=round_number,
            )
            for pair in chosen
        )

        touched = set()
        for pair in chosen:
            touched.update(self.candidates.subjects_for_control(pair.control_id))
        touched.discard(subject_id)

        # The subject is served; its consumed controls leave every other subject's list too.
        removed += self.candidates.remove_subject(subject_id)
        for pair in chosen:
            removed += self.candidates.remove_control(pair.control_id)

        self._touched = self._in_input_order(touched)
        self._queue.refresh(self._touched)

        return RoundOutcome(
            round=round_number,
            subject_id=subject_id,
            matches=matches,
            retired=tuple(retired),
            pairs_removed=removed,
            pairs_remaining=len(self.candidates),
        )


class MatchingLoop:
    """Runs MatchRound until no subject holds match_ratio live pairs.

    The loop owns the candidate set for its whole lifetime and is the only
    writer of it. Committed matches are append-only.

    Args:
        candidates: Freshly generated candidate set; consumed by the loop.
        policy: Selection policy applied in every round.
        match_ratio: Maximum (and required) number of controls per subject.
        max_rounds: Optional bound on the number of rounds.
        time_limit: Optional wall-clock bound in seconds, checked between rounds.
    """

    def __init__(
        self,
        candidates: CandidateSet,
        policy: SelectionPolicy,
        match_ratio: int,
        max_rounds: Optional[int] = None,
        time_limit: Optional[float] = None,
    ):
        self.candidates = candidates
        self.policy = policy
        self.max_rounds = max_rounds
        self.time_limit = time_limit
        self._round = MatchRound(candidates, policy, match_ratio)
        self.matches: List[MatchedPair] = []
        self.history: List[RoundOutcome] = []
        self.state = self._next_state()

    def _next_state(self) -> LoopState:
        return LoopState.ACTIVE if self._round.has_eligible() else LoopState.DONE

    def run(self) -> List[MatchedPair]:
        """Run rounds to completion and return all committed matches.

        Raises:
            MatchingAbortedError: If max_rounds or time_limit is exceeded
                while subjects are still eligible.
        """
        started = time.monotonic()

        while self.state is LoopState.ACTIVE:
            if self.max_rounds is not None and len(self.history) >= self.max_rounds:
                raise MatchingAbortedError(
                    f"Matching stopped after max_rounds={self.max_rounds} with subjects still eligible",
                    self.matches,
                    len(self.history),
                )
            if self.time_limit is not None and time.monotonic() - started > self.time_limit:
                raise MatchingAbortedError(
                    f"Matching exceeded time_limit={self.time_limit}s after {len(self.history)} rounds",
                    self.matches,
                    len(self.history),
                )

            outcome = self._round.execute(len(self.history) + 1)
            self.history.append(outcome)
            self.matches.extend(outcome.matches)
            logger.debug(
                f"Round {outcome.round}: subject {outcome.subject_id!r} -> "
                f"{[m.control_id for m in outcome.matches]}, "
                f"{outcome.pairs_remaining} pairs left"
            )
            self.state = self._next_state()

        self._round.retire_ineligible()
        return list(self.matches)
