"""Greedy, round-based, without-replacement caliper matching.

Subjects are served one per round according to a selection policy; each
served subject takes up to ``match_ratio`` controls within ``score_diff`` and
those controls become unavailable to everyone else.
"""

from .assembler import assemble_results, matches_to_frame, unmatched_subjects
from .candidates import DEFAULT_SEED, CandidatePair, CandidateSet, generate_candidates
from .matcher import GreedyMatcher, MatchResult, match_units
from .policies import POLICY_REGISTRY, SelectionPolicy, SubjectQueue, closeness_key, get_policy
from .rounds import LoopState, MatchedPair, MatchingAbortedError, MatchingLoop, MatchRound, RoundOutcome

__all__ = [
    "DEFAULT_SEED",
    "POLICY_REGISTRY",
    "CandidatePair",
    "CandidateSet",
    "GreedyMatcher",
    "LoopState",
    "MatchRound",
    "MatchResult",
    "MatchedPair",
    "MatchingAbortedError",
    "MatchingLoop",
    "RoundOutcome",
    "SelectionPolicy",
    "SubjectQueue",
    "assemble_results",
    "closeness_key",
    "generate_candidates",
    "get_policy",
    "match_units",
    "matches_to_frame",
    "unmatched_subjects",
]
