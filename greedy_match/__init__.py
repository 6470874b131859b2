"""
Greedy Match - greedy propensity-score matching of subjects to controls.
"""

from .core import ConfigurationError, DataError, load_config, process_config
from .engine import run_matching
from .matching import (
    POLICY_REGISTRY,
    GreedyMatcher,
    MatchingAbortedError,
    MatchResult,
    SelectionPolicy,
    get_policy,
    match_units,
)
from .results import MatchJobResult, load_results
from .storage import JobInfo

__version__ = "0.1.0"
__author__ = "eisenhauer.io"


__all__ = [
    "run_matching",
    "load_results",
    "match_units",
    "MatchJobResult",
    "MatchResult",
    "GreedyMatcher",
    "SelectionPolicy",
    "POLICY_REGISTRY",
    "get_policy",
    "JobInfo",
    "ConfigurationError",
    "DataError",
    "MatchingAbortedError",
    "load_config",
    "process_config",
]
