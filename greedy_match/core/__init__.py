"""Core configuration, contract and registry modules for greedy-match."""

from .contracts import (
    ID_COLUMNS,
    DataError,
    FinalRecordSchema,
    MatchedPairSchema,
    Schema,
    ScoredUnitSchema,
    UnmatchedSubjectSchema,
    id_kind,
    normalize_units,
    restore_ids,
)
from .registry import Registry
from .validation import (
    ConfigurationError,
    check_match_ratio,
    check_score_diff,
    deep_merge,
    get_defaults,
    load_config,
    process_config,
)

__all__ = [
    "ID_COLUMNS",
    "ConfigurationError",
    "DataError",
    "FinalRecordSchema",
    "MatchedPairSchema",
    "Registry",
    "Schema",
    "ScoredUnitSchema",
    "UnmatchedSubjectSchema",
    "check_match_ratio",
    "check_score_diff",
    "deep_merge",
    "get_defaults",
    "id_kind",
    "load_config",
    "normalize_units",
    "process_config",
    "restore_ids",
]
