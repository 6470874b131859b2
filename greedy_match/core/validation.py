"""
Centralized configuration validation for greedy-match.

Single entry point for config processing:
    load -> merge defaults -> validate structure -> validate parameters

- Schema derived from config_defaults.yaml (null values = required fields)
- Deep merge of user config over defaults
- All structural problems are collected and reported together
- Unknown selection policies are not rejected here; the matcher falls back to "none"
"""

import copy
import json
from functools import lru_cache
from numbers import Integral, Real
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

SUPPORTED_OUTPUT_FORMATS = ("csv", "parquet")

_TABLE_SECTIONS = ("SUBJECTS", "CONTROLS")
_TABLE_FIELDS = ("path", "id_column", "score_column")


class ConfigurationError(ValueError):
    """Raised for invalid configuration, always before any matching work starts."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        context = f" at '{path}'" if path else ""
        super().__init__(f"{message}{context}")


# --- Defaults Loading ---


@lru_cache(maxsize=1)
def get_defaults() -> Dict[str, Any]:
    """Load and cache config_defaults.yaml.

    Returns:
        Dict containing all default values.
    """
    defaults_path = Path(__file__).parent.parent / "config_defaults.yaml"
    if not defaults_path.exists():
        return {}

    with open(defaults_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# --- Deep Merge ---


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary (typically defaults).
        override: Override dictionary (typically user config).

    Returns:
        Merged dictionary. Neither input is modified.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result


# --- Parameter checks shared with the matcher ---


def check_match_ratio(value: Any) -> int:
    """Return match_ratio as int, or raise ConfigurationError."""
    if isinstance(value, bool) or not isinstance(value, Integral) or value < 1:
        raise ConfigurationError(f"match_ratio must be a positive integer, got {value!r}")
    return int(value)


def check_score_diff(value: Any) -> float:
    """Return score_diff as float, or raise ConfigurationError.

    Numeric strings are accepted: PyYAML reads ``1e-3`` (no dot) as a string.
    """
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise ConfigurationError(f"score_diff must be a non-negative number, got {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, Real) or value != value:
        raise ConfigurationError(f"score_diff must be a non-negative number, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"score_diff must be non-negative, got {value!r}")
    return float(value)


# --- Validation Pipeline ---


def _validate_file(config_path: str) -> str:
    """Stage 1: Validate file exists and is a regular file."""
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if not path.is_file():
        raise ConfigurationError(f"Path is not a file: {config_path}")

    return str(path.absolute())


def _validate_format(config_path: str) -> Dict[str, Any]:
    """Stage 2: Parse file as YAML or JSON.

    Raises:
        ConfigurationError: If the file can't be parsed or is not a mapping.
    """
    path = Path(config_path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in [".json"]:
                config = json.load(f)
            elif path.suffix.lower() in [".yaml", ".yml"]:
                config = yaml.safe_load(f) or {}
            else:
                # Try JSON first, then YAML
                content = f.read()
                try:
                    config = json.loads(content)
                except json.JSONDecodeError:
                    config = yaml.safe_load(content) or {}
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse configuration file: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a mapping")
    return config


def _validate_structure(config: Dict[str, Any]) -> List[str]:
    """Stage 3: Validate required sections and fields.

    Returns:
        List of validation errors (empty if valid).
    """
    errors = []

    for section in ("DATA", "MATCHING", "OUTPUT"):
        if not isinstance(config.get(section), dict):
            errors.append(f"Missing required section: {section}")

    data = config.get("DATA") or {}
    for table in _TABLE_SECTIONS:
        table_config = data.get(table)
        if not isinstance(table_config, dict):
            errors.append(f"Missing required field: DATA.{table}")
            continue
        for field in _TABLE_FIELDS:
            if table_config.get(field) in (None, ""):
                errors.append(f"Missing required field: DATA.{table}.{field}")

    matching = config.get("MATCHING") or {}
    for field in ("match_ratio", "score_diff"):
        if matching.get(field) is None:
            errors.append(f"Missing required field: MATCHING.{field}")

    return errors


def _validate_parameters(config: Dict[str, Any]) -> List[str]:
    """Stage 4: Validate parameter values.

    Validates:
    - match_ratio is a positive integer
    - score_diff is a non-negative number
    - seed is an integer when given
    - host bounds (max_rounds, time_limit) are positive when given
    - output format is supported

    Returns:
        List of validation errors (empty if valid).
    """
    errors = []
    matching = config["MATCHING"]

    for field, check in (("match_ratio", check_match_ratio), ("score_diff", check_score_diff)):
        try:
            check(matching[field])
        except ConfigurationError as e:
            errors.append(f"MATCHING.{field}: {e}")

    seed = matching.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, Integral)):
        errors.append(f"MATCHING.seed: must be an integer, got {seed!r}")

    max_rounds = matching.get("max_rounds")
    if max_rounds is not None and (
        isinstance(max_rounds, bool) or not isinstance(max_rounds, Integral) or max_rounds < 1
    ):
        errors.append(f"MATCHING.max_rounds: must be a positive integer, got {max_rounds!r}")

    time_limit = matching.get("time_limit")
    if time_limit is not None and (
        isinstance(time_limit, bool) or not isinstance(time_limit, Real) or time_limit <= 0
    ):
        errors.append(f"MATCHING.time_limit: must be a positive number of seconds, got {time_limit!r}")

    output_format = str(config["OUTPUT"].get("format", "csv")).lower()
    if output_format not in SUPPORTED_OUTPUT_FORMATS:
        errors.append(f"OUTPUT.format: '{output_format}' not in {list(SUPPORTED_OUTPUT_FORMATS)}")

    return errors


def _validate_merged(merged: Dict[str, Any]) -> Dict[str, Any]:
    structure_errors = _validate_structure(merged)
    if structure_errors:
        raise ConfigurationError("Configuration structure errors:\n  - " + "\n  - ".join(structure_errors))

    param_errors = _validate_parameters(merged)
    if param_errors:
        raise ConfigurationError("Configuration parameter errors:\n  - " + "\n  - ".join(param_errors))

    merged["MATCHING"]["score_diff"] = check_score_diff(merged["MATCHING"]["score_diff"])
    merged["OUTPUT"]["format"] = str(merged["OUTPUT"].get("format", "csv")).lower()
    return merged


# --- Main Entry Point ---


def load_config(source: str | Path | Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Canonical entry point. Accepts file path, dict, or None (returns defaults).

    Parameters
    ----------
    source : str | Path | dict | None
        YAML/JSON file path, pre-parsed dict, or ``None`` for pure defaults.
        When a dict is supplied, file-loading stages are skipped.

    Returns
    -------
    dict
        Fully validated and merged configuration.

    Raises
    ------
    ConfigurationError
        If validation fails. ``None`` always fails because the table paths,
        column names and ``score_diff`` have no defaults.
    """
    if source is None or isinstance(source, dict):
        return _validate_merged(deep_merge(get_defaults(), source or {}))
    return process_config(str(source))


def process_config(config_path: str) -> Dict[str, Any]:
    """Process configuration file through full validation pipeline.

    Pipeline stages:
    1. Validate file exists and is readable
    2. Parse and validate format (YAML/JSON)
    3. Merge with defaults (deep merge)
    4. Validate structure (required sections/fields)
    5. Validate parameters (ranges and types)

    Args:
        config_path: Path to configuration file.

    Returns:
        Fully validated and merged configuration dictionary.

    Raises:
        ConfigurationError: If any validation stage fails.
    """
    validated_path = _validate_file(config_path)
    user_config = _validate_format(validated_path)
    merged_config = deep_merge(get_defaults(), user_config)
    return _validate_merged(merged_config)
