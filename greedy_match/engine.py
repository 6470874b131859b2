"""
Matching run entry point for the greedy_match package.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from .core import ID_COLUMNS, ConfigurationError, id_kind, process_config
from .matching import GreedyMatcher, MatchResult
from .storage import JobInfo, create_storage_manager

SCHEMA_VERSION = "1.0"

logger = logging.getLogger(__name__)

# Text formats read the id column as written; parquet keeps its stored types.
_TABLE_READERS = {
    ".csv": lambda path, id_column: pd.read_csv(path, dtype={id_column: str}),
    ".parquet": lambda path, id_column: pd.read_parquet(path),
    ".json": lambda path, id_column: pd.read_json(path, dtype={id_column: str}),
}


def read_table(path: str, table: str, id_column: str) -> pd.DataFrame:
    """Read a subject or control table; the file suffix selects the reader (CSV by default).

    Ids in CSV and JSON files are kept as the text in the file, so ``007`` and
    ``7`` stay distinct.

    Raises:
        ConfigurationError: If the file does not exist.
    """
    table_path = Path(path)
    if not table_path.is_file():
        raise ConfigurationError(f"{table} table not found: {path}", path=f"DATA.{table.upper()}.path")
    reader = _TABLE_READERS.get(table_path.suffix.lower(), _TABLE_READERS[".csv"])
    return reader(table_path, id_column)


def build_matcher_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten MATCHING and the table column names into GreedyMatcher.connect() params."""
    subjects = config["DATA"]["SUBJECTS"]
    controls = config["DATA"]["CONTROLS"]
    return {
        **config["MATCHING"],
        "subject_id_column": subjects["id_column"],
        "subject_score_column": subjects["score_column"],
        "control_id_column": controls["id_column"],
        "control_score_column": controls["score_column"],
    }


def run_matching(
    config_path: str,
    storage_url: str = "./data",
    job_id: Optional[str] = None,
) -> JobInfo:
    """
    Match subjects to controls as configured and persist the results.

    Configuration and data are fully validated and matching completes before
    anything is written, so a failing run leaves no job directory behind.

    Args:
        config_path: Path to YAML/JSON configuration with DATA, MATCHING and OUTPUT sections.
        storage_url: Base directory for job output (e.g., "./data").
        job_id: Optional job ID; auto-generated when omitted.

    Returns:
        JobInfo: Handle for the completed run. Use ``load_results(job_info)``
            to load all artifacts into a typed ``MatchJobResult``.

    Raises:
        ConfigurationError: Invalid configuration, missing tables or columns.
        DataError: Non-numeric scores or duplicate ids.
        MatchingAbortedError: A configured host bound stopped the loop.
    """
    config = process_config(config_path)
    output_format = config["OUTPUT"]["format"]

    subject_source = config["DATA"]["SUBJECTS"]
    control_source = config["DATA"]["CONTROLS"]
    subjects = read_table(subject_source["path"], "subjects", subject_source["id_column"])
    controls = read_table(control_source["path"], "controls", control_source["id_column"])

    matcher = GreedyMatcher()
    matcher.connect(build_matcher_config(config))
    result: MatchResult = matcher.match(subjects, controls)
    result.metadata = {"executed_at": datetime.now(timezone.utc).isoformat()}

    storage_manager = create_storage_manager(storage_url, job_id=job_id)
    storage_manager.write_yaml("config.yaml", config)
    storage_manager.write_json("match_results.json", result.to_dict())

    pipeline_files = {
        "config": {"path": "config.yaml", "format": "yaml"},
        "match_results": {"path": "match_results.json", "format": "json"},
    }
    for name, df in result.artifacts.items():
        filename = f"{name}.{output_format}"
        storage_manager.write_table(filename, df, output_format)
        pipeline_files[name] = {
            "path": filename,
            "format": output_format,
            "id_types": {col: id_kind(df[col]) for col in ID_COLUMNS if col in df.columns},
        }

    # Manifest last: its presence marks a complete job.
    manifest = {
        "schema_version": SCHEMA_VERSION,
        "model_type": result.model_type,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "files": pipeline_files,
    }
    storage_manager.write_json("manifest.json", manifest)

    job = storage_manager.get_job()
    logger.info(f"Matching job {job.job_id} written to {storage_manager.full_path('')}")
    return job
