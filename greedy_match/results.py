"""Load and access job results produced by run_matching()."""

from dataclasses import dataclass
from typing import Any, Dict

import pandas as pd

from .core import restore_ids
from .storage import JobInfo, StorageManager

# CSV ids are read as text and converted back to the kind recorded in the manifest.
_FORMAT_READERS = {
    "json": lambda store, info: store.read_json(info["path"]),
    "yaml": lambda store, info: store.read_yaml(info["path"]),
    "csv": lambda store, info: store.read_csv(info["path"], dtype={col: str for col in info.get("id_types", {})}),
    "parquet": lambda store, info: store.read_parquet(info["path"]),
}


@dataclass
class MatchJobResult:
    """Typed container for all artifacts produced by a single matching run.

    Attributes:
        job_id: Unique identifier for the job.
        model_type: Matcher identifier (``"greedy_caliper_matching"``).
        created_at: ISO-8601 timestamp of job completion.
        config: The merged configuration used for this run.
        match_results: The ``match_results.json`` envelope (params, summary, metadata).
        final_records: One row per match, or per unmatched subject.
        matched_pairs: Committed pairs with score difference and round.
        unmatched_subjects: Subjects without a match and the reason.
    """

    job_id: str
    model_type: str
    created_at: str
    config: Dict[str, Any]
    match_results: Dict[str, Any]
    final_records: pd.DataFrame
    matched_pairs: pd.DataFrame
    unmatched_subjects: pd.DataFrame


def load_results(job_info: JobInfo) -> MatchJobResult:
    """Load all artifacts from a completed matching run.

    Reads ``manifest.json`` to discover files, then loads each one using the
    format-appropriate reader.

    Args:
        job_info: ``JobInfo`` returned by :func:`run_matching`.

    Returns:
        MatchJobResult: Typed container with every artifact.

    Raises:
        FileNotFoundError: If the job directory or its manifest is missing.
    """
    store = job_info.get_store()

    if not store.exists("manifest.json"):
        raise FileNotFoundError(f"manifest.json not found in job directory: {store.full_path('manifest.json')}")

    manifest = store.read_json("manifest.json")
    files = manifest["files"]

    return MatchJobResult(
        job_id=job_info.job_id,
        model_type=manifest["model_type"],
        created_at=manifest["created_at"],
        config=_load_file(store, files["config"]),
        match_results=_load_file(store, files["match_results"]),
        final_records=_load_file(store, files["final_records"]),
        matched_pairs=_load_file(store, files["matched_pairs"]),
        unmatched_subjects=_load_file(store, files["unmatched_subjects"]),
    )


def _load_file(store: StorageManager, file_info: Dict[str, Any]) -> Any:
    """Load a single file using the format declared in the manifest."""
    fmt = file_info["format"]
    path = file_info["path"]
    reader = _FORMAT_READERS.get(fmt)
    if reader is None:
        raise ValueError(f"Unsupported format '{fmt}' for file '{path}'")
    data = reader(store, file_info)
    if "id_types" in file_info:
        data = restore_ids(data, file_info["id_types"])
    return data
