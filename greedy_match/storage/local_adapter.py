"""Local filesystem storage adapter: one directory per job."""

import json
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
import yaml

from .base import StorageInterface
from .factory import STORAGE_REGISTRY
from .manager import JobInfo


@STORAGE_REGISTRY.register_decorator("local")
class LocalStorageAdapter(StorageInterface):
    """Writes job artifacts below ``<storage_url>/<job_id>/``.

    A new job id ``<prefix>-<12 hex chars>`` is generated unless one is
    supplied. Reopening (``create=False``) never creates directories.
    """

    def __init__(self):
        """Initialize the LocalStorageAdapter."""
        self.job = None
        self.root = None
        self.is_connected = False

    def connect(self, config: Dict[str, Any]) -> bool:
        """Create (or reopen) the job directory.

        Args:
            config: Dictionary containing:
                - storage_url: Base directory (default "./data")
                - prefix: Job id prefix (default "job-greedy-match")
                - job_id: Optional explicit job id
                - create: Create the job directory (default True). When False
                  the directory must already exist.

        Raises:
            FileNotFoundError: If ``create`` is False and the job directory is missing.
        """
        storage_url = str(config.get("storage_url") or "./data")
        if storage_url.startswith("file://"):
            storage_url = storage_url[len("file://") :]
        prefix = config.get("prefix") or "job-greedy-match"
        job_id = config.get("job_id") or f"{prefix}-{uuid.uuid4().hex[:12]}"

        root = Path(storage_url) / job_id
        if config.get("create", True):
            root.mkdir(parents=True, exist_ok=True)
        elif not root.is_dir():
            raise FileNotFoundError(f"Job directory not found: {root}")

        self.root = root
        self.job = JobInfo(job_id=job_id, storage_url=storage_url)
        self.is_connected = True
        return True

    def _resolve(self, path: str) -> Path:
        if not self.is_connected:
            raise ConnectionError("Storage not connected. Call connect() first.")
        return self.root / path

    def _target(self, path: str) -> Path:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        return target

    def write_json(self, path: str, data: Dict[str, Any]) -> None:
        with open(self._target(path), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def write_yaml(self, path: str, data: Dict[str, Any]) -> None:
        with open(self._target(path), "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)

    def write_csv(self, path: str, df: pd.DataFrame) -> None:
        df.to_csv(self._target(path), index=False)

    def write_parquet(self, path: str, df: pd.DataFrame) -> None:
        df.to_parquet(self._target(path), index=False)

    def read_json(self, path: str) -> Dict[str, Any]:
        with open(self._resolve(path), "r", encoding="utf-8") as f:
            return json.load(f)

    def read_yaml(self, path: str) -> Dict[str, Any]:
        with open(self._resolve(path), "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def read_csv(self, path: str, dtype: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
        return pd.read_csv(self._resolve(path), dtype=dtype)

    def read_parquet(self, path: str) -> pd.DataFrame:
        return pd.read_parquet(self._resolve(path))

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def full_path(self, path: str) -> str:
        return str(self._resolve(path))

    def validate_connection(self) -> bool:
        """Validate that the job directory exists."""
        return self.is_connected and self.root is not None and self.root.is_dir()

    def get_job(self) -> Any:
        return self.job
