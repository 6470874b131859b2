"""
Storage Manager for coordinating storage operations.

The adapter is injected by the factory, so the manager carries no knowledge
of where artifacts physically live.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import pandas as pd

from .base import StorageInterface


@dataclass(frozen=True)
class JobInfo:
    """Handle to one matching run's job directory.

    Attributes:
        job_id: Unique job identifier (also the directory name).
        storage_url: Base location the job lives under.
    """

    job_id: str
    storage_url: str
    storage_type: str = "local"

    def get_store(self) -> "StorageManager":
        """Reopen the job's storage.

        Raises:
            FileNotFoundError: If the job directory does not exist.
        """
        from .factory import create_storage_manager

        return create_storage_manager(
            self.storage_url, storage_type=self.storage_type, job_id=self.job_id, create=False
        )


class StorageManager:
    """Central coordinator for storage management.

    Uses dependency injection - the storage adapter is passed in via constructor,
    making the manager easy to test with mock implementations.
    """

    def __init__(
        self,
        storage_config: Dict[str, Any],
        adapter: StorageInterface,
    ):
        """Initialize the StorageManager with injected storage adapter.

        Args:
            storage_config: Storage configuration (storage_url, prefix, job_id).
            adapter: The storage implementation to use for persistence.
        """
        self.storage_config = storage_config
        self.adapter = adapter

        if not self.adapter.connect(storage_config):
            raise ConnectionError("Failed to connect to storage")

    def write_json(self, path: str, data: Dict[str, Any]) -> None:
        self.adapter.write_json(path, data)

    def write_yaml(self, path: str, data: Dict[str, Any]) -> None:
        self.adapter.write_yaml(path, data)

    def write_csv(self, path: str, df: pd.DataFrame) -> None:
        self.adapter.write_csv(path, df)

    def write_parquet(self, path: str, df: pd.DataFrame) -> None:
        self.adapter.write_parquet(path, df)

    def write_table(self, path: str, df: pd.DataFrame, fmt: str) -> None:
        """Write a DataFrame in the given format ("csv" or "parquet")."""
        if fmt == "csv":
            self.write_csv(path, df)
        elif fmt == "parquet":
            self.write_parquet(path, df)
        else:
            raise ValueError(f"Unsupported table format '{fmt}'")

    def read_json(self, path: str) -> Dict[str, Any]:
        return self.adapter.read_json(path)

    def read_yaml(self, path: str) -> Dict[str, Any]:
        return self.adapter.read_yaml(path)

    def read_csv(self, path: str, dtype: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
        return self.adapter.read_csv(path, dtype=dtype)

    def read_parquet(self, path: str) -> pd.DataFrame:
        return self.adapter.read_parquet(path)

    def exists(self, path: str) -> bool:
        return self.adapter.exists(path)

    def full_path(self, path: str) -> str:
        """Get the full path/URL for a relative path."""
        return self.adapter.full_path(path)

    def get_current_config(self) -> Optional[Dict[str, Any]]:
        """Get the currently loaded configuration."""
        return self.storage_config

    def get_job(self) -> Any:
        """Get the job handle of the underlying adapter."""
        return self.adapter.get_job()
