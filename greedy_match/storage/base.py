"""
Base interfaces and common classes for the storage layer.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import pandas as pd


class StorageInterface(ABC):
    """Abstract base class defining the contract for all storage implementations.

    A connected adapter points at one job directory; all paths are relative
    to it.

    Required methods (must override):
        - connect: Initialize adapter with configuration
        - write_json / write_yaml: Write mappings
        - write_csv / write_parquet: Write DataFrames
        - read_json / read_yaml / read_csv / read_parquet: Read them back
        - exists: Check a relative path
        - full_path: Get full path/URL for a relative path

    Optional methods (have sensible defaults):
        - validate_connection: Check if connection is active
        - get_job: Job identifier object
    """

    @abstractmethod
    def connect(self, config: Dict[str, Any]) -> bool:
        """Initialize storage with configuration.

        Args:
            config: Dictionary containing storage_url, prefix and optional job_id.

        Returns:
            bool: True if initialization successful, False otherwise.
        """
        pass

    @abstractmethod
    def write_json(self, path: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def write_yaml(self, path: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def write_csv(self, path: str, df: pd.DataFrame) -> None:
        pass

    @abstractmethod
    def write_parquet(self, path: str, df: pd.DataFrame) -> None:
        pass

    @abstractmethod
    def read_json(self, path: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def read_yaml(self, path: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def read_csv(self, path: str, dtype: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
        pass

    @abstractmethod
    def read_parquet(self, path: str) -> pd.DataFrame:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def full_path(self, path: str) -> str:
        """Get the full path/URL for a relative path.

        Args:
            path: Relative path within the job directory.

        Returns:
            str: Full path or URL to the resource.
        """
        pass

    def validate_connection(self) -> bool:
        """Validate that the storage connection is active and functional.

        Default implementation returns True. Override for custom validation.
        """
        return True

    def get_job(self) -> Any:
        """Get the job handle for this storage location, or None if not applicable."""
        return None
