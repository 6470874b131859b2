"""Storage layer for the greedy_match package."""

from .base import StorageInterface
from .factory import (
    STORAGE_REGISTRY,
    create_storage_manager,
    create_storage_manager_from_config,
)
from .manager import JobInfo, StorageManager

__all__ = [
    "JobInfo",
    "StorageInterface",
    "StorageManager",
    "STORAGE_REGISTRY",
    "create_storage_manager",
    "create_storage_manager_from_config",
]
