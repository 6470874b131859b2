"""
Factory functions for creating StorageManager instances.

This module handles storage adapter selection,
keeping the StorageManager class simple and focused on coordination.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from ..core import Registry
from .base import StorageInterface

if TYPE_CHECKING:
    from .manager import StorageManager

# Registry of available storage adapters - adapters self-register via decorator
STORAGE_REGISTRY: Registry[StorageInterface] = Registry(StorageInterface, "storage")


def create_storage_manager(
    storage_url: str,
    storage_type: str = "local",
    prefix: str = "job-greedy-match",
    job_id: Optional[str] = None,
    create: bool = True,
) -> "StorageManager":
    """Create a StorageManager with the appropriate storage adapter.

    Args:
        storage_url: Base path for job directories (e.g., "./data").
        storage_type: Registered adapter name (default: "local").
        prefix: Prefix of generated job ids.
        job_id: Optional job ID for reopening an existing job or using a custom ID.
        create: Create the job directory; False reopens an existing one only.

    Returns:
        StorageManager: Configured manager with the appropriate adapter.

    Raises:
        ValueError: If the storage type is not registered.
    """
    storage_config = {
        "storage_url": storage_url,
        "prefix": prefix,
        "job_id": job_id,
        "create": create,
    }

    return create_storage_manager_from_config(storage_config, storage_type)


def create_storage_manager_from_config(
    storage_config: Dict[str, Any],
    storage_type: str = "local",
) -> "StorageManager":
    """Create a StorageManager from a configuration dict."""
    from .manager import StorageManager

    adapter = get_storage_adapter(storage_type)

    return StorageManager(
        storage_config=storage_config,
        adapter=adapter,
    )


def get_storage_adapter(storage_type: str) -> StorageInterface:
    """Get an instance of the storage adapter for the given type.

    Raises:
        ValueError: If the storage type is not supported.
    """
    return STORAGE_REGISTRY.get(storage_type)


# Import adapters to trigger self-registration via decorators
# These imports must be at the end after STORAGE_REGISTRY is defined
from .local_adapter import LocalStorageAdapter  # noqa: E402, F401
