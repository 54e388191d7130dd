"""
The manager module is the boundary between the reconciler and a cluster.

- `ResourceManager` is the abstract apply engine consumed by the reconciler and
  the inventory storage.
- `InMemoryResourceManager` is an in process cluster used by tests.
- `KubectlResourceManager` applies objects to a live cluster with kubectl.
"""

from .manager import (
    Action,
    ApplyOptions,
    Change,
    ChangeSet,
    DeleteOptions,
    ResourceManager,
    WaitOptions,
    set_owner_labels,
)
from .in_memory import InMemoryResourceManager
from .kubectl import KubectlConfig, KubectlResourceManager

__all__ = [
    "Action",
    "ApplyOptions",
    "Change",
    "ChangeSet",
    "DeleteOptions",
    "ResourceManager",
    "WaitOptions",
    "set_owner_labels",
    "InMemoryResourceManager",
    "KubectlConfig",
    "KubectlResourceManager",
]
