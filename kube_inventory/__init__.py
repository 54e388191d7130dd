"""
kube-inventory applies sets of kubernetes objects as a named inventory.

The objects owned by an inventory are recorded in the cluster so that objects
removed from the set can be pruned on the next apply, and the whole set can be
deleted in a safe order.

.. include:: ../README.md
"""

__all__ = [
    "resource",
    "inventory",
    "storage",
    "planner",
    "conflict",
    "orchestrator",
    "render",
    "artifact",
    "manager",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
