"""Exceptions related to kube-inventory."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .resource import ObjectIdentity

__all__ = [
    "InventoryException",
    "InputException",
    "PlanningException",
    "ApplyException",
    "InventoryStorageError",
    "InventoryCorruptError",
    "InventoryNotFoundError",
    "DeleteFailedError",
    "WaitTimeoutError",
    "CommandException",
    "ArtifactException",
]


class InventoryException(Exception):
    """Generic base exception used for this library."""


class InputException(InventoryException):
    """Raised when the input files or values are not formatted as expected."""


class PlanningException(InventoryException):
    """Raised when a set of objects cannot be classified or ordered."""


class ApplyException(InventoryException):
    """Raised when an object could not be applied to the cluster."""


class InventoryStorageError(InventoryException):
    """Raised when the persisted inventory could not be read or written."""


class InventoryCorruptError(InventoryStorageError):
    """Raised when a persisted inventory exists but cannot be decoded."""


class InventoryNotFoundError(InventoryStorageError):
    """Raised when an inventory is required but does not exist."""


class DeleteFailedError(InventoryException):
    """Raised after a delete loop when one or more objects failed to delete."""

    def __init__(
        self, failures: Sequence[tuple["ObjectIdentity", Exception]]
    ) -> None:
        self.failures = list(failures)
        details = "; ".join(f"{identity}: {err}" for identity, err in self.failures)
        super().__init__(f"Failed to delete {len(self.failures)} object(s): {details}")


class WaitTimeoutError(InventoryException):
    """Raised when objects did not become ready or terminate in time."""

    def __init__(
        self, message: str, identities: Sequence["ObjectIdentity"] | None = None
    ) -> None:
        self.identities = list(identities or ())
        if self.identities:
            message = f"{message}: {', '.join(str(i) for i in self.identities)}"
        super().__init__(message)


class CommandException(InventoryException):
    """Raised when there is a failure running a subcommand."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class ArtifactException(InventoryException):
    """Raised when an OCI artifact could not be fetched."""
