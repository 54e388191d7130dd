"""Interface to the engine that applies objects to a cluster."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from kube_inventory.resource import ObjectIdentity, Resource

__all__ = [
    "Action",
    "Change",
    "ChangeSet",
    "ApplyOptions",
    "DeleteOptions",
    "WaitOptions",
    "ResourceManager",
    "set_owner_labels",
]

_LOGGER = logging.getLogger(__name__)

OWNER_NAME_LABEL = "kube-inventory.dev/name"
OWNER_NAMESPACE_LABEL = "kube-inventory.dev/namespace"
FIELD_MANAGER = "kube-inventory"

DEFAULT_TIMEOUT = 60.0


class Action(StrEnum):
    """The outcome of an operation on a single object."""

    CREATED = "created"
    CONFIGURED = "configured"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Change:
    """A change made to a single object."""

    identity: ObjectIdentity
    action: Action

    def __str__(self) -> str:
        """Return the change as a single line, e.g. `Namespace/apps created`."""
        return f"{self.identity} {self.action}"


@dataclass
class ChangeSet:
    """The changes made by an operation over many objects."""

    entries: list[Change] = field(default_factory=list)

    def add(self, change: Change) -> None:
        self.entries.append(change)

    def __iter__(self) -> Iterator[Change]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class ApplyOptions:
    """Options for applying objects."""

    force: bool = False
    """Recreate objects that contain immutable field changes."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds allowed for waiting on a recreated object to terminate."""


@dataclass
class DeleteOptions:
    """Options for deleting objects."""

    propagation: str = "background"
    """Cascading deletion policy for dependents of the object."""


@dataclass
class WaitOptions:
    """Options for waiting on objects."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds to wait for all objects before failing."""

    interval: float = 2.0
    """Seconds between status checks."""


class ResourceManager(ABC):
    """Applies, deletes and watches objects in a cluster.

    Every method acts on a single object or a sequence of objects in the order
    given; implementations do not reorder or parallelize.
    """

    @abstractmethod
    async def get(self, resource: Resource) -> dict[str, Any] | None:
        """Return the live object, or None if it does not exist."""

    @abstractmethod
    async def apply(self, resource: Resource, options: ApplyOptions) -> Change:
        """Create or update the object in the cluster."""

    async def apply_all(
        self,
        resources: Iterable[Resource],
        options: ApplyOptions,
        on_change: Callable[[Change], None] | None = None,
    ) -> ChangeSet:
        """Apply each object in order, stopping at the first error.

        The `on_change` callback receives each change as soon as it is made,
        including the changes made before a failure.
        """
        change_set = ChangeSet()
        for resource in resources:
            change = await self.apply(resource, options)
            change_set.add(change)
            if on_change is not None:
                on_change(change)
        return change_set

    @abstractmethod
    async def delete(self, resource: Resource, options: DeleteOptions) -> Change:
        """Delete the object from the cluster, skipping objects that do not exist."""

    async def delete_all(
        self, resources: Iterable[Resource], options: DeleteOptions
    ) -> ChangeSet:
        """Delete each object in order, stopping at the first error."""
        change_set = ChangeSet()
        for resource in resources:
            change_set.add(await self.delete(resource, options))
        return change_set

    @abstractmethod
    async def wait(self, resources: Iterable[Resource], options: WaitOptions) -> None:
        """Block until all objects are ready.

        Raises:
            WaitTimeoutError: If any object is not ready within the timeout.
        """

    @abstractmethod
    async def wait_for_termination(
        self, resources: Iterable[Resource], options: WaitOptions
    ) -> None:
        """Block until all objects are removed from the cluster.

        Raises:
            WaitTimeoutError: If any object still exists after the timeout.
        """


def set_owner_labels(resources: Iterable[Resource], name: str, namespace: str) -> None:
    """Label objects with the inventory that owns them."""
    for resource in resources:
        resource.set_labels(
            {
                OWNER_NAME_LABEL: name,
                OWNER_NAMESPACE_LABEL: namespace,
            }
        )
