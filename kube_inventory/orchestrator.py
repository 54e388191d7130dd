"""Reconciler for an inventory of objects.

The reconciler applies a rendered set of objects to a cluster in stages,
records the objects it applied in the inventory, and removes objects that were
dropped from the inventory since the last successful run.

An apply run proceeds as follows:
- Build the new inventory record from the rendered objects.
- Remove replica counts that an autoscaler in the set is responsible for.
- Plan the objects into stages.
- Apply CRDs and Namespaces, then wait for them to be ready.
- Apply everything else one object at a time.
- Diff against the previously stored record to find stale objects.
- Save the new record.
- Optionally delete stale objects, dependents before definitions.
- Optionally wait for applied objects to be ready and pruned objects to be gone.

Nothing is rolled back on failure. Re-running with the same objects is safe.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
import functools
import logging

from .conflict import resolve_replica_conflicts
from .context import inventory_context, trace_phase
from .exceptions import (
    ApplyException,
    DeleteFailedError,
    InventoryException,
    InventoryNotFoundError,
    WaitTimeoutError,
)
from .inventory import InventoryRecord, Provenance
from .manager import (
    Action,
    ApplyOptions,
    Change,
    DeleteOptions,
    ResourceManager,
    WaitOptions,
    set_owner_labels,
)
from .planner import plan, teardown_order
from .resource import CONFIG_MAP_KIND, ObjectIdentity, Resource
from .storage import InventoryStorage, stale_objects

__all__ = [
    "ReconcileConfig",
    "ReconcileResult",
    "Reconciler",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class ReconcileConfig:
    """Configuration for a reconcile run.

    Attributes:
        prune: Delete objects that were removed from the inventory.
        wait: Wait for applied objects to become ready and pruned objects
            to be terminated.
        force: Recreate objects that contain immutable field changes.
        timeout: Seconds allowed for all waits in a single run.
        wait_interval: Seconds between status checks while waiting.
        create_namespace: Create the inventory namespace if not present.
        on_change: Called with each change as soon as it is made.
    """

    prune: bool = False
    wait: bool = False
    force: bool = False
    timeout: float = 60.0
    wait_interval: float = 2.0
    create_namespace: bool = False
    on_change: Callable[[Change], None] | None = None


@dataclass
class ReconcileResult:
    """The outcome of a successful reconcile run."""

    inventory: InventoryRecord
    """The inventory that was saved, or deleted."""

    changes: list[Change] = field(default_factory=list)
    """Every change made, in order."""

    stale: list[ObjectIdentity] = field(default_factory=list)
    """Objects found in the previous inventory and not the current one."""


class _Deadline:
    """A single timeout shared by every wait in a run."""

    def __init__(self, timeout: float, interval: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._end = self._loop.time() + timeout
        self._interval = interval

    @property
    def remaining(self) -> float:
        return max(self._end - self._loop.time(), 0.0)

    def options(self, resources: Iterable[Resource], message: str) -> WaitOptions:
        if (remaining := self.remaining) <= 0:
            raise WaitTimeoutError(message, [r.identity for r in resources])
        return WaitOptions(timeout=remaining, interval=self._interval)


class Reconciler:
    """Applies and deletes inventories of objects.

    The reconciler holds no state between runs; the previous inventory is
    always read back from the cluster.
    """

    def __init__(
        self,
        manager: ResourceManager,
        config: ReconcileConfig | None = None,
    ) -> None:
        """Initialize the reconciler."""
        self._manager = manager
        self._storage = InventoryStorage(manager)
        self._config = config or ReconcileConfig()

    @property
    def storage(self) -> InventoryStorage:
        return self._storage

    def _report(self, changes: list[Change], change: Change) -> None:
        _LOGGER.info("%s", change)
        changes.append(change)
        if self._config.on_change is not None:
            self._config.on_change(change)

    async def apply(
        self,
        name: str,
        namespace: str,
        resources: list[Resource],
        provenance: Provenance | None = None,
    ) -> ReconcileResult:
        """Apply the objects and record them as the contents of the inventory."""
        config = self._config
        with inventory_context(f"{namespace}/{name}"):
            deadline = _Deadline(config.timeout, config.wait_interval)
            record = InventoryRecord.from_resources(
                name, namespace, resources, provenance
            )
            resolve_replica_conflicts(resources)
            set_owner_labels(resources, name, namespace)
            stages = plan(resources)
            previous = await self._storage.load(name, namespace)
            _LOGGER.info("applying %d manifest(s)...", len(resources))

            changes: list[Change] = []
            report = functools.partial(self._report, changes)
            if stages.foundational:
                options = ApplyOptions(force=config.force, timeout=deadline.remaining)
                with trace_phase("apply definitions"):
                    try:
                        await self._manager.apply_all(
                            stages.foundational, options, report
                        )
                    except ApplyException:
                        raise
                    except InventoryException as err:
                        raise ApplyException(f"Apply failed: {err}") from err
                with trace_phase("wait definitions"):
                    message = "timeout waiting for definitions to become ready"
                    await self._manager.wait(
                        stages.foundational,
                        deadline.options(stages.foundational, message),
                    )

            with trace_phase("apply"):
                for resource in stages.dependent:
                    options = ApplyOptions(
                        force=config.force, timeout=deadline.remaining
                    )
                    try:
                        change = await self._manager.apply(resource, options)
                    except ApplyException:
                        raise
                    except InventoryException as err:
                        raise ApplyException(
                            f"{resource} apply failed: {err}"
                        ) from err
                    report(change)

            stale = stale_objects(previous, record)
            with trace_phase("save inventory"):
                await self._storage.save(
                    record,
                    config.create_namespace,
                    report,
                )

            pruned: list[Resource] = []
            if config.prune and stale:
                with trace_phase("prune"):
                    pruned = await self._delete_objects(stale, changes)

            if config.wait:
                _LOGGER.info("waiting for resources to become ready...")
                with trace_phase("wait"):
                    ordered = stages.ordered
                    message = "timeout waiting for objects to become ready"
                    await self._manager.wait(
                        ordered, deadline.options(ordered, message)
                    )
                    if pruned:
                        message = "timeout waiting for objects to terminate"
                        await self._manager.wait_for_termination(
                            pruned, deadline.options(pruned, message)
                        )
                _LOGGER.info("all resources are ready")

        return ReconcileResult(
            inventory=record,
            changes=changes,
            stale=[resource.identity for resource in stale],
        )

    async def delete(self, name: str, namespace: str) -> ReconcileResult:
        """Delete every object in the inventory, then the inventory itself."""
        config = self._config
        with inventory_context(f"{namespace}/{name}"):
            deadline = _Deadline(config.timeout, config.wait_interval)
            record = await self._storage.load(name, namespace)
            if record is None:
                raise InventoryNotFoundError(
                    f"Inventory {namespace}/{name} not found"
                )
            _LOGGER.info("deleting %d manifest(s)...", len(record.entries))
            changes: list[Change] = []
            with trace_phase("delete"):
                deleted = await self._delete_objects(record.stubs(), changes)
            await self._storage.delete(record)
            self._report(
                changes,
                Change(
                    ObjectIdentity("", CONFIG_MAP_KIND, namespace, name),
                    Action.DELETED,
                ),
            )
            if config.wait and deleted:
                _LOGGER.info("waiting for resources to be terminated...")
                with trace_phase("wait"):
                    message = "timeout waiting for objects to terminate"
                    await self._manager.wait_for_termination(
                        deleted, deadline.options(deleted, message)
                    )
                _LOGGER.info("all resources have been deleted")

        return ReconcileResult(inventory=record, changes=changes)

    async def _delete_objects(
        self, resources: list[Resource], changes: list[Change]
    ) -> list[Resource]:
        """Delete objects in reverse planned order, continuing past failures.

        Raises:
            DeleteFailedError: After every object was attempted, if any failed.
        """
        failures: list[tuple[ObjectIdentity, Exception]] = []
        deleted: list[Resource] = []
        for resource in teardown_order(resources):
            try:
                change = await self._manager.delete(resource, DeleteOptions())
            except InventoryException as err:
                _LOGGER.error("✗ %s delete failed: %s", resource, err)
                failures.append((resource.identity, err))
                continue
            self._report(changes, change)
            deleted.append(resource)
        if failures:
            raise DeleteFailedError(failures)
        return deleted
