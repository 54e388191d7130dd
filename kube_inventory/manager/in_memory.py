"""Module for an in memory cluster.

This is used for testing. It enforces the ordering constraints of
a real API server that matter to an inventory: namespaced objects require their
Namespace, and custom objects require a CustomResourceDefinition that is ready.
"""

import asyncio
import copy
from collections.abc import Callable, Iterable
import logging
from typing import Any

from kube_inventory.exceptions import ApplyException, WaitTimeoutError
from kube_inventory.resource import (
    CORE_GROUP,
    CRD_GROUP,
    CRD_KIND,
    NAMESPACE_KIND,
    ObjectIdentity,
    Resource,
)

from .manager import (
    Action,
    ApplyOptions,
    Change,
    DeleteOptions,
    ResourceManager,
    WaitOptions,
)

_LOGGER = logging.getLogger(__name__)

BUILTIN_GROUPS = {
    CORE_GROUP,
    CRD_GROUP,
    "admissionregistration.k8s.io",
    "apps",
    "autoscaling",
    "batch",
    "coordination.k8s.io",
    "discovery.k8s.io",
    "networking.k8s.io",
    "node.k8s.io",
    "policy",
    "rbac.authorization.k8s.io",
    "scheduling.k8s.io",
    "storage.k8s.io",
}
DEFAULT_NAMESPACES = ["default", "kube-system", "kube-public"]


def _namespace_id(namespace: str) -> ObjectIdentity:
    return ObjectIdentity(CORE_GROUP, NAMESPACE_KIND, "", namespace)


class InMemoryResourceManager(ResourceManager):
    """In-memory implementation of the ResourceManager interface.

    Objects are ready as soon as they are applied and removed as soon as they
    are deleted unless configured otherwise with `not_ready` or
    `stuck_terminating`. Failures for specific objects are injected with
    `apply_errors` and `delete_errors`.
    """

    def __init__(self, namespaces: Iterable[str] = DEFAULT_NAMESPACES) -> None:
        """Initialize the InMemoryResourceManager with pre-existing namespaces."""
        self._objects: dict[ObjectIdentity, dict[str, Any]] = {}
        self._terminating: set[ObjectIdentity] = set()
        self.not_ready: set[ObjectIdentity] = set()
        self.stuck_terminating: set[ObjectIdentity] = set()
        self.apply_errors: dict[ObjectIdentity, Exception] = {}
        self.delete_errors: dict[ObjectIdentity, Exception] = {}
        self.history: list[tuple[str, ObjectIdentity]] = []
        for namespace in namespaces:
            self._objects[_namespace_id(namespace)] = {
                "apiVersion": "v1",
                "kind": NAMESPACE_KIND,
                "metadata": {"name": namespace},
            }

    @property
    def identities(self) -> set[ObjectIdentity]:
        """Return the identities of all live objects."""
        return set(self._objects)

    def get_object(self, identity: ObjectIdentity) -> dict[str, Any] | None:
        """Return a copy of a live object."""
        if (obj := self._objects.get(identity)) is None:
            return None
        return copy.deepcopy(obj)

    async def get(self, resource: Resource) -> dict[str, Any] | None:
        """Return the live object, or None if it does not exist."""
        return self.get_object(resource.identity)

    def _is_ready(self, identity: ObjectIdentity) -> bool:
        if identity not in self._objects or identity in self._terminating:
            return False
        return identity not in self.not_ready

    def _check_schema(self, resource: Resource) -> None:
        """Raise if the API server would not know how to store the object."""
        identity = resource.identity
        if identity.namespace and not self._is_ready(_namespace_id(identity.namespace)):
            raise ApplyException(
                f"{identity} failed: namespaces \"{identity.namespace}\" not found"
            )
        if identity.group in BUILTIN_GROUPS:
            return
        for crd_id, crd in self._objects.items():
            if crd_id.kind != CRD_KIND or not self._is_ready(crd_id):
                continue
            spec = crd.get("spec") or {}
            if (
                spec.get("group") == identity.group
                and (spec.get("names") or {}).get("kind") == identity.kind
            ):
                return
        raise ApplyException(
            f"{identity} failed: no matches for kind \"{identity.kind}\" "
            f"in group \"{identity.group}\""
        )

    async def apply(self, resource: Resource, options: ApplyOptions) -> Change:
        """Create or update the object in the cluster."""
        identity = resource.identity
        self.history.append(("apply", identity))
        if (err := self.apply_errors.get(identity)) is not None:
            raise err
        self._check_schema(resource)
        doc = copy.deepcopy(resource.doc)
        existing = self._objects.get(identity)
        self._objects[identity] = doc
        self._terminating.discard(identity)
        if existing is None:
            action = Action.CREATED
        elif existing == doc:
            action = Action.UNCHANGED
        else:
            action = Action.CONFIGURED
        _LOGGER.debug("Applied %s (%s)", identity, action)
        return Change(identity, action)

    async def delete(self, resource: Resource, options: DeleteOptions) -> Change:
        """Delete the object from the cluster, skipping objects that do not exist."""
        identity = resource.identity
        self.history.append(("delete", identity))
        if (err := self.delete_errors.get(identity)) is not None:
            raise err
        if identity not in self._objects:
            return Change(identity, Action.SKIPPED)
        if identity in self.stuck_terminating:
            self._terminating.add(identity)
        else:
            del self._objects[identity]
        return Change(identity, Action.DELETED)

    async def _poll(
        self,
        check: Callable[[], list[ObjectIdentity]],
        options: WaitOptions,
        message: str,
    ) -> None:
        """Call check until it returns no pending objects or the timeout expires."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + options.timeout
        while pending := check():
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeoutError(message, pending)
            await asyncio.sleep(min(options.interval, remaining))

    async def wait(self, resources: Iterable[Resource], options: WaitOptions) -> None:
        """Block until all objects are ready."""
        identities = [resource.identity for resource in resources]
        self.history.extend(("wait", identity) for identity in identities)
        await self._poll(
            lambda: [i for i in identities if not self._is_ready(i)],
            options,
            "timeout waiting for objects to become ready",
        )

    async def wait_for_termination(
        self, resources: Iterable[Resource], options: WaitOptions
    ) -> None:
        """Block until all objects are removed from the cluster."""
        identities = [resource.identity for resource in resources]
        await self._poll(
            lambda: [i for i in identities if i in self._objects],
            options,
            "timeout waiting for objects to terminate",
        )
