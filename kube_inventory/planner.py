"""Ordering of objects into apply stages.

Objects that define schema or namespaces for other objects (CRDs and
Namespaces) are applied first and must be ready before anything else is
submitted. Within each stage objects are sorted by a fixed kind precedence
then namespace and name so the plan does not depend on input order.
"""

from collections.abc import Iterable
from dataclasses import dataclass
import logging

from .exceptions import PlanningException
from .resource import ObjectIdentity, Resource

__all__ = [
    "StagePlan",
    "plan",
    "sort_key",
    "teardown_order",
]

_LOGGER = logging.getLogger(__name__)


# Kinds are applied in this order, any kind not listed is applied after these.
KIND_ORDER = [
    "CustomResourceDefinition",
    "Namespace",
    "ClusterClass",
    "RuntimeClass",
    "PriorityClass",
    "StorageClass",
    "VolumeSnapshotClass",
    "IngressClass",
    "GatewayClass",
    "ResourceQuota",
    "ServiceAccount",
    "Role",
    "ClusterRole",
    "RoleBinding",
    "ClusterRoleBinding",
    "ConfigMap",
    "Secret",
    "Service",
    "LimitRange",
    "Deployment",
    "StatefulSet",
    "CronJob",
    "PodDisruptionBudget",
    "MutatingWebhookConfiguration",
    "ValidatingWebhookConfiguration",
]
_KIND_RANK = {kind: index for index, kind in enumerate(KIND_ORDER)}


def sort_key(identity: ObjectIdentity) -> tuple[int, str, str, str, str]:
    """Return the key that totally orders objects within a stage."""
    rank = _KIND_RANK.get(identity.kind, len(KIND_ORDER))
    return (rank, identity.kind, identity.namespace, identity.name, identity.group)


@dataclass(frozen=True)
class StagePlan:
    """The order objects are applied in."""

    foundational: tuple[Resource, ...]
    """CRDs and Namespaces, applied and awaited before anything else."""

    dependent: tuple[Resource, ...]
    """All other objects, applied one at a time."""

    @property
    def ordered(self) -> list[Resource]:
        """Return every object in the order it is applied."""
        return [*self.foundational, *self.dependent]


def plan(resources: Iterable[Resource]) -> StagePlan:
    """Partition the objects into stages and order each stage."""
    foundational: list[Resource] = []
    dependent: list[Resource] = []
    seen: set[ObjectIdentity] = set()
    for resource in resources:
        if resource.identity in seen:
            raise PlanningException(
                f"Unable to plan object {resource.identity}, it appears more than once"
            )
        seen.add(resource.identity)
        if resource.is_cluster_definition:
            foundational.append(resource)
        else:
            dependent.append(resource)

    foundational.sort(key=lambda r: sort_key(r.identity))
    dependent.sort(key=lambda r: sort_key(r.identity))
    _LOGGER.debug(
        "Planned %d foundational and %d dependent object(s)",
        len(foundational),
        len(dependent),
    )
    return StagePlan(foundational=tuple(foundational), dependent=tuple(dependent))


def teardown_order(resources: Iterable[Resource]) -> list[Resource]:
    """Return objects in reverse planned order, dependents before definitions."""
    return list(reversed(plan(resources).ordered))
