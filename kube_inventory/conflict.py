"""Avoid fighting other controllers over fields they own.

A workload targeted by a HorizontalPodAutoscaler has its replica count managed
by the autoscaler. Applying the declared `spec.replicas` on every run would
reset the scale and the two would keep undoing each other, so the field is
removed before the workload is submitted.
"""

from collections.abc import Iterable
import logging

from .resource import ObjectIdentity, Resource

__all__ = [
    "resolve_replica_conflicts",
]

_LOGGER = logging.getLogger(__name__)


def resolve_replica_conflicts(resources: Iterable[Resource]) -> list[ObjectIdentity]:
    """Remove the replica field from workloads scaled by an autoscaler in the set.

    Returns the identities of the modified workloads.
    """
    resources = list(resources)
    targets: set[tuple[str, str, str]] = set()
    for resource in resources:
        if (ref := resource.scale_target_ref) is None:
            continue
        targets.add((resource.namespace, ref.kind, ref.name))

    modified: list[ObjectIdentity] = []
    for resource in resources:
        if (resource.namespace, resource.kind, resource.name) not in targets:
            continue
        if not resource.has_replicas:
            continue
        _LOGGER.info(
            "Removing spec.replicas from %s which is managed by an autoscaler",
            resource.identity,
        )
        resource.remove_replicas()
        modified.append(resource.identity)
    return modified
