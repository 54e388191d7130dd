"""Representation of the Kubernetes objects managed by an inventory.

An `ObjectIdentity` is the canonical key for a cluster object and is what an
inventory records. A `Resource` wraps a rendered document and exposes the small
set of capabilities the reconciler needs (identity, scale target, replicas)
without callers walking the raw document themselves.
"""

import copy
from dataclasses import dataclass
import logging
from typing import Any

import yaml

from .exceptions import InputException

__all__ = [
    "ObjectIdentity",
    "ScaleTargetRef",
    "Resource",
    "parse_resources",
    "load_documents",
    "split_api_version",
]

_LOGGER = logging.getLogger(__name__)

CORE_GROUP = ""
CRD_KIND = "CustomResourceDefinition"
CRD_GROUP = "apiextensions.k8s.io"
NAMESPACE_KIND = "Namespace"
CONFIG_MAP_KIND = "ConfigMap"
HPA_KIND = "HorizontalPodAutoscaler"

# Paths to the pod spec of pods, workload templates and cron jobs
CONTAINER_PATHS = [
    ("spec",),
    ("spec", "template", "spec"),
    ("spec", "jobTemplate", "spec", "template", "spec"),
]
# Keys of container lists in a pod spec, `steps` for tekton tasks
CONTAINER_KEYS = ("containers", "initContainers", "steps")

# Separates the fields of an identity when encoded as a single string. Namespaces,
# groups and kinds never contain it, names of some kinds (e.g. RBAC) may.
_ID_SEPARATOR = "_"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into its group and version, e.g. `apps/v1`."""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return CORE_GROUP, api_version


@dataclass(frozen=True, order=True)
class ObjectIdentity:
    """Identifier for a kubernetes object tracked by an inventory."""

    group: str
    """The API group, empty for the core group."""

    kind: str
    """The kind of the object."""

    namespace: str
    """The namespace of the object, empty for cluster scoped objects."""

    name: str
    """The name of the object."""

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ObjectIdentity":
        """Return the identity of a raw kubernetes object."""
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        group, _ = split_api_version(api_version)
        return cls(
            group=group,
            kind=kind,
            namespace=metadata.get("namespace") or "",
            name=name,
        )

    @classmethod
    def parse(cls, value: str) -> "ObjectIdentity":
        """Parse an identity from its `<namespace>_<name>_<group>_<kind>` form."""
        namespace, sep, rest = value.partition(_ID_SEPARATOR)
        parts = rest.rsplit(_ID_SEPARATOR, 2)
        if not sep or len(parts) != 3 or not parts[0] or not parts[2]:
            raise InputException(f"Invalid object identity '{value}'")
        name, group, kind = parts
        return cls(group=group, kind=kind, namespace=namespace, name=name)

    @property
    def id(self) -> str:
        """Return the canonical string encoding of the identity."""
        return _ID_SEPARATOR.join([self.namespace, self.name, self.group, self.kind])

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name, e.g. `Deployment/apps/podinfo`."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True)
class ScaleTargetRef:
    """The workload an autoscaler is responsible for scaling."""

    kind: str
    name: str


class Resource:
    """A rendered kubernetes object."""

    def __init__(self, doc: dict[str, Any]) -> None:
        """Initialize Resource, validating that the object is addressable."""
        self._identity = ObjectIdentity.from_doc(doc)
        self._doc = doc

    @classmethod
    def stub(cls, identity: ObjectIdentity, version: str) -> "Resource":
        """Return a minimal object that can be used to address an existing object."""
        api_version = f"{identity.group}/{version}" if identity.group else version
        metadata: dict[str, Any] = {"name": identity.name}
        if identity.namespace:
            metadata["namespace"] = identity.namespace
        return cls(
            {"apiVersion": api_version, "kind": identity.kind, "metadata": metadata}
        )

    @property
    def identity(self) -> ObjectIdentity:
        return self._identity

    @property
    def doc(self) -> dict[str, Any]:
        """The raw document, as it will be submitted to the cluster."""
        return self._doc

    @property
    def api_version(self) -> str:
        return str(self._doc["apiVersion"])

    @property
    def version(self) -> str:
        """The version portion of the apiVersion."""
        return split_api_version(self.api_version)[1]

    @property
    def kind(self) -> str:
        return self._identity.kind

    @property
    def namespace(self) -> str:
        return self._identity.namespace

    @property
    def name(self) -> str:
        return self._identity.name

    @property
    def labels(self) -> dict[str, str]:
        return dict(self._doc["metadata"].get("labels") or {})

    def set_labels(self, labels: dict[str, str]) -> None:
        """Merge the specified labels into the object metadata."""
        metadata = self._doc["metadata"]
        metadata["labels"] = {**(metadata.get("labels") or {}), **labels}

    @property
    def is_cluster_definition(self) -> bool:
        """Return True for objects that other objects depend on existing first."""
        if self.kind == CRD_KIND and self._identity.group == CRD_GROUP:
            return True
        return self.kind == NAMESPACE_KIND and self._identity.group == CORE_GROUP

    @property
    def scale_target_ref(self) -> ScaleTargetRef | None:
        """Return the scale target of an autoscaler, or None for other kinds."""
        if self.kind != HPA_KIND:
            return None
        spec = self._doc.get("spec") or {}
        ref = spec.get("scaleTargetRef") or {}
        kind = ref.get("kind")
        name = ref.get("name")
        if not isinstance(kind, str) or not isinstance(name, str):
            _LOGGER.debug("Autoscaler %s has no usable scaleTargetRef", self)
            return None
        return ScaleTargetRef(kind=kind, name=name)

    @property
    def has_replicas(self) -> bool:
        spec = self._doc.get("spec")
        return isinstance(spec, dict) and "replicas" in spec

    def remove_replicas(self) -> None:
        """Drop the declared replica count so another controller may own it."""
        if self.has_replicas:
            del self._doc["spec"]["replicas"]

    @property
    def container_images(self) -> list[str]:
        """Return the unique container images referenced by the object."""
        containers: list[Any] = []
        for path in CONTAINER_PATHS:
            spec: Any = self._doc
            for key in path:
                spec = spec.get(key) if isinstance(spec, dict) else None
            if not isinstance(spec, dict):
                continue
            for key in CONTAINER_KEYS:
                if isinstance(items := spec.get(key), list):
                    containers.extend(items)
        images: set[str] = set()
        for container in containers:
            if isinstance(container, dict) and isinstance(container.get("image"), str):
                images.add(container["image"])
        return sorted(images)

    def copy(self) -> "Resource":
        """Return a deep copy of the object."""
        return Resource(copy.deepcopy(self._doc))

    def yaml(self) -> str:
        """Return the object as a yaml document."""
        return yaml.dump(self._doc, sort_keys=False, explicit_start=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return self._doc == other._doc

    def __repr__(self) -> str:
        return f"Resource({self._identity})"

    def __str__(self) -> str:
        return str(self._identity)


def parse_resources(docs: list[dict[str, Any]]) -> list[Resource]:
    """Parse raw documents into resources, expanding any `List` objects."""
    results: list[Resource] = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object, expected a mapping: {doc}")
        if doc.get("kind") == "List" and isinstance(items := doc.get("items"), list):
            results.extend(parse_resources(items))
            continue
        results.append(Resource(doc))
    return results


def load_documents(content: str, source: str) -> list[dict[str, Any]]:
    """Parse a multi-document yaml stream into raw objects."""
    try:
        docs = [doc for doc in yaml.safe_load_all(content) if doc]
    except yaml.YAMLError as err:
        raise InputException(f"Invalid YAML in {source}: {err}") from err
    for doc in docs:
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object in {source}, expected a mapping")
    return docs
