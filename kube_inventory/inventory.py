"""The record of which objects an inventory owns.

An inventory is identified by a name and namespace. It is rebuilt from the
rendered objects on every apply and replaces the previously stored record as a
whole. The stale set used for pruning is the difference between the previous
and current record.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import json
import logging
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException, InventoryCorruptError
from .resource import ObjectIdentity, Resource

__all__ = [
    "InventoryEntry",
    "InventoryRecord",
    "Provenance",
    "stale_set",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provenance:
    """Where the objects of an inventory came from."""

    source: str | None = None
    """The URL to the source code."""

    revision: str | None = None
    """The revision identifier of the source."""

    artifacts: tuple[str, ...] = ()
    """Content digests of the artifacts that produced the objects."""


@dataclass(frozen=True, order=True)
class InventoryEntry(DataClassDictMixin):
    """A single object owned by an inventory."""

    id: str
    """The encoded identity of the object."""

    version: str = field(metadata=field_options(alias="v"))
    """The API version used to address the object, e.g. `v1`."""

    @property
    def identity(self) -> ObjectIdentity:
        return ObjectIdentity.parse(self.id)

    def stub(self) -> Resource:
        """Return an addressable object for this entry."""
        return Resource.stub(self.identity, self.version)

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass(frozen=True)
class InventoryRecord(DataClassDictMixin):
    """The set of objects owned by a named inventory."""

    name: str
    """The name of the inventory."""

    namespace: str
    """The namespace where the inventory is stored."""

    entries: tuple[InventoryEntry, ...] = ()
    """Objects owned by the inventory, sorted and unique by identity."""

    source: str | None = None
    """The URL to the source code."""

    revision: str | None = None
    """The revision identifier of the source."""

    artifacts: tuple[str, ...] = ()
    """Content digests of the artifacts that produced the objects."""

    def __post_init__(self) -> None:
        if not self.name:
            raise InputException("Inventory name is required")
        if not self.namespace:
            raise InputException("Inventory namespace is required")
        seen: set[str] = set()
        for entry in self.entries:
            ObjectIdentity.parse(entry.id)
            if entry.id in seen:
                raise InputException(
                    f"Inventory {self.namespaced_name} has duplicate object {entry.id}"
                )
            seen.add(entry.id)
        object.__setattr__(self, "entries", tuple(sorted(self.entries)))

    @classmethod
    def from_resources(
        cls,
        name: str,
        namespace: str,
        resources: Iterable[Resource],
        provenance: Provenance | None = None,
    ) -> "InventoryRecord":
        """Build the inventory for a set of rendered objects."""
        provenance = provenance or Provenance()
        entries: dict[ObjectIdentity, InventoryEntry] = {}
        for resource in resources:
            if resource.identity in entries:
                raise InputException(
                    f"Object {resource.identity} is declared more than once"
                )
            entries[resource.identity] = InventoryEntry(
                id=resource.identity.id, version=resource.version
            )
        return cls(
            name=name,
            namespace=namespace,
            entries=tuple(entries.values()),
            source=provenance.source or None,
            revision=provenance.revision or None,
            artifacts=tuple(provenance.artifacts),
        )

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def identities(self) -> frozenset[ObjectIdentity]:
        """The set of object identities owned by the inventory."""
        return frozenset(entry.identity for entry in self.entries)

    def stubs(self) -> list[Resource]:
        """Return addressable objects for every entry in the inventory."""
        return [entry.stub() for entry in self.entries]

    def encode(self) -> str:
        """Serialize the record in a form that is stable for identical content."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def decode(cls, content: str) -> "InventoryRecord":
        """Parse a serialized record, refusing anything that is not well formed."""
        try:
            data: Any = json.loads(content)
        except ValueError as err:
            raise InventoryCorruptError(f"Unable to decode inventory: {err}") from err
        if not isinstance(data, dict):
            raise InventoryCorruptError(f"Unable to decode inventory: {data!r}")
        try:
            return cls.from_dict(data)
        except (MissingField, InvalidFieldValue, InputException, TypeError) as err:
            raise InventoryCorruptError(f"Unable to decode inventory: {err}") from err

    class Config(BaseConfig):
        omit_none = True


def stale_set(
    previous: InventoryRecord | None, current: InventoryRecord
) -> set[ObjectIdentity]:
    """Return the identities owned by the previous record but not the current one."""
    if previous is None:
        return set()
    return set(previous.identities - current.identities)
