"""Persistence of inventory records in the cluster.

Each inventory is stored as a ConfigMap with the same name and namespace as the
inventory. The record is written as a whole and is never patched.
"""

from collections.abc import Callable
import logging
from typing import Any

from .exceptions import (
    InventoryCorruptError,
    InventoryException,
    InventoryStorageError,
)
from .inventory import InventoryRecord, stale_set
from .manager import ApplyOptions, Change, DeleteOptions, ResourceManager
from .resource import CONFIG_MAP_KIND, NAMESPACE_KIND, Resource

__all__ = [
    "InventoryStorage",
    "stale_objects",
]

_LOGGER = logging.getLogger(__name__)

INVENTORY_KEY = "inventory"
COMPONENT_LABEL = "app.kubernetes.io/component"
CREATED_BY_LABEL = "app.kubernetes.io/created-by"
CREATED_BY = "kube-inventory"


def _config_map(
    name: str, namespace: str, data: dict[str, str] | None = None
) -> Resource:
    doc: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": CONFIG_MAP_KIND,
        "metadata": {"name": name, "namespace": namespace},
    }
    if data is not None:
        doc["metadata"]["labels"] = {
            COMPONENT_LABEL: INVENTORY_KEY,
            CREATED_BY_LABEL: CREATED_BY,
        }
        doc["data"] = data
    return Resource(doc)


def _namespace(name: str) -> Resource:
    return Resource(
        {"apiVersion": "v1", "kind": NAMESPACE_KIND, "metadata": {"name": name}}
    )


class InventoryStorage:
    """Reads and writes inventory records through a ResourceManager."""

    def __init__(self, manager: ResourceManager) -> None:
        """Initialize InventoryStorage."""
        self._manager = manager

    async def load(self, name: str, namespace: str) -> InventoryRecord | None:
        """Return the stored inventory, or None if it has never been saved.

        Raises:
            InventoryCorruptError: If the stored object cannot be decoded.
        """
        doc = await self._manager.get(_config_map(name, namespace))
        if doc is None:
            _LOGGER.debug("Inventory %s/%s not found", namespace, name)
            return None
        content = (doc.get("data") or {}).get(INVENTORY_KEY)
        if not isinstance(content, str):
            raise InventoryCorruptError(
                f"ConfigMap/{namespace}/{name} has no '{INVENTORY_KEY}' data"
            )
        record = InventoryRecord.decode(content)
        if record.name != name or record.namespace != namespace:
            raise InventoryCorruptError(
                f"ConfigMap/{namespace}/{name} contains inventory "
                f"{record.namespaced_name}"
            )
        return record

    async def save(
        self,
        record: InventoryRecord,
        create_namespace: bool = False,
        on_change: Callable[[Change], None] | None = None,
    ) -> None:
        """Overwrite the stored inventory with the specified record.

        When `create_namespace` is set a missing inventory namespace is created
        first and the change is passed to `on_change`.
        """
        try:
            namespace = _namespace(record.namespace)
            if await self._manager.get(namespace) is None:
                if not create_namespace:
                    raise InventoryStorageError(
                        f"Inventory namespace '{record.namespace}' not found"
                    )
                change = await self._manager.apply(namespace, ApplyOptions())
                if on_change is not None:
                    on_change(change)
                else:
                    _LOGGER.info("%s", change)
            await self._manager.apply(
                _config_map(
                    record.name, record.namespace, {INVENTORY_KEY: record.encode()}
                ),
                ApplyOptions(),
            )
        except InventoryStorageError:
            raise
        except InventoryException as err:
            raise InventoryStorageError(
                f"Unable to save inventory {record.namespaced_name}: {err}"
            ) from err
        _LOGGER.debug(
            "Saved inventory %s with %d object(s)",
            record.namespaced_name,
            len(record.entries),
        )

    async def delete(self, record: InventoryRecord) -> None:
        """Remove the stored inventory."""
        try:
            await self._manager.delete(
                _config_map(record.name, record.namespace), DeleteOptions()
            )
        except InventoryException as err:
            raise InventoryStorageError(
                f"Unable to delete inventory {record.namespaced_name}: {err}"
            ) from err


def stale_objects(
    previous: InventoryRecord | None, current: InventoryRecord
) -> list[Resource]:
    """Return addressable objects for entries that are no longer in the inventory."""
    if previous is None:
        return []
    stale = stale_set(previous, current)
    return [entry.stub() for entry in previous.entries if entry.identity in stale]
