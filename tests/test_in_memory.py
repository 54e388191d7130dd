"""Tests for the in memory cluster."""

from typing import Any

import pytest

from kube_inventory.exceptions import ApplyException, WaitTimeoutError
from kube_inventory.manager import (
    Action,
    ApplyOptions,
    Change,
    DeleteOptions,
    InMemoryResourceManager,
    WaitOptions,
)
from kube_inventory.resource import Resource


def config_map(
    namespace: str = "default", data: dict[str, Any] | None = None
) -> Resource:
    return Resource(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "settings", "namespace": namespace},
            "data": data or {},
        }
    )


CRD = Resource(
    {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": "widgets.example.com"},
        "spec": {"group": "example.com", "names": {"kind": "Widget"}},
    }
)
WIDGET = Resource(
    {
        "apiVersion": "example.com/v1",
        "kind": "Widget",
        "metadata": {"name": "gadget", "namespace": "default"},
    }
)


async def test_apply_actions(manager: InMemoryResourceManager) -> None:
    """Test the action reported for each apply."""
    options = ApplyOptions()
    change = await manager.apply(config_map(), options)
    assert change.action == Action.CREATED
    assert str(change) == "ConfigMap/default/settings created"
    assert (await manager.apply(config_map(), options)).action == Action.UNCHANGED
    configured = await manager.apply(config_map(data={"a": "b"}), options)
    assert configured.action == Action.CONFIGURED


async def test_apply_missing_namespace(manager: InMemoryResourceManager) -> None:
    """Test namespaced objects require their namespace."""
    with pytest.raises(ApplyException, match='namespaces "apps" not found'):
        await manager.apply(config_map(namespace="apps"), ApplyOptions())


async def test_apply_missing_crd(manager: InMemoryResourceManager) -> None:
    """Test custom objects require their definition."""
    with pytest.raises(ApplyException, match='no matches for kind "Widget"'):
        await manager.apply(WIDGET, ApplyOptions())
    await manager.apply(CRD, ApplyOptions())
    assert (await manager.apply(WIDGET, ApplyOptions())).action == Action.CREATED


async def test_apply_crd_not_ready(manager: InMemoryResourceManager) -> None:
    """Test custom objects require their definition to be ready."""
    manager.not_ready.add(CRD.identity)
    await manager.apply(CRD, ApplyOptions())
    with pytest.raises(ApplyException, match="no matches for kind"):
        await manager.apply(WIDGET, ApplyOptions())


async def test_apply_all_stops_at_error(manager: InMemoryResourceManager) -> None:
    """Test applying many objects stops at the first failure."""
    first = config_map()
    second = config_map(namespace="apps")
    third = config_map(namespace="kube-system")
    changes: list[Change] = []
    with pytest.raises(ApplyException):
        await manager.apply_all(
            [first, second, third], ApplyOptions(), changes.append
        )
    assert first.identity in manager.identities
    assert changes == [Change(first.identity, Action.CREATED)]
    assert third.identity not in manager.identities


async def test_delete(manager: InMemoryResourceManager) -> None:
    """Test deleting objects that do and do not exist."""
    await manager.apply(config_map(), ApplyOptions())
    change_set = await manager.delete_all([config_map(), config_map()], DeleteOptions())
    assert [change.action for change in change_set] == [Action.DELETED, Action.SKIPPED]
    assert len(change_set) == 2


async def test_wait(manager: InMemoryResourceManager) -> None:
    """Test waiting for objects to become ready."""
    await manager.apply(CRD, ApplyOptions())
    await manager.wait([CRD], WaitOptions(timeout=1.0, interval=0.01))
    manager.not_ready.add(CRD.identity)
    with pytest.raises(WaitTimeoutError, match="CustomResourceDefinition/widgets"):
        await manager.wait([CRD], WaitOptions(timeout=0.05, interval=0.01))


async def test_wait_missing_object(manager: InMemoryResourceManager) -> None:
    """Test an object that was never applied is never ready."""
    with pytest.raises(WaitTimeoutError) as exc_info:
        await manager.wait([config_map()], WaitOptions(timeout=0.05, interval=0.01))
    assert exc_info.value.identities == [config_map().identity]


async def test_wait_for_termination(manager: InMemoryResourceManager) -> None:
    """Test waiting for deleted objects to be removed."""
    await manager.apply(config_map(), ApplyOptions())
    manager.stuck_terminating.add(config_map().identity)
    change = await manager.delete(config_map(), DeleteOptions())
    assert change.action == Action.DELETED
    with pytest.raises(WaitTimeoutError, match="objects to terminate"):
        await manager.wait_for_termination(
            [config_map()], WaitOptions(timeout=0.05, interval=0.01)
        )
    manager.stuck_terminating.clear()
    await manager.delete(config_map(), DeleteOptions())
    await manager.wait_for_termination(
        [config_map()], WaitOptions(timeout=1.0, interval=0.01)
    )
