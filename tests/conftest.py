"""Fixtures shared by kube-inventory tests."""

from collections.abc import Generator
import logging

import pytest

from kube_inventory.manager import InMemoryResourceManager
from kube_inventory.orchestrator import ReconcileConfig, Reconciler

_LOGGER = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def debug_logging(caplog: pytest.LogCaptureFixture) -> Generator[None, None, None]:
    """Capture debug logs from the library, including phase traces."""
    caplog.set_level(logging.DEBUG, logger="kube_inventory")
    yield


@pytest.fixture(name="manager")
def manager_fixture() -> InMemoryResourceManager:
    """An empty in memory cluster with the default namespaces."""
    return InMemoryResourceManager()


@pytest.fixture(name="config")
def config_fixture() -> ReconcileConfig:
    """Reconcile configuration with short waits."""
    return ReconcileConfig(timeout=2.0, wait_interval=0.01)


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    manager: InMemoryResourceManager, config: ReconcileConfig
) -> Reconciler:
    """A reconciler for the in memory cluster."""
    return Reconciler(manager, config)
