"""Tests for the kubectl resource manager."""

import json
from typing import Any

import pytest

from kube_inventory import command
from kube_inventory.command import Command
from kube_inventory.exceptions import KubectlException, WaitTimeoutError
from kube_inventory.manager import (
    Action,
    ApplyOptions,
    DeleteOptions,
    KubectlConfig,
    KubectlResourceManager,
    WaitOptions,
)
from kube_inventory.resource import Resource

DEPLOYMENT = Resource(
    {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "app", "namespace": "apps"},
        "spec": {"replicas": 1},
    }
)
STATEFUL_SET = Resource(
    {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": "db", "namespace": "apps"},
    }
)
CONFIG_MAP = Resource(
    {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "settings", "namespace": "apps"},
    }
)


class FakeKubectl:
    """Records kubectl invocations and returns canned output in order."""

    def __init__(self) -> None:
        self.commands: list[Command] = []
        self.stdin: list[Any] = []
        self.responses: list[str | Exception] = []

    async def run(self, cmd: Command, stdin: bytes | None = None) -> str:
        self.commands.append(cmd)
        self.stdin.append(json.loads(stdin) if stdin else None)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def args(self) -> list[list[str]]:
        return [cmd.cmd[1:] for cmd in self.commands]


@pytest.fixture(name="kubectl")
def kubectl_fixture(monkeypatch: pytest.MonkeyPatch) -> FakeKubectl:
    """Replace subprocess execution with a fake kubectl."""
    fake = FakeKubectl()
    monkeypatch.setattr(command, "run", fake.run)
    return fake


@pytest.fixture(name="kubectl_manager")
def kubectl_manager_fixture() -> KubectlResourceManager:
    return KubectlResourceManager()


async def test_get(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test reading a live object."""
    kubectl.responses = ["", json.dumps(DEPLOYMENT.doc)]
    assert await kubectl_manager.get(DEPLOYMENT) is None
    assert await kubectl_manager.get(DEPLOYMENT) == DEPLOYMENT.doc
    assert kubectl.args[0] == ["get", "-f", "-", "-o", "json", "--ignore-not-found"]
    assert kubectl.stdin[0] == DEPLOYMENT.doc
    assert all(cmd.exc is KubectlException for cmd in kubectl.commands)


async def test_get_invalid_output(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test output that is not json is an error."""
    kubectl.responses = ["not json"]
    with pytest.raises(KubectlException, match="Unable to parse kubectl output"):
        await kubectl_manager.get(DEPLOYMENT)


async def test_apply_created(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test applying an object that does not exist."""
    kubectl.responses = ["", "deployment.apps/app serverside-applied"]
    change = await kubectl_manager.apply(DEPLOYMENT, ApplyOptions())
    assert change.action == Action.CREATED
    assert kubectl.args[1] == [
        "apply",
        "--server-side",
        "--field-manager=kube-inventory",
        "--force-conflicts",
        "-f",
        "-",
    ]


async def test_apply_unchanged(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test applying an object that matches the live object."""
    kubectl.responses = [json.dumps(DEPLOYMENT.doc), ""]
    change = await kubectl_manager.apply(DEPLOYMENT, ApplyOptions())
    assert change.action == Action.UNCHANGED
    assert kubectl.args[1][0] == "diff"
    assert kubectl.commands[1].retcodes == [1]
    assert len(kubectl.commands) == 2


async def test_apply_configured(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test applying an object that differs from the live object."""
    kubectl.responses = [json.dumps(DEPLOYMENT.doc), "-  replicas: 2", ""]
    change = await kubectl_manager.apply(DEPLOYMENT, ApplyOptions())
    assert change.action == Action.CONFIGURED
    assert [args[0] for args in kubectl.args] == ["get", "diff", "apply"]


async def test_apply_immutable(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test an immutable field change fails without force."""
    kubectl.responses = [
        json.dumps(DEPLOYMENT.doc),
        "diff",
        KubectlException("spec.selector: Invalid value: field is immutable"),
    ]
    with pytest.raises(KubectlException, match="field is immutable"):
        await kubectl_manager.apply(DEPLOYMENT, ApplyOptions())


async def test_apply_force_recreate(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test an immutable field change recreates the object with force."""
    kubectl.responses = [
        json.dumps(DEPLOYMENT.doc),
        "diff",
        KubectlException("spec.selector: Invalid value: field is immutable"),
        "deployment.apps/app",
        "",
        "",
    ]
    change = await kubectl_manager.apply(
        DEPLOYMENT, ApplyOptions(force=True, timeout=30.0)
    )
    assert change.action == Action.CREATED
    assert [args[0] for args in kubectl.args] == [
        "get",
        "diff",
        "apply",
        "delete",
        "wait",
        "apply",
    ]
    assert "--cascade=foreground" in kubectl.args[3]
    assert "--for=delete" in kubectl.args[4]
    assert kubectl.args[4][4] in ("--timeout=29s", "--timeout=30s")
    assert 39.0 < kubectl.commands[4].timeout <= 40.0


async def test_apply_force_other_error(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test force only recreates objects for immutable field errors."""
    kubectl.responses = [
        json.dumps(DEPLOYMENT.doc),
        "diff",
        KubectlException("admission webhook denied the request"),
    ]
    with pytest.raises(KubectlException, match="admission webhook"):
        await kubectl_manager.apply(DEPLOYMENT, ApplyOptions(force=True))


async def test_delete(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test deleting objects that do and do not exist."""
    kubectl.responses = ["deployment.apps/app\n", ""]
    change = await kubectl_manager.delete(DEPLOYMENT, DeleteOptions())
    assert change.action == Action.DELETED
    change = await kubectl_manager.delete(DEPLOYMENT, DeleteOptions())
    assert change.action == Action.SKIPPED
    assert kubectl.args[0] == [
        "delete",
        "-f",
        "-",
        "--ignore-not-found",
        "--wait=false",
        "--cascade=background",
        "-o",
        "name",
    ]


async def test_wait(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test waiting uses a readiness check for each kind."""
    await kubectl_manager.wait(
        [DEPLOYMENT, CONFIG_MAP, STATEFUL_SET], WaitOptions(timeout=30)
    )
    assert len(kubectl.commands) == 2
    deployment_args, stateful_set_args = kubectl.args
    assert deployment_args[:4] == ["wait", "-f", "-", "--for=condition=Available"]
    assert deployment_args[4].startswith("--timeout=")
    assert stateful_set_args[:3] == ["rollout", "status", "statefulset/db"]
    assert stateful_set_args[3:5] == ["-n", "apps"]
    assert kubectl.commands[0].timeout > 30


async def test_wait_timeout(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test a kubectl timeout is reported with the object."""
    kubectl.responses = [
        KubectlException("error: timed out waiting for the condition")
    ]
    with pytest.raises(WaitTimeoutError, match="Deployment/apps/app") as exc_info:
        await kubectl_manager.wait([DEPLOYMENT], WaitOptions(timeout=5))
    assert [str(i) for i in exc_info.value.identities] == ["Deployment/apps/app"]


async def test_wait_expired(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test no commands are run once the timeout has passed."""
    with pytest.raises(WaitTimeoutError):
        await kubectl_manager.wait_for_termination(
            [DEPLOYMENT, CONFIG_MAP], WaitOptions(timeout=0)
        )
    assert kubectl.commands == []


async def test_wait_for_termination(
    kubectl: FakeKubectl, kubectl_manager: KubectlResourceManager
) -> None:
    """Test waiting for every object to be deleted."""
    await kubectl_manager.wait_for_termination(
        [DEPLOYMENT, CONFIG_MAP], WaitOptions(timeout=30)
    )
    assert [args[:4] for args in kubectl.args] == [
        ["wait", "-f", "-", "--for=delete"],
        ["wait", "-f", "-", "--for=delete"],
    ]


async def test_cluster_flags(kubectl: FakeKubectl) -> None:
    """Test the context and kubeconfig are passed to every command."""
    kubectl_manager = KubectlResourceManager(
        KubectlConfig(
            kubectl_bin="/usr/local/bin/kubectl", context="prod", kubeconfig="/tmp/kc"
        )
    )
    await kubectl_manager.get(CONFIG_MAP)
    assert kubectl.commands[0].cmd[:5] == [
        "/usr/local/bin/kubectl",
        "--context",
        "prod",
        "--kubeconfig",
        "/tmp/kc",
    ]
