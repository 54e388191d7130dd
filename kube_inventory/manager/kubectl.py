"""ResourceManager that drives a cluster with kubectl.

Objects are applied with server-side apply. Every command receives the object
on stdin so the same code path handles any kind, including custom resources.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
import json
import logging
from typing import Any

from kube_inventory import command
from kube_inventory.command import Command
from kube_inventory.exceptions import KubectlException, WaitTimeoutError
from kube_inventory.resource import Resource

from .manager import (
    FIELD_MANAGER,
    Action,
    ApplyOptions,
    Change,
    DeleteOptions,
    ResourceManager,
    WaitOptions,
)

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"

# Extra time given to kubectl to exit after its own --timeout expires
_COMMAND_GRACE = 10.0

IMMUTABLE_ERROR = "field is immutable"

# Readiness condition passed to `kubectl wait` by kind. Kinds not listed here
# are ready as soon as they are accepted by the API server.
WAIT_CONDITIONS = {
    "CustomResourceDefinition": "condition=Established",
    "Namespace": "jsonpath={.status.phase}=Active",
    "Deployment": "condition=Available",
    "Job": "condition=Complete",
    "PersistentVolumeClaim": "jsonpath={.status.phase}=Bound",
}

# Kinds whose readiness is checked with `kubectl rollout status`
ROLLOUT_KINDS = {"StatefulSet", "DaemonSet"}


@dataclass
class KubectlConfig:
    """Configuration for invoking kubectl."""

    kubectl_bin: str = KUBECTL_BIN
    """Path to the kubectl binary."""

    context: str | None = None
    """The kubeconfig context to use."""

    kubeconfig: str | None = None
    """Path to the kubeconfig file."""


class KubectlResourceManager(ResourceManager):
    """Applies objects to a live cluster using kubectl."""

    def __init__(self, config: KubectlConfig | None = None) -> None:
        """Initialize KubectlResourceManager."""
        self._config = config or KubectlConfig()

    def _cmd(
        self,
        *args: str,
        timeout: float = command.DEFAULT_TIMEOUT,
        retcodes: list[int] | None = None,
    ) -> Command:
        cmd = [self._config.kubectl_bin]
        if self._config.context:
            cmd.extend(["--context", self._config.context])
        if self._config.kubeconfig:
            cmd.extend(["--kubeconfig", self._config.kubeconfig])
        cmd.extend(args)
        return Command(cmd, exc=KubectlException, retcodes=retcodes, timeout=timeout)

    @staticmethod
    def _stdin(resource: Resource) -> bytes:
        return json.dumps(resource.doc).encode("utf-8")

    async def get(self, resource: Resource) -> dict[str, Any] | None:
        """Return the live object, or None if it does not exist."""
        out = await command.run(
            self._cmd("get", "-f", "-", "-o", "json", "--ignore-not-found"),
            stdin=self._stdin(resource),
        )
        if not out.strip():
            return None
        try:
            result: dict[str, Any] = json.loads(out)
        except ValueError as err:
            raise KubectlException(
                f"Unable to parse kubectl output for {resource}: {err}"
            ) from err
        return result

    async def _server_side_apply(self, resource: Resource) -> None:
        await command.run(
            self._cmd(
                "apply",
                "--server-side",
                f"--field-manager={FIELD_MANAGER}",
                "--force-conflicts",
                "-f",
                "-",
            ),
            stdin=self._stdin(resource),
        )

    async def _has_diff(self, resource: Resource) -> bool:
        # kubectl diff exits 1 when there are differences
        out = await command.run(
            self._cmd(
                "diff",
                "--server-side",
                f"--field-manager={FIELD_MANAGER}",
                "--force-conflicts",
                "-f",
                "-",
                retcodes=[1],
            ),
            stdin=self._stdin(resource),
        )
        return bool(out.strip())

    async def apply(self, resource: Resource, options: ApplyOptions) -> Change:
        """Create or update the object in the cluster."""
        if await self.get(resource) is None:
            await self._server_side_apply(resource)
            return Change(resource.identity, Action.CREATED)
        if not await self._has_diff(resource):
            return Change(resource.identity, Action.UNCHANGED)
        try:
            await self._server_side_apply(resource)
        except KubectlException as err:
            if not options.force or IMMUTABLE_ERROR not in str(err):
                raise
            _LOGGER.info("Recreating %s to change immutable fields", resource)
            await self.delete(resource, DeleteOptions(propagation="foreground"))
            await self.wait_for_termination(
                [resource], WaitOptions(timeout=options.timeout)
            )
            await self._server_side_apply(resource)
            return Change(resource.identity, Action.CREATED)
        return Change(resource.identity, Action.CONFIGURED)

    async def delete(self, resource: Resource, options: DeleteOptions) -> Change:
        """Delete the object from the cluster, skipping objects that do not exist."""
        out = await command.run(
            self._cmd(
                "delete",
                "-f",
                "-",
                "--ignore-not-found",
                "--wait=false",
                f"--cascade={options.propagation}",
                "-o",
                "name",
            ),
            stdin=self._stdin(resource),
        )
        if not out.strip():
            return Change(resource.identity, Action.SKIPPED)
        return Change(resource.identity, Action.DELETED)

    def _wait_cmd(self, resource: Resource, timeout: float) -> Command | None:
        """Return the command that blocks until the object is ready."""
        seconds = f"{max(int(timeout), 1)}s"
        if resource.kind in ROLLOUT_KINDS:
            args = ["rollout", "status", f"{resource.kind.lower()}/{resource.name}"]
            if resource.namespace:
                args.extend(["-n", resource.namespace])
            args.append(f"--timeout={seconds}")
            return self._cmd(*args, timeout=timeout + _COMMAND_GRACE)
        if (condition := WAIT_CONDITIONS.get(resource.kind)) is None:
            return None
        return self._cmd(
            "wait",
            "-f",
            "-",
            f"--for={condition}",
            f"--timeout={seconds}",
            timeout=timeout + _COMMAND_GRACE,
        )

    async def _wait_each(
        self,
        resources: Iterable[Resource],
        options: WaitOptions,
        build: Callable[[Resource, float], Command | None],
        message: str,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + options.timeout
        resources = list(resources)
        for index, resource in enumerate(resources):
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeoutError(message, [r.identity for r in resources[index:]])
            if (cmd := build(resource, remaining)) is None:
                continue
            try:
                await command.run(cmd, stdin=self._stdin(resource))
            except KubectlException as err:
                if "timed out" not in str(err):
                    raise
                raise WaitTimeoutError(message, [resource.identity]) from err

    async def wait(self, resources: Iterable[Resource], options: WaitOptions) -> None:
        """Block until all objects are ready."""
        await self._wait_each(
            resources,
            options,
            self._wait_cmd,
            "timeout waiting for objects to become ready",
        )

    async def wait_for_termination(
        self, resources: Iterable[Resource], options: WaitOptions
    ) -> None:
        """Block until all objects are removed from the cluster."""

        def build(resource: Resource, timeout: float) -> Command:
            return self._cmd(
                "wait",
                "-f",
                "-",
                "--for=delete",
                f"--timeout={max(int(timeout), 1)}s",
                timeout=timeout + _COMMAND_GRACE,
            )

        await self._wait_each(
            resources,
            options,
            build,
            "timeout waiting for objects to terminate",
        )
