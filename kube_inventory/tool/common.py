"""Flags and helpers shared by the kube-inventory commands."""

from argparse import ArgumentParser
import logging
import pathlib
import sys
from typing import Any

from kube_inventory.manager import (
    Change,
    KubectlConfig,
    KubectlResourceManager,
    ResourceManager,
)
from kube_inventory.orchestrator import ReconcileConfig
from kube_inventory.render import RenderOptions

_LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DEFAULT_TIMEOUT = 60.0


def add_name_flags(args: ArgumentParser) -> None:
    """Add flags that identify an inventory."""
    args.add_argument("name", help="The name of the inventory")
    args.add_argument(
        "--namespace",
        "-n",
        default=DEFAULT_NAMESPACE,
        help="The namespace where the inventory is stored",
    )


def add_manifest_flags(args: ArgumentParser) -> None:
    """Add flags for the sources of the manifests in an inventory."""
    args.add_argument(
        "--filename",
        "-f",
        type=pathlib.Path,
        action="append",
        default=[],
        help="Path to Kubernetes manifest(s). If a directory is specified, then "
        "all manifests in the directory tree will be processed recursively.",
    )
    args.add_argument(
        "--kustomize",
        "-k",
        type=pathlib.Path,
        default=None,
        help="Path to a directory that contains a kustomization.yaml.",
    )
    args.add_argument(
        "--artifact",
        "-a",
        action="append",
        default=[],
        help="OCI artifact URL in the format 'oci://registry/org/repo:tag'.",
    )
    args.add_argument(
        "--patch",
        "-p",
        type=pathlib.Path,
        action="append",
        default=[],
        help="Path to a kustomization file that contains a list of patches.",
    )


def add_cluster_flags(args: ArgumentParser) -> None:
    """Add flags for connecting to a cluster."""
    args.add_argument(
        "--context",
        default=None,
        help="The name of the kubeconfig context to use",
    )
    args.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to the kubeconfig file to use",
    )
    args.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Seconds to wait for the whole operation",
    )


def build_render_options(
    filename: list[pathlib.Path],
    kustomize: pathlib.Path | None,
    artifact: list[str],
    patch: list[pathlib.Path],
    **kwargs: Any,
) -> RenderOptions:
    """Return the render options for the command line flags."""
    return RenderOptions(
        kustomize=kustomize,
        filenames=list(filename),
        artifacts=list(artifact),
        patches=list(patch),
    )


def build_manager(
    context: str | None, kubeconfig: str | None, **kwargs: Any
) -> ResourceManager:
    """Return the resource manager for the command line flags."""
    return KubectlResourceManager(KubectlConfig(context=context, kubeconfig=kubeconfig))


def print_change(change: Change) -> None:
    """Print each change as it is made."""
    print(change, file=sys.stdout, flush=True)


def build_reconcile_config(
    timeout: float,
    prune: bool = False,
    wait: bool = False,
    force: bool = False,
    create_namespace: bool = False,
    **kwargs: Any,
) -> ReconcileConfig:
    """Return the reconcile configuration for the command line flags."""
    return ReconcileConfig(
        prune=prune,
        wait=wait,
        force=force,
        timeout=timeout,
        create_namespace=create_namespace,
        on_change=print_change,
    )
