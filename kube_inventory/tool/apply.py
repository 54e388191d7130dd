"""Kube-inventory apply action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
from typing import Any, cast

from kube_inventory import render
from kube_inventory.inventory import Provenance
from kube_inventory.orchestrator import Reconciler

from . import common

_LOGGER = logging.getLogger(__name__)


class ApplyInventoryAction:
    """Apply an inventory of objects to the cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inventory",
                help="Apply Kubernetes manifests and record them in an inventory",
                description="""Apply objects in stages, CRDs and Namespaces first,
                    then record the objects in the named inventory. Objects removed
                    since the last apply are deleted when --prune is set.""",
            ),
        )
        common.add_name_flags(args)
        common.add_manifest_flags(args)
        common.add_cluster_flags(args)
        args.add_argument(
            "--prune",
            action="store_true",
            help="Delete stale objects from the cluster",
        )
        args.add_argument(
            "--wait",
            action="store_true",
            help="Wait for the applied objects to become ready",
        )
        args.add_argument(
            "--force",
            action="store_true",
            help="Recreate objects that contain immutable field changes",
        )
        args.add_argument(
            "--create-namespace",
            action="store_true",
            help="Create the inventory namespace if not present",
        )
        args.add_argument(
            "--source",
            default=None,
            help="The URL to the source code",
        )
        args.add_argument(
            "--revision",
            default=None,
            help="The revision identifier",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        name: str,
        namespace: str,
        source: str | None,
        revision: str | None,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        manifests = await render.build_manifests(common.build_render_options(**kwargs))
        reconciler = Reconciler(
            common.build_manager(**kwargs),
            common.build_reconcile_config(**kwargs),
        )
        result = await reconciler.apply(
            name,
            namespace,
            manifests.resources,
            Provenance(
                source=source, revision=revision, artifacts=tuple(manifests.digests)
            ),
        )
        _LOGGER.info(
            "Applied inventory %s with %d object(s), %d stale",
            result.inventory.namespaced_name,
            len(result.inventory.entries),
            len(result.stale),
        )


class ApplyAction:
    """Kube-inventory apply action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "apply",
                help="Apply objects to the cluster",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        ApplyInventoryAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args
