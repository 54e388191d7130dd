"""Kube-inventory delete action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
from typing import Any, cast

from kube_inventory.orchestrator import Reconciler

from . import common

_LOGGER = logging.getLogger(__name__)


class DeleteInventoryAction:
    """Delete the objects of an inventory from the cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inventory",
                help="Delete the objects of an inventory and the inventory itself",
                description="""Delete every object recorded in the inventory,
                    dependents before definitions. The inventory is kept when any
                    object fails to delete so the command can be retried.""",
            ),
        )
        common.add_name_flags(args)
        common.add_cluster_flags(args)
        args.add_argument(
            "--wait",
            action="store_true",
            help="Wait for the deleted objects to be terminated",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        name: str,
        namespace: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        reconciler = Reconciler(
            common.build_manager(**kwargs),
            common.build_reconcile_config(**kwargs),
        )
        await reconciler.delete(name, namespace)


class DeleteAction:
    """Kube-inventory delete action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "delete",
                help="Delete objects from the cluster",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        DeleteInventoryAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args
