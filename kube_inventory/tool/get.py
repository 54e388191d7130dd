"""Kube-inventory get action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
import sys
from typing import Any, cast

from kube_inventory.exceptions import InventoryNotFoundError
from kube_inventory.storage import InventoryStorage

from . import common
from .format import JsonFormatter, PrintFormatter, YamlFormatter

_LOGGER = logging.getLogger(__name__)


class GetInventoryAction:
    """Print the objects recorded in an inventory."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inventory",
                aliases=["inv"],
                help="Get the objects recorded in an inventory",
                description="Print the objects recorded in an inventory",
            ),
        )
        common.add_name_flags(args)
        common.add_cluster_flags(args)
        args.add_argument(
            "--output",
            "-o",
            choices=["yaml", "json"],
            default=None,
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        name: str,
        namespace: str,
        output: str | None,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        storage = InventoryStorage(common.build_manager(**kwargs))
        record = await storage.load(name, namespace)
        if record is None:
            raise InventoryNotFoundError(f"Inventory {namespace}/{name} not found")
        if output == "yaml":
            YamlFormatter().print([record.to_dict()], file=sys.stdout)
            return
        if output == "json":
            JsonFormatter().print(record.to_dict(), file=sys.stdout)
            return
        results: list[dict[str, Any]] = []
        for entry in record.entries:
            identity = entry.identity
            results.append(
                {
                    "kind": identity.kind,
                    "namespace": identity.namespace,
                    "name": identity.name,
                    "version": (
                        f"{identity.group}/{entry.version}"
                        if identity.group
                        else entry.version
                    ),
                }
            )
        if not results:
            print(f"Inventory {record.namespaced_name} has no objects", file=sys.stdout)
            return
        PrintFormatter(["kind", "namespace", "name", "version"]).print(
            results, file=sys.stdout
        )


class GetAction:
    """Kube-inventory get action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "get",
                help="Print information about inventories",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        GetInventoryAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args
