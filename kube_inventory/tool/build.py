"""Kube-inventory build action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
import sys
from typing import Any, cast

from kube_inventory import artifact, render
from kube_inventory.conflict import resolve_replica_conflicts
from kube_inventory.inventory import InventoryRecord
from kube_inventory.manager import set_owner_labels
from kube_inventory.planner import plan

from . import common
from .format import YamlFormatter

_LOGGER = logging.getLogger(__name__)


class BuildInventoryAction:
    """Print the objects of an inventory in the order they are applied."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inventory",
                help="Build an inventory and print the resulting objects",
                description="""Render the objects of an inventory without contacting
                    a cluster. Objects are printed as a multi-document YAML stream
                    in the order they would be applied.""",
            ),
        )
        common.add_name_flags(args)
        common.add_manifest_flags(args)
        args.add_argument(
            "--output-file",
            type=str,
            default="/dev/stdout",
            help="Output file for the results of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        name: str,
        namespace: str,
        output_file: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        manifests = await render.build_manifests(common.build_render_options(**kwargs))
        resources = manifests.resources
        # Validates identities are unique before anything is printed
        InventoryRecord.from_resources(name, namespace, resources)
        resolve_replica_conflicts(resources)
        set_owner_labels(resources, name, namespace)
        stages = plan(resources)
        docs = [resource.doc for resource in stages.ordered]
        if output_file == "/dev/stdout":
            YamlFormatter().print(docs, file=sys.stdout)
            return
        with open(output_file, "w", encoding="utf-8") as file:
            YamlFormatter().print(docs, file=file)


class BuildArtifactAction:
    """Package the objects of an inventory as an OCI artifact."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "artifact",
                help="Build objects and push them to an OCI registry",
                description="""Render the objects and push them to the registry as
                    an OCI artifact that can be applied with `--artifact`.""",
            ),
        )
        args.add_argument(
            "url",
            help="OCI artifact URL in the format 'oci://registry/org/repo:tag'",
        )
        common.add_manifest_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        url: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        artifact.parse_url(url)
        manifests = await render.build_manifests(common.build_render_options(**kwargs))
        resources = plan(manifests.resources).ordered
        for resource in resources:
            print(resource, file=sys.stdout)
        meta = await artifact.build_artifact(url, [r.doc for r in resources])
        print(f"Pushed {url}", file=sys.stdout)
        if meta.digest:
            print(f"Digest: {meta.digest}", file=sys.stdout)
        print(f"Checksum: {meta.checksum}", file=sys.stdout)


class BuildAction:
    """Kube-inventory build action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "build",
                help="Build objects without applying them",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        BuildInventoryAction.register(subcmds)
        BuildArtifactAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args
