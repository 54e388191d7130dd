"""Kube-inventory inspect action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
import sys
from typing import Any, cast

from kube_inventory import artifact
from kube_inventory.resource import parse_resources

_LOGGER = logging.getLogger(__name__)


class InspectArtifactAction:
    """Print the metadata and objects of an OCI artifact."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "artifact",
                help="Print the content of an OCI artifact",
                description="""Download the artifact and print its metadata, the
                    objects it contains and the container images they reference.""",
            ),
        )
        args.add_argument(
            "url",
            help="OCI artifact URL in the format 'oci://registry/org/repo:tag'",
        )
        args.add_argument(
            "--container-images",
            action="store_true",
            help="List only the container images referenced by the objects",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        url: str,
        container_images: bool,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        content = await artifact.pull_artifact(url)
        resources = parse_resources(content.documents)
        if container_images:
            images = {image for r in resources for image in r.container_images}
            for image in sorted(images):
                print(image, file=sys.stdout)
            return

        meta = content.metadata
        print(f"Artifact: {content.url}", file=sys.stdout)
        print(f"Digest: {content.digest}", file=sys.stdout)
        if meta.built_by:
            print(f"BuiltBy: {meta.built_by}", file=sys.stdout)
        if meta.created:
            print(f"CreatedAt: {meta.created}", file=sys.stdout)
        if meta.checksum:
            print(f"Checksum: {meta.checksum}", file=sys.stdout)
        print("Resources:", file=sys.stdout)
        for resource in resources:
            print(f"- {resource}", file=sys.stdout)
            for image in resource.container_images:
                print(f"  - {image}", file=sys.stdout)


class InspectAction:
    """Kube-inventory inspect action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inspect",
                help="Print information about artifacts",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        InspectArtifactAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args
