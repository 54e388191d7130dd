"""Rendering of the objects that make up an inventory.

Objects may come from plain manifest files or directories, a kustomize overlay
built with `kustomize build`, or OCI artifacts. A list of kustomization files
containing patches may then be applied on top of the combined set:

```python
from kube_inventory import render

manifests = await render.build_manifests(
    render.RenderOptions(
        kustomize=Path("./overlays/prod"),
        patches=[Path("./patches/safe-to-evict.yaml")],
    )
)
for resource in manifests.resources:
    print(resource.identity)
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
import tempfile
from typing import Any

import aiofiles
from aiofiles.ospath import isdir
import yaml

from . import artifact
from .command import Command, run
from .exceptions import InputException, KustomizeException
from .resource import Resource, load_documents, parse_resources

__all__ = [
    "RenderOptions",
    "Manifests",
    "ManifestLoader",
    "build_manifests",
    "kustomize_build",
]

_LOGGER = logging.getLogger(__name__)

KUSTOMIZE_BIN = "kustomize"
KUSTOMIZE_DOMAIN = "kustomize.config.k8s.io"
KUSTOMIZE_KIND = "Kustomization"
MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")

# Keys of a kustomization file that hold patches with the same entry format
PATCH_KEYS = ("patches", "patchesJson6902")


@dataclass
class RenderOptions:
    """The sources of the objects in an inventory.

    Attributes:
        kustomize: Path to a directory that contains a kustomization.yaml.
        filenames: Paths to manifest files or directories of manifests.
        artifacts: OCI artifact URLs in the form `oci://registry/org/repo:tag`.
        patches: Paths to kustomization files that contain a list of patches.
    """

    kustomize: Path | None = None
    filenames: list[Path] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    patches: list[Path] = field(default_factory=list)

    @property
    def has_source(self) -> bool:
        return bool(self.kustomize or self.filenames or self.artifacts)


@dataclass
class Manifests:
    """The rendered objects and the digests of the artifacts they came from."""

    resources: list[Resource]
    digests: list[str] = field(default_factory=list)


def is_kustomization(doc: dict[str, Any]) -> bool:
    """Check if the document is a kustomize configuration file, not an object."""
    return doc.get("kind") == KUSTOMIZE_KIND and str(
        doc.get("apiVersion", "")
    ).startswith(KUSTOMIZE_DOMAIN)


class ManifestLoader:
    """Loads objects from manifest files on the local filesystem."""

    def __init__(self) -> None:
        """Initialize the manifest loader."""
        self._processed_files: set[Path] = set()

    async def load(self, path: Path) -> list[dict[str, Any]]:
        """Load the objects in a file, or recursively in a directory."""
        path = path.expanduser().resolve()
        if not path.exists():
            raise InputException(f"Path does not exist: {path}")
        if path.is_file():
            return await self._load_file(path)
        docs: list[dict[str, Any]] = []
        for entry in sorted(path.rglob("*")):
            if entry.is_file() and entry.suffix.lower() in MANIFEST_SUFFIXES:
                docs.extend(await self._load_file(entry))
        return docs

    async def _load_file(self, path: Path) -> list[dict[str, Any]]:
        if path in self._processed_files:
            _LOGGER.debug("Skipping already processed file: %s", path)
            return []
        self._processed_files.add(path)
        _LOGGER.debug("Processing file: %s", path)
        try:
            async with aiofiles.open(path, encoding="utf-8") as manifest_file:
                content = await manifest_file.read()
        except OSError as err:
            raise InputException(f"Failed to read file {path}: {err}") from err
        docs = []
        for doc in load_documents(content, str(path)):
            if is_kustomization(doc):
                _LOGGER.debug("Skipping kustomization file %s", path)
                continue
            docs.append(doc)
        return docs


async def kustomize_build(path: Path) -> list[dict[str, Any]]:
    """Run `kustomize build` on a directory and return the resulting objects."""
    if not await isdir(path):
        raise InputException(f"Kustomize path is not a directory: {path}")
    out = await run(
        Command([KUSTOMIZE_BIN, "build", str(path)], exc=KustomizeException)
    )
    try:
        return [doc for doc in yaml.safe_load_all(out) if doc]
    except yaml.YAMLError as err:
        raise KustomizeException(
            f"Unable to parse kustomize build output for {path}: {err}"
        ) from err


async def _read_patches(patch_file: Path, workdir: Path, index: int) -> list[Any]:
    """Return the patches in a kustomization file, copying patch files to workdir."""
    try:
        async with aiofiles.open(patch_file, encoding="utf-8") as fd:
            content = await fd.read()
    except OSError as err:
        raise InputException(
            f"Failed to read patch file {patch_file}: {err}"
        ) from err
    docs = load_documents(content, str(patch_file))
    if len(docs) != 1:
        raise InputException(
            f"Patch file {patch_file} must contain one kustomization"
        )
    patches: list[Any] = []
    for key in PATCH_KEYS:
        for entry in docs[0].get(key) or ():
            if not isinstance(entry, dict):
                raise InputException(f"Invalid patch in {patch_file}: {entry}")
            entry = dict(entry)
            if (path := entry.get("path")) is not None:
                source = (patch_file.parent / path).resolve()
                target = workdir / f"patch-{index}-{len(patches)}{source.suffix}"
                async with aiofiles.open(source, encoding="utf-8") as fd:
                    patch_content = await fd.read()
                async with aiofiles.open(target, mode="w") as fd:
                    await fd.write(patch_content)
                entry["path"] = target.name
            patches.append(entry)
    if not patches:
        _LOGGER.warning("Patch file %s contains no patches", patch_file)
    return patches


async def apply_patches(
    docs: list[dict[str, Any]], patch_files: list[Path]
) -> list[dict[str, Any]]:
    """Apply the patches in the kustomization files to the objects."""
    with tempfile.TemporaryDirectory(prefix="kube-inventory-") as tmp:
        workdir = Path(tmp)
        patches: list[Any] = []
        for index, patch_file in enumerate(patch_files):
            patches.extend(await _read_patches(patch_file, workdir, index))
        kustomization = {
            "apiVersion": f"{KUSTOMIZE_DOMAIN}/v1beta1",
            "kind": KUSTOMIZE_KIND,
            "resources": ["resources.yaml"],
            "patches": patches,
        }
        async with aiofiles.open(workdir / "resources.yaml", mode="w") as fd:
            await fd.write(yaml.dump_all(docs, sort_keys=False, explicit_start=True))
        async with aiofiles.open(workdir / "kustomization.yaml", mode="w") as fd:
            await fd.write(yaml.dump(kustomization, sort_keys=False))
        return await kustomize_build(workdir)


async def build_manifests(options: RenderOptions) -> Manifests:
    """Render the objects from every source in the options."""
    if not options.has_source:
        raise InputException("-a, -f or -k is required")
    docs: list[dict[str, Any]] = []
    digests: list[str] = []
    if options.kustomize:
        docs.extend(await kustomize_build(options.kustomize))
    loader = ManifestLoader()
    for filename in options.filenames:
        docs.extend(await loader.load(filename))
    for url in options.artifacts:
        content = await artifact.pull_artifact(url)
        docs.extend(content.documents)
        digests.append(content.digest)
    if not docs:
        raise InputException("No manifests found")
    if options.patches:
        docs = await apply_patches(docs, options.patches)
    return Manifests(resources=parse_resources(docs), digests=digests)
