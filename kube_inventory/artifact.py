"""Packaging of manifests as OCI artifacts.

An artifact holds a single multi-document YAML file with the rendered objects.
The manifest of the artifact is annotated with the time it was built, the
version of the tool that built it, and a checksum over the packaged content so
that the content can be verified when it is pulled again:

```python
from kube_inventory import artifact

built = await artifact.build_artifact("oci://ghcr.io/org/app:v1", docs)
content = await artifact.pull_artifact("oci://ghcr.io/org/app:v1")
assert content.digest == built.checksum
```
"""

import asyncio
from dataclasses import dataclass, replace
import datetime
import hashlib
from importlib import metadata
import logging
from pathlib import Path
import tempfile
from typing import Any

import aiofiles
from oras.client import OrasClient
import yaml

from .exceptions import ArtifactException, InputException
from .resource import load_documents

__all__ = [
    "ArtifactContent",
    "ArtifactMetadata",
    "build_artifact",
    "parse_url",
    "pull_artifact",
]

_LOGGER = logging.getLogger(__name__)

OCI_PREFIX = "oci://"
MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")
ARTIFACT_FILE = "all.yaml"
TOOL_NAME = "kube-inventory"

CREATED_ANNOTATION = "org.opencontainers.image.created"
VERSION_ANNOTATION = "kube-inventory.dev/version"
CHECKSUM_ANNOTATION = "kube-inventory.dev/checksum"


@dataclass(frozen=True)
class ArtifactMetadata:
    """Annotations recorded on an artifact when it is built."""

    created: str | None = None
    """Time the artifact was built, in RFC 3339 format."""

    version: str | None = None
    """Version of kube-inventory that built the artifact."""

    checksum: str | None = None
    """Digest over the manifest content of the artifact."""

    digest: str | None = None
    """Digest of the artifact manifest returned by the registry on push."""

    @classmethod
    def from_annotations(cls, annotations: dict[str, str]) -> "ArtifactMetadata":
        return cls(
            created=annotations.get(CREATED_ANNOTATION),
            version=annotations.get(VERSION_ANNOTATION),
            checksum=annotations.get(CHECKSUM_ANNOTATION),
        )

    @property
    def annotations(self) -> dict[str, str]:
        values = {
            CREATED_ANNOTATION: self.created,
            VERSION_ANNOTATION: self.version,
            CHECKSUM_ANNOTATION: self.checksum,
        }
        return {key: value for key, value in values.items() if value}

    @property
    def built_by(self) -> str | None:
        if not self.version:
            return None
        return f"{TOOL_NAME}/v{self.version}"


@dataclass(frozen=True)
class ArtifactContent:
    """The manifests contained in an artifact."""

    url: str
    """The artifact URL, e.g. `oci://registry/org/repo:tag`."""

    digest: str
    """Digest over the manifest content of the artifact."""

    documents: list[dict[str, Any]]
    """The objects in the artifact."""

    metadata: ArtifactMetadata = ArtifactMetadata()
    """Annotations on the artifact, empty when built by another tool."""


def parse_url(url: str) -> str:
    """Return the registry reference for an `oci://` URL."""
    if not url.startswith(OCI_PREFIX):
        raise InputException(
            f"Invalid artifact URL '{url}', expected 'oci://registry/org/repo:tag'"
        )
    reference = url[len(OCI_PREFIX) :]
    if "/" not in reference or reference.endswith("/"):
        raise InputException(f"Invalid artifact URL '{url}', missing repository")
    return reference


def tool_version() -> str:
    """Return the installed version of kube-inventory."""
    try:
        return metadata.version(TOOL_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _checksum(files: list[tuple[str, str]]) -> str:
    """Return a digest over file names and content, in the order given."""
    digest = hashlib.sha256()
    for name, content in files:
        digest.update(name.encode("utf-8"))
        digest.update(content.encode("utf-8"))
    return f"sha256:{digest.hexdigest()}"


async def _read_manifests(path: Path) -> tuple[str, list[dict[str, Any]]]:
    """Read every manifest under the path, returning a digest over the content."""
    files: list[tuple[str, str]] = []
    documents: list[dict[str, Any]] = []
    for entry in sorted(path.rglob("*")):
        if not entry.is_file() or entry.suffix.lower() not in MANIFEST_SUFFIXES:
            continue
        async with aiofiles.open(entry, encoding="utf-8") as fd:
            content = await fd.read()
        files.append((str(entry.relative_to(path)), content))
        documents.extend(load_documents(content, str(entry)))
    return _checksum(files), documents


async def pull_artifact(url: str) -> ArtifactContent:
    """Download an artifact and return the manifests it contains.

    Raises:
        ArtifactException: If the artifact cannot be pulled, contains no
            manifests, or its content does not match the recorded checksum.
    """
    reference = parse_url(url)
    _LOGGER.info("Pulling artifact %s", url)
    with tempfile.TemporaryDirectory(prefix="kube-inventory-oci-") as tmp:
        client = OrasClient()
        try:
            manifest = await asyncio.to_thread(client.get_manifest, reference)
            files = await asyncio.to_thread(client.pull, target=reference, outdir=tmp)
        except Exception as err:
            raise ArtifactException(f"Pulling {url} failed: {err}") from err
        _LOGGER.debug("Downloaded files: %s", files)
        digest, documents = await _read_manifests(Path(tmp))
    if not documents:
        raise ArtifactException(f"Artifact {url} contains no manifests")
    meta = ArtifactMetadata.from_annotations(manifest.get("annotations") or {})
    if meta.checksum and meta.checksum != digest:
        raise ArtifactException(
            f"Artifact {url} checksum mismatch, expected {meta.checksum} "
            f"but content is {digest}"
        )
    return ArtifactContent(url=url, digest=digest, documents=documents, metadata=meta)


async def build_artifact(
    url: str, documents: list[dict[str, Any]]
) -> ArtifactMetadata:
    """Package the objects as an artifact and push it to the registry.

    Returns the metadata recorded on the artifact, including the digest of
    the pushed manifest when the registry reports one.
    """
    reference = parse_url(url)
    if not documents:
        raise InputException("No manifests found")
    content = yaml.dump_all(documents, sort_keys=False, explicit_start=True)
    now = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    meta = ArtifactMetadata(
        created=now.isoformat(),
        version=tool_version(),
        checksum=_checksum([(ARTIFACT_FILE, content)]),
    )
    _LOGGER.info("Pushing artifact %s", url)
    with tempfile.TemporaryDirectory(prefix="kube-inventory-oci-") as tmp:
        path = Path(tmp) / ARTIFACT_FILE
        async with aiofiles.open(path, mode="w", encoding="utf-8") as fd:
            await fd.write(content)
        client = OrasClient()
        try:
            response = await asyncio.to_thread(
                client.push,
                target=reference,
                files=[str(path)],
                disable_path_validation=True,
                manifest_annotations=meta.annotations,
            )
        except Exception as err:
            raise ArtifactException(f"Pushing {url} failed: {err}") from err
    digest = response.headers.get("Docker-Content-Digest")
    _LOGGER.debug("Pushed %s with digest %s", url, digest)
    return replace(meta, digest=digest)
