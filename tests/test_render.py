"""Tests for rendering the objects of an inventory."""

from pathlib import Path
from typing import Any

import pytest
import yaml

from kube_inventory import render
from kube_inventory.artifact import ArtifactContent
from kube_inventory.command import Command
from kube_inventory.exceptions import InputException
from kube_inventory.render import ManifestLoader, RenderOptions, build_manifests

TESTDATA = Path("tests/testdata")


async def test_load_directory() -> None:
    """Test loading a directory of manifests skips kustomize config."""
    docs = await ManifestLoader().load(TESTDATA / "podinfo")
    assert [(doc["kind"], doc["metadata"]["name"]) for doc in docs] == [
        ("Deployment", "podinfo"),
        ("Service", "podinfo"),
        ("HorizontalPodAutoscaler", "podinfo"),
        ("Namespace", "podinfo"),
    ]


async def test_load_json() -> None:
    """Test loading a json manifest."""
    docs = await ManifestLoader().load(TESTDATA / "widgets/widget.json")
    assert docs == [
        {
            "apiVersion": "example.com/v1",
            "kind": "Widget",
            "metadata": {"name": "gadget", "namespace": "default"},
            "spec": {"size": 3},
        }
    ]


async def test_load_file_once() -> None:
    """Test a file named more than once is only loaded once."""
    loader = ManifestLoader()
    assert len(await loader.load(TESTDATA / "podinfo/namespace.yaml")) == 1
    assert await loader.load(TESTDATA / "podinfo/namespace.yaml") == []


async def test_load_missing_path() -> None:
    """Test loading a path that does not exist."""
    with pytest.raises(InputException, match="Path does not exist"):
        await ManifestLoader().load(TESTDATA / "does-not-exist")


async def test_build_manifests() -> None:
    """Test rendering objects from files and directories."""
    manifests = await build_manifests(
        RenderOptions(filenames=[TESTDATA / "podinfo", TESTDATA / "widgets"])
    )
    assert [str(r) for r in manifests.resources] == [
        "Deployment/podinfo/podinfo",
        "Service/podinfo/podinfo",
        "HorizontalPodAutoscaler/podinfo/podinfo",
        "Namespace/podinfo",
        "CustomResourceDefinition/widgets.example.com",
        "Widget/default/gadget",
    ]
    assert manifests.digests == []


async def test_build_manifests_no_source() -> None:
    """Test a source is required."""
    with pytest.raises(InputException, match="-a, -f or -k is required"):
        await build_manifests(RenderOptions())


async def test_build_manifests_empty(tmp_path: Path) -> None:
    """Test sources that contain no objects."""
    (tmp_path / "README.md").write_text("# Nothing here")
    with pytest.raises(InputException, match="No manifests found"):
        await build_manifests(RenderOptions(filenames=[tmp_path]))


async def test_build_manifests_artifact(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test objects and digests from an artifact."""

    async def pull_artifact(url: str) -> ArtifactContent:
        return ArtifactContent(
            url=url,
            digest="sha256:1234",
            documents=[
                {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "a"}}
            ],
        )

    monkeypatch.setattr(render.artifact, "pull_artifact", pull_artifact)
    manifests = await build_manifests(
        RenderOptions(artifacts=["oci://ghcr.io/example/manifests:v1"])
    )
    assert [str(r) for r in manifests.resources] == ["Namespace/a"]
    assert manifests.digests == ["sha256:1234"]


async def test_read_patches(tmp_path: Path) -> None:
    """Test patches are read and patch files are copied to the work directory."""
    patches = await render._read_patches(
        TESTDATA / "patches/kustomization.yaml", tmp_path, 0
    )
    assert len(patches) == 2
    assert patches[0]["target"] == {"kind": "Deployment"}
    assert patches[1] == {"path": "patch-0-1.yaml", "target": {"kind": "Service"}}
    copied = yaml.safe_load((tmp_path / "patch-0-1.yaml").read_text())
    assert copied["metadata"]["labels"] == {"tier": "frontend"}


async def test_build_manifests_patches(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test patches are applied by building a kustomization of the objects."""
    built: dict[str, Any] = {}

    async def run(cmd: Command, stdin: bytes | None = None) -> str:
        assert cmd.cmd[:2] == ["kustomize", "build"]
        workdir = Path(cmd.cmd[2])
        built["kustomization"] = yaml.safe_load(
            (workdir / "kustomization.yaml").read_text()
        )
        return (workdir / "resources.yaml").read_text()

    monkeypatch.setattr(render, "run", run)
    manifests = await build_manifests(
        RenderOptions(
            filenames=[TESTDATA / "podinfo/namespace.yaml"],
            patches=[TESTDATA / "patches/kustomization.yaml"],
        )
    )
    assert [str(r) for r in manifests.resources] == ["Namespace/podinfo"]
    kustomization = built["kustomization"]
    assert kustomization["kind"] == "Kustomization"
    assert kustomization["resources"] == ["resources.yaml"]
    assert len(kustomization["patches"]) == 2


async def test_invalid_patch_file(tmp_path: Path) -> None:
    """Test a patch file must contain a single kustomization."""
    patch_file = tmp_path / "patches.yaml"
    patch_file.write_text("---\na: 1\n---\nb: 2\n")
    with pytest.raises(InputException, match="must contain one kustomization"):
        await render._read_patches(patch_file, tmp_path, 0)


async def test_kustomize_not_a_directory() -> None:
    """Test kustomize requires a directory."""
    with pytest.raises(InputException, match="not a directory"):
        await render.kustomize_build(TESTDATA / "podinfo/namespace.yaml")


def test_is_kustomization() -> None:
    """Test detecting kustomize configuration files."""
    assert render.is_kustomization(
        {"apiVersion": "kustomize.config.k8s.io/v1beta1", "kind": "Kustomization"}
    )
    assert not render.is_kustomization(
        {"apiVersion": "kustomize.toolkit.fluxcd.io/v1", "kind": "Kustomization"}
    )
