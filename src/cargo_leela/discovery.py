"""Find the source files in a cargo workspace that can be mutated."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from cargo_leela.cargo import cargo_bin
from cargo_leela.errors import ExternalToolFailure, ParseError, PathOutsideWorkspace
from cargo_leela.interrupt import CancellationToken
from cargo_leela.models import SourceFile, TreeRelativePath
from cargo_leela.process import get_command_output

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"


def cargo_metadata(
    manifest_path: Path, env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Run ``cargo metadata`` for the workspace containing ``manifest_path``."""
    argv = [
        cargo_bin(env),
        "metadata",
        "--format-version",
        "1",
        "--no-deps",
        "--manifest-path",
        str(manifest_path),
    ]
    try:
        stdout = get_command_output(argv, manifest_path.parent)
    except ExternalToolFailure as e:
        raise ExternalToolFailure("cargo metadata", f"for {manifest_path}: {e.detail}") from e
    try:
        metadata = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ParseError("parse cargo metadata output", stdout) from e
    if (
        not isinstance(metadata, dict)
        or not isinstance(metadata.get("packages"), list)
        or not isinstance(metadata.get("workspace_members"), list)
    ):
        raise ParseError("cargo metadata output lacks packages", stdout)
    return metadata


def workspace_packages(metadata: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the packages that are members of the workspace, in metadata order."""
    members = set(metadata["workspace_members"])
    return [p for p in metadata["packages"] if p.get("id") in members]


def should_mutate_target(target: dict[str, Any]) -> bool:
    """Libraries of any flavor and binaries; not tests, benches, examples or build scripts."""
    return any(k.endswith("lib") or k == "bin" for k in target.get("kind", []))


def direct_package_sources(
    workspace_root: Path, package: dict[str, Any]
) -> list[TreeRelativePath]:
    """Find the files named as the ``src_path`` of targets in one package that should be mutated.

    These are the starting points for discovering source files. Targets
    whose source is outside the workspace are skipped with a warning.
    """
    found: list[TreeRelativePath] = []
    for target in package.get("targets", []):
        kinds = target.get("kind", [])
        if not should_mutate_target(target):
            logger.debug("skipping target %r of kinds %r", target.get("name"), kinds)
            continue
        try:
            relpath = TreeRelativePath.from_absolute(target["src_path"], workspace_root)
        except PathOutsideWorkspace as e:
            logger.warning("%s", e)
            continue
        logger.debug("found mutation target %s of kind %r", relpath, kinds)
        found.append(relpath)
    return found


def cargo_root_files(
    workspace_root: str | Path,
    token: CancellationToken | None = None,
    env: Mapping[str, str] | None = None,
) -> list[SourceFile]:
    """Return the top source files of every library and binary in the workspace.

    The result is sorted by tree-relative path with duplicates removed; when
    two packages name the same file, the first package listed by cargo keeps
    it.
    """
    # cargo reports absolute source paths, so the root must be absolute too.
    workspace_root = Path(workspace_root).resolve()
    cargo_toml_path = workspace_root / MANIFEST_NAME
    logger.debug("cargo_toml_path = %s", cargo_toml_path)
    if token is not None:
        token.check()
    metadata = cargo_metadata(cargo_toml_path, env)
    if token is not None:
        token.check()

    candidates: list[tuple[TreeRelativePath, str]] = []
    for package in workspace_packages(metadata):
        logger.debug("walk package %s", package.get("manifest_path"))
        package_name = sys.intern(package["name"])
        for relpath in direct_package_sources(workspace_root, package):
            candidates.append((relpath, package_name))
        if token is not None:
            token.check()

    # Stable sort keeps package order among equal paths.
    candidates.sort(key=lambda c: c[0])
    files: list[SourceFile] = []
    for relpath, package_name in candidates:
        if files and files[-1].tree_relative_path == relpath:
            continue
        files.append(SourceFile(relpath, package_name, workspace_root))
    return files
