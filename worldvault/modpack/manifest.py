# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Modpack manifests and the install plan derived from them.

Each provider ships its own manifest format inside the pack archive.
Both are parsed into typed variants here and then reduced to one
``InstallPlan`` that the installer executes without caring where the
pack came from.
"""

import json
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import aiofiles

from worldvault.exceptions import ArchiveError, ValidationError
from worldvault.modpack.profiles import Loader

MODRINTH_MANIFEST = "modrinth.index.json"
CURSEFORGE_MANIFEST = "manifest.json"
DEFAULT_OVERRIDES = "overrides"


def sanitize_relative_path(raw_path: str) -> str:
    """
    Normalize a manifest path so it stays inside the install root.

    Leading slashes are dropped and ".." segments collapsed.

    Raises:
        ValidationError: If the path is empty or still climbs upward
    """
    normalized = posixpath.normpath(raw_path.replace("\\", "/")).lstrip("/")
    if not normalized or normalized == "." or normalized == ".." or normalized.startswith("../"):
        raise ValidationError(f"Unsafe path in manifest: {raw_path}", details={"path": raw_path})
    return normalized


@dataclass(frozen=True)
class InstallEntry:
    """
    One file to place on disk.

    Either ``relative_path`` and ``download_url`` are known up front
    (Modrinth), or the provider resolves them later from ``project_id``
    and ``file_id`` (CurseForge).
    """

    label: str
    relative_path: str | None = None
    download_url: str | None = None
    hashes: Dict[str, str] = field(default_factory=dict)
    project_id: int | None = None
    file_id: int | None = None


@dataclass
class InstallPlan:
    """Provider-neutral description of what to install."""

    pack_name: str | None
    loader: Loader | None
    minecraft_version: str | None
    overrides: str
    entries: List[InstallEntry]
    total_files: int


@dataclass
class ModrinthFile:
    path: str | None
    downloads: List[str]
    hashes: Dict[str, str]
    env_server: str | None


@dataclass
class ModrinthManifest:
    """Parsed ``modrinth.index.json``."""

    name: str | None
    version_id: str | None
    dependencies: Dict[str, str]
    files: List[ModrinthFile]
    overrides: str = DEFAULT_OVERRIDES

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ModrinthManifest":
        files = []
        for entry in data.get("files") or []:
            env = entry.get("env") or {}
            files.append(
                ModrinthFile(
                    path=entry.get("path"),
                    downloads=list(entry.get("downloads") or []),
                    hashes=dict(entry.get("hashes") or {}),
                    env_server=env.get("server"),
                )
            )
        return cls(
            name=data.get("name"),
            version_id=data.get("versionId"),
            dependencies=dict(data.get("dependencies") or {}),
            files=files,
            overrides=data.get("overrides") or DEFAULT_OVERRIDES,
        )

    def loader(self) -> Loader | None:
        """Loader from dependencies; neoforge wins over forge, quilt counts as fabric."""
        deps = self.dependencies
        if deps.get("neoforge"):
            return Loader.NEOFORGE
        if deps.get("forge"):
            return Loader.FORGE
        if deps.get("fabric-loader") or deps.get("quilt-loader"):
            return Loader.FABRIC
        return None

    def to_plan(self, fallback_name: str | None = None) -> InstallPlan:
        """Reduce to an install plan, skipping server-unsupported files."""
        entries: List[InstallEntry] = []
        for index, item in enumerate(self.files):
            if item.env_server == "unsupported":
                continue
            relative = sanitize_relative_path(item.path or f"mods/file-{index}.jar")
            entries.append(
                InstallEntry(
                    label=relative,
                    relative_path=relative,
                    download_url=item.downloads[0] if item.downloads else None,
                    hashes=item.hashes,
                )
            )
        return InstallPlan(
            pack_name=self.name or fallback_name,
            loader=self.loader(),
            minecraft_version=self.dependencies.get("minecraft"),
            overrides=self.overrides,
            entries=entries,
            total_files=len(self.files),
        )


@dataclass
class CurseforgeFile:
    project_id: int
    file_id: int
    required: bool = True


@dataclass
class CurseforgeManifest:
    """Parsed CurseForge ``manifest.json``."""

    name: str | None
    minecraft_version: str | None
    mod_loaders: List[Dict[str, Any]]
    files: List[CurseforgeFile]
    overrides: str = DEFAULT_OVERRIDES

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "CurseforgeManifest":
        minecraft = data.get("minecraft") or {}
        files = [
            CurseforgeFile(
                project_id=int(entry["projectID"]),
                file_id=int(entry["fileID"]),
                required=entry.get("required", True) is not False,
            )
            for entry in data.get("files") or []
        ]
        return cls(
            name=data.get("name"),
            minecraft_version=minecraft.get("version"),
            mod_loaders=list(minecraft.get("modLoaders") or []),
            files=files,
            overrides=data.get("overrides") or DEFAULT_OVERRIDES,
        )

    def loader(self) -> Loader | None:
        """Loader from the primary (else first) modLoaders entry."""
        if not self.mod_loaders:
            return None
        entry = next((m for m in self.mod_loaders if m.get("primary")), self.mod_loaders[0])
        loader_id = str(entry.get("id", "")).lower()
        if "neoforge" in loader_id:
            return Loader.NEOFORGE
        if "forge" in loader_id:
            return Loader.FORGE
        if "fabric" in loader_id:
            return Loader.FABRIC
        return None

    def to_plan(self, fallback_name: str | None = None) -> InstallPlan:
        """Reduce to an install plan, skipping optional files."""
        entries = [
            InstallEntry(
                label=f"Project {item.project_id}",
                project_id=item.project_id,
                file_id=item.file_id,
            )
            for item in self.files
            if item.required
        ]
        return InstallPlan(
            pack_name=fallback_name or self.name,
            loader=self.loader(),
            minecraft_version=self.minecraft_version,
            overrides=self.overrides,
            entries=entries,
            total_files=len(self.files),
        )


async def read_manifest_json(path: Path, description: str) -> Dict[str, Any]:
    """
    Load a manifest file from an extracted pack.

    Raises:
        ArchiveError: If the file is missing or not valid JSON
    """
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            contents = await f.read()
    except FileNotFoundError as e:
        raise ArchiveError(f"{path.name} not found in {description}", details={"path": str(path)}) from e

    try:
        data = json.loads(contents)
    except json.JSONDecodeError as e:
        raise ArchiveError(f"Invalid {path.name}: {e}", details={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise ArchiveError(f"Invalid {path.name}: expected an object", details={"path": str(path)})
    return data
