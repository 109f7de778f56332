# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Modpack providers - Resolve locators to archives and files to URLs.

Both providers share one shape: ``resolve`` turns a caller locator into
a pack archive to download, ``build_plan`` turns the manifest found in
that archive into an InstallPlan, and ``resolve_entry`` turns one plan
entry into a concrete download.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol, Sequence
from urllib.parse import parse_qs, urlparse

import aiofiles
import httpx
import structlog

from worldvault.config import WorldVaultConfig
from worldvault.errors import explain_missing_curseforge_key
from worldvault.exceptions import ConfigurationError, ProviderError, ValidationError
from worldvault.modpack.manifest import (
    CURSEFORGE_MANIFEST,
    MODRINTH_MANIFEST,
    CurseforgeManifest,
    InstallEntry,
    InstallPlan,
    ModrinthManifest,
    sanitize_relative_path,
)

logger = structlog.get_logger()

# CurseForge hash algorithm ids
CURSEFORGE_HASH_ALGOS = {1: "sha1", 2: "md5"}


@dataclass(frozen=True)
class ModrinthLocator:
    url: str
    pack_version: str | None = None


@dataclass(frozen=True)
class CurseforgeLocator:
    project_id: int
    file_id: int


@dataclass
class PackSource:
    """A resolved pack archive."""

    download_url: str
    archive_name: str
    pack_name: str | None
    metadata: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ResolvedFile:
    """Where one plan entry comes from and where it goes."""

    url: str
    relative_path: str
    hashes: Dict[str, str] = field(default_factory=dict)
    in_mods_dir: bool = False  # relative to the mods dir instead of the data dir


class PackProvider(Protocol):
    source: str
    display_name: str
    manifest_file: str

    async def resolve(self, locator: Any) -> PackSource:
        ...

    def build_plan(self, manifest: Mapping[str, Any], pack: PackSource) -> InstallPlan:
        ...

    async def resolve_entry(self, entry: InstallEntry) -> ResolvedFile:
        ...


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str] | None = None,
) -> bytes:
    """
    GET ``url`` into memory.

    Raises:
        ProviderError: On transport failure or a non-2xx response
    """
    try:
        response = await client.get(url, headers=dict(headers or {}))
    except httpx.HTTPError as e:
        raise ProviderError(f"Failed to download {url}: {e}", details={"url": url}) from e
    if response.is_error:
        raise ProviderError(
            f"Failed to download {url} ({response.status_code} {response.reason_phrase})",
            details={"url": url, "status": response.status_code},
        )
    return response.content


async def stream_to_path(
    client: httpx.AsyncClient,
    url: str,
    destination: Path,
    headers: Mapping[str, str] | None = None,
) -> int:
    """
    Stream ``url`` to ``destination`` without buffering it whole.

    Returns:
        Bytes written
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    try:
        async with client.stream("GET", url, headers=dict(headers or {})) as response:
            if response.is_error:
                raise ProviderError(
                    f"Failed to download {url} ({response.status_code} {response.reason_phrase})",
                    details={"url": url, "status": response.status_code},
                )
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in response.aiter_bytes():
                    await f.write(chunk)
                    written += len(chunk)
    except httpx.HTTPError as e:
        raise ProviderError(f"Failed to download {url}: {e}", details={"url": url}) from e
    return written


async def _get_json(
    client: httpx.AsyncClient,
    url: str,
    provider: str,
    headers: Mapping[str, str] | None = None,
) -> Any:
    try:
        response = await client.get(url, headers=dict(headers or {}))
    except httpx.HTTPError as e:
        raise ProviderError(f"{provider} API request failed: {e}", details={"url": url}) from e
    if response.is_error:
        raise ProviderError(
            f"{provider} API request failed ({response.status_code})",
            details={"url": url, "status": response.status_code},
        )
    return response.json()


def extract_modrinth_slug(url: str) -> str:
    """Slug after ``/modpack/``, else the last path segment, else the host."""
    parsed = urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    if "modpack" in segments:
        index = segments.index("modpack")
        if index + 1 < len(segments):
            return segments[index + 1]
    return segments[-1] if segments else parsed.hostname or ""


def pick_preferred_version(versions: Sequence[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    """First release, else the first version listed."""
    if not versions:
        return None
    for version in versions:
        if version.get("version_type") == "release":
            return version
    return versions[0]


class ModrinthProvider:
    """Packs from Modrinth, located by page URL or direct ``.mrpack`` URL."""

    source = "modrinth"
    display_name = "Modrinth"
    manifest_file = MODRINTH_MANIFEST

    def __init__(self, config: WorldVaultConfig, client: httpx.AsyncClient) -> None:
        self._api = config.modrinth_api_url.rstrip("/")
        self._client = client

    async def _request(self, path: str) -> Any:
        return await _get_json(self._client, f"{self._api}{path}", "Modrinth")

    async def resolve(self, locator: ModrinthLocator) -> PackSource:
        """
        Resolve a Modrinth URL to a pack archive.

        A direct ``.mrpack`` URL is used as-is. Otherwise the project is
        looked up by slug and the version comes from the ``pack_version``
        hint, a ``/version/<id>`` URL segment, or the preferred listed
        version, in that order.
        """
        parsed = urlparse(locator.url)
        if not parsed.scheme or not parsed.netloc:
            raise ValidationError(f"Invalid Modrinth URL: {locator.url}", details={"url": locator.url})

        if parsed.path.endswith(".mrpack"):
            query = parse_qs(parsed.query)
            name = parsed.path.rsplit("/", 1)[-1] or "Modrinth Pack"
            return PackSource(
                download_url=locator.url,
                archive_name="pack.mrpack",
                pack_name=name,
                metadata={
                    "modrinthProjectId": (query.get("projectId") or [None])[0],
                    "modrinthVersionId": (query.get("versionId") or [locator.pack_version])[0],
                },
            )

        slug = extract_modrinth_slug(locator.url)
        version_id = locator.pack_version
        if not version_id and "/version/" in parsed.path:
            segments = [s for s in parsed.path.split("/") if s]
            index = segments.index("version")
            if index + 1 < len(segments):
                version_id = segments[index + 1]

        project = await self._request(f"/project/{slug}") or {}
        project_id = project.get("project_id") or project.get("id") or slug
        pack_name = project.get("title") or "Modrinth Pack"

        if version_id:
            version = await self._request(f"/project/{slug}/version/{version_id}")
        else:
            version = pick_preferred_version(await self._request(f"/project/{slug}/version") or [])

        if not version:
            raise ProviderError("Unable to locate Modrinth version", details={"slug": slug})

        files = version.get("files") or []
        primary = next((f for f in files if f.get("primary")), files[0] if files else None)
        if not primary or not primary.get("url"):
            raise ProviderError(
                "Modrinth version is missing downloadable files",
                details={"slug": slug, "version_id": version.get("id")},
            )

        logger.info("modrinth_pack_resolved", slug=slug, version_id=version.get("id"))
        return PackSource(
            download_url=primary["url"],
            archive_name="pack.mrpack",
            pack_name=version.get("name") or pack_name,
            metadata={"modrinthProjectId": project_id, "modrinthVersionId": version.get("id")},
        )

    def build_plan(self, manifest: Mapping[str, Any], pack: PackSource) -> InstallPlan:
        return ModrinthManifest.from_json(manifest).to_plan(pack.pack_name)

    async def resolve_entry(self, entry: InstallEntry) -> ResolvedFile:
        if not entry.download_url or not entry.relative_path:
            raise ValidationError(
                f"Missing download URL for {entry.label}", details={"path": entry.relative_path}
            )
        return ResolvedFile(url=entry.download_url, relative_path=entry.relative_path, hashes=entry.hashes)


class CurseforgeProvider:
    """Packs from CurseForge, located by numeric project and file ids."""

    source = "curseforge"
    display_name = "CurseForge"
    manifest_file = CURSEFORGE_MANIFEST

    def __init__(self, config: WorldVaultConfig, client: httpx.AsyncClient) -> None:
        if not config.curseforge_api_key:
            raise ConfigurationError(explain_missing_curseforge_key())
        self._api = config.curseforge_api_url.rstrip("/")
        self._headers = {"x-api-key": config.curseforge_api_key}
        self._client = client

    async def _file_metadata(self, project_id: int, file_id: int) -> Dict[str, Any]:
        response = await _get_json(
            self._client,
            f"{self._api}/mods/{project_id}/files/{file_id}",
            "CurseForge",
            self._headers,
        )
        return (response or {}).get("data") or {}

    async def resolve(self, locator: CurseforgeLocator) -> PackSource:
        data = await self._file_metadata(locator.project_id, locator.file_id)
        if not data.get("downloadUrl"):
            raise ProviderError(
                "CurseForge file metadata is missing a download URL",
                details={"project_id": locator.project_id, "file_id": locator.file_id},
            )

        file_name = data.get("fileName") or f"{locator.project_id}-{locator.file_id}.zip"
        logger.info(
            "curseforge_pack_resolved",
            project_id=locator.project_id,
            file_id=locator.file_id,
        )
        return PackSource(
            download_url=data["downloadUrl"],
            archive_name=Path(file_name).name,
            pack_name=data.get("displayName") or file_name,
            metadata={
                "curseforgeProjectId": locator.project_id,
                "curseforgeFileId": locator.file_id,
            },
        )

    def build_plan(self, manifest: Mapping[str, Any], pack: PackSource) -> InstallPlan:
        return CurseforgeManifest.from_json(manifest).to_plan(pack.pack_name)

    async def resolve_entry(self, entry: InstallEntry) -> ResolvedFile:
        data = await self._file_metadata(entry.project_id, entry.file_id)
        if not data.get("downloadUrl"):
            raise ProviderError(
                f"CurseForge file {entry.project_id}/{entry.file_id} is missing a download URL",
                details={"project_id": entry.project_id, "file_id": entry.file_id},
            )

        name = data.get("fileName") or f"{entry.project_id}-{entry.file_id}.jar"
        hashes = {
            CURSEFORGE_HASH_ALGOS[h["algo"]]: h["value"]
            for h in data.get("hashes") or []
            if h.get("algo") in CURSEFORGE_HASH_ALGOS and h.get("value")
        }
        return ResolvedFile(
            url=data["downloadUrl"],
            relative_path=sanitize_relative_path(name),
            hashes=hashes,
            in_mods_dir=True,
        )
