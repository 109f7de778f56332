# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Package Install Pipeline - Install a modpack onto the server.

An install replaces the mods directory wholesale, so it only runs while
the external maintenance flag is set, and only one install may be
active at a time. Each install runs as a background job:

1. Resolve the locator to a pack archive (provider metadata)
2. Download the archive into a per-job temp directory
3. Extract it and parse the provider manifest
4. Empty the mods directory
5. Copy the pack's overrides over the data directory
6. Download every manifest file, verifying declared hashes
7. Record loader, game version and a suggested server profile

The temp directory is removed whatever the outcome.
"""

import asyncio
import hashlib
import shutil
from pathlib import Path
from typing import Any, Dict, Mapping

import aiofiles
import structlog

from worldvault.archive import extract_zip
from worldvault.config import WorldVaultConfig
from worldvault.core import VaultState, launch_background
from worldvault.exceptions import IntegrityError, JobConflictError, ValidationError
from worldvault.files import ensure_maintenance_mode
from worldvault.jobs import Job, JobKind, JobStatus, failure_patch, generate_job_id
from worldvault.modpack.manifest import InstallPlan, read_manifest_json, sanitize_relative_path
from worldvault.modpack.profiles import recommend_profile
from worldvault.modpack.providers import (
    CurseforgeLocator,
    CurseforgeProvider,
    ModrinthLocator,
    ModrinthProvider,
    PackProvider,
    fetch_bytes,
    stream_to_path,
)

logger = structlog.get_logger()


def verify_hashes(data: bytes, hashes: Mapping[str, str], label: str) -> None:
    """
    Check ``data`` against every declared digest.

    Algorithm names are hashlib names. Unknown ones and variable-length
    digests (shake) are skipped.

    Raises:
        IntegrityError: On the first mismatch
    """
    for algorithm, expected in hashes.items():
        try:
            digest = hashlib.new(algorithm.lower())
        except ValueError:
            logger.warning("unknown_hash_algorithm", algorithm=algorithm, file=label)
            continue
        if digest.digest_size == 0:
            logger.warning("unsupported_hash_algorithm", algorithm=algorithm, file=label)
            continue
        digest.update(data)
        actual = digest.hexdigest()
        if actual != expected.lower():
            raise IntegrityError(
                f"{algorithm.upper()} mismatch for {label}",
                details={"algorithm": algorithm, "expected": expected.lower(), "actual": actual},
            )


def _remove_tree(path: Path, config: WorldVaultConfig) -> None:
    """rmtree that refuses "/", the data dir and any managed root."""
    resolved = path.resolve()
    protected = {Path("/"), config.data_dir.resolve()}
    protected.update(Path(root).resolve() for root in config.managed_roots)
    if resolved in protected:
        logger.error("refusing_to_remove_protected_path", path=str(resolved))
        return
    try:
        shutil.rmtree(resolved)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("temp_cleanup_failed", path=str(resolved), error=str(e))


def _empty_directory(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


async def reset_mods_directory(config: WorldVaultConfig) -> None:
    """Remove everything in the mods directory, leaving it empty."""
    if config.mods_dir.resolve() == config.data_dir.resolve():
        raise ValidationError(f"Refusing to reset data directory {config.data_dir}")
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _empty_directory, config.mods_dir)
    logger.info("mods_directory_reset", mods_dir=str(config.mods_dir))


async def apply_overrides(overrides_dir: Path, destination: Path) -> bool:
    """
    Copy ``overrides_dir`` recursively over ``destination``.

    Returns:
        False when the pack ships no overrides
    """
    if not overrides_dir.is_dir():
        return False
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(
        None,
        lambda: shutil.copytree(overrides_dir, destination, symlinks=True, dirs_exist_ok=True),
    )
    logger.info("overrides_applied", source=str(overrides_dir), destination=str(destination))
    return True


async def _set_progress(state: VaultState, job_id: str, status: JobStatus | None = None, **progress: Any) -> None:
    def patch(job: Job) -> None:
        if status is not None:
            job.status = status
        job.progress = progress

    await state["jobs"].mutate(job_id, patch)


async def _install_files(
    config: WorldVaultConfig,
    state: VaultState,
    job_id: str,
    provider: PackProvider,
    plan: InstallPlan,
) -> int:
    total = len(plan.entries)
    installed = 0

    for index, entry in enumerate(plan.entries, start=1):
        await _set_progress(
            state,
            job_id,
            phase="Installing mods",
            currentFile=entry.label,
            currentIndex=index,
            totalFiles=total,
        )

        resolved = await provider.resolve_entry(entry)
        base = config.mods_dir if resolved.in_mods_dir else config.data_dir
        destination = base / resolved.relative_path

        data = await fetch_bytes(state["http_client"], resolved.url)
        verify_hashes(data, resolved.hashes, resolved.relative_path)

        destination.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(destination, "wb") as f:
            await f.write(data)

        installed += 1
        logger.debug(
            "pack_file_installed",
            job_id=job_id,
            path=str(destination),
            size=len(data),
            index=index,
            total=total,
        )

    return installed


async def _install(
    config: WorldVaultConfig,
    state: VaultState,
    job_id: str,
    provider: PackProvider,
    locator: Any,
    work_dir: Path,
) -> Dict[str, Any]:
    work_dir.mkdir(parents=True, exist_ok=True)
    label = provider.display_name

    await _set_progress(state, job_id, JobStatus.DOWNLOADING, phase=f"Resolving {label} metadata")
    pack = await provider.resolve(locator)

    await _set_progress(state, job_id, phase="Downloading pack archive", note=pack.pack_name)
    archive_path = work_dir / pack.archive_name
    size = await stream_to_path(state["http_client"], pack.download_url, archive_path, pack.headers)
    logger.info("pack_archive_downloaded", job_id=job_id, size=size)

    await _set_progress(state, job_id, phase="Extracting pack archive")
    extract_dir = work_dir / "pack"
    await extract_zip(archive_path, extract_dir)

    manifest = await read_manifest_json(extract_dir / provider.manifest_file, f"{label} archive")
    plan = provider.build_plan(manifest, pack)

    overrides_dir = extract_dir / sanitize_relative_path(plan.overrides)

    await _set_progress(state, job_id, phase="Preparing filesystem for install")
    await reset_mods_directory(config)
    overrides_applied = await apply_overrides(overrides_dir, config.data_dir)

    await _set_progress(state, job_id, JobStatus.INSTALLING, phase="Installing mods", totalFiles=len(plan.entries))
    installed = await _install_files(config, state, job_id, provider, plan)

    return {
        "loader": plan.loader.value if plan.loader else None,
        "minecraftVersion": plan.minecraft_version,
        "profileSuggestion": recommend_profile(plan.loader, plan.minecraft_version),
        "packName": plan.pack_name,
        "filesInstalled": installed,
        "overridesApplied": overrides_applied,
        "metadata": dict(pack.metadata),
    }


async def run_install(
    config: WorldVaultConfig,
    state: VaultState,
    job_id: str,
    provider: PackProvider,
    locator: Any,
) -> None:
    """
    Execute a registered install job to completion.

    Never raises; failures are recorded on the job.
    """
    work_dir = config.temp_dir / f"modpack-{job_id}"
    try:
        result = await _install(config, state, job_id, provider, locator, work_dir)

        def mark_completed(job: Job) -> None:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.progress = {"phase": "completed", "note": "Modpack installation finished"}

        await state["jobs"].mutate(job_id, mark_completed)
        logger.info(
            "install_job_completed",
            job_id=job_id,
            loader=result["loader"],
            minecraft_version=result["minecraftVersion"],
            files_installed=result["filesInstalled"],
        )
    except Exception as e:
        state["last_error"] = str(e)
        await state["jobs"].mutate(job_id, failure_patch(e))
        logger.error(
            "install_job_failed",
            job_id=job_id,
            error=str(e),
            error_type=e.__class__.__name__,
        )
    finally:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _remove_tree, work_dir, config)
        if state["active_install_id"] == job_id:
            state["active_install_id"] = None


async def _ensure_no_active_install(state: VaultState) -> None:
    active_id = state["active_install_id"]
    if not active_id:
        return
    active = await state["jobs"].get(active_id)
    if active is not None and not active.is_terminal:
        raise JobConflictError(
            f"Another modpack install is already running: {active_id}",
            details={"active_job_id": active_id},
        )


async def _start_install(
    config: WorldVaultConfig,
    state: VaultState,
    provider: PackProvider,
    locator: Any,
) -> Dict[str, Any]:
    async with state["start_lock"]:
        await _ensure_no_active_install(state)

        job_id = generate_job_id(provider.source)
        job = await state["jobs"].create(
            job_id,
            JobKind.PACKAGE_INSTALL,
            source=provider.source,
            progress={"phase": "queued"},
        )
        state["active_install_id"] = job_id
    state["install_count"] += 1
    logger.info("install_job_created", job_id=job_id, source=provider.source)

    launch_background(state, run_install(config, state, job_id, provider, locator), job_id)
    return {"id": job.id, "status": job.status.value}


async def start_modrinth_install(
    config: WorldVaultConfig,
    state: VaultState,
    url: str,
    pack_version: str | None = None,
) -> Dict[str, Any]:
    """
    Start installing a Modrinth pack.

    Raises:
        ValidationError: Missing URL
        MaintenanceRequiredError: Maintenance mode is off; no job is created
        JobConflictError: Another install is active
    """
    if not url or not url.strip():
        raise ValidationError("Modrinth URL is required")
    ensure_maintenance_mode(state["maintenance_mode"])
    provider = ModrinthProvider(config, state["http_client"])
    return await _start_install(config, state, provider, ModrinthLocator(url.strip(), pack_version or None))


async def start_curseforge_install(
    config: WorldVaultConfig,
    state: VaultState,
    project_id: int,
    file_id: int,
) -> Dict[str, Any]:
    """
    Start installing a CurseForge pack.

    Raises:
        MaintenanceRequiredError: Maintenance mode is off; no job is created
        ConfigurationError: No CurseForge API key; no job is created
        JobConflictError: Another install is active
    """
    ensure_maintenance_mode(state["maintenance_mode"])
    provider = CurseforgeProvider(config, state["http_client"])
    return await _start_install(config, state, provider, CurseforgeLocator(int(project_id), int(file_id)))


async def get_install_status(state: VaultState, job_id: str) -> Dict[str, Any] | None:
    """Full record of an install job, or None if unknown."""
    job = await state["jobs"].get(job_id)
    if job is None or job.kind != JobKind.PACKAGE_INSTALL:
        return None
    return job.to_dict()
