# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Bundle Store - Staging layout and archive packing.

A bundle is assembled in a staging directory, then packed into a
single .tar.gz whose only top-level entry is that directory. There is
exactly one staging directory and one archive per bundle kind; every
backup replaces both.

Layout:
    backup_latest/                 data_backup_latest/
        site_files/                    db/<name>.sql.gz
        db/<name>.sql.gz               meta/manifest.txt
        meta/manifest.txt
        volumes/<name>.tar.gz   (cold backups only)
"""

import asyncio
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Dict, List, Tuple

import structlog

from stackbak.config import BundleKind
from stackbak.errors import explain_missing_bundle
from stackbak.exceptions import CollaboratorError, CorruptBundleError, MissingBundleError

logger = structlog.get_logger()

SITE_FILES_DIR = "site_files"
DB_DIR = "db"
META_DIR = "meta"
VOLUMES_DIR = "volumes"

LAYOUTS: Dict[BundleKind, Tuple[str, ...]] = {
    BundleKind.FULL: (SITE_FILES_DIR, DB_DIR, META_DIR),
    BundleKind.DATA: (DB_DIR, META_DIR),
}


def _filesystem_error(action: str, path: Path, error: OSError) -> CollaboratorError:
    return CollaboratorError(
        f"Failed to {action} {path}: {error.strerror or error}",
        details={"path": str(path)},
    )


def stage(staging_dir: Path, kind: BundleKind, with_volumes: bool = False) -> Path:
    """
    Replace a staging directory with an empty tree for a bundle kind.

    Whatever was there before is deleted.

    Args:
        staging_dir: The kind's canonical staging directory
        kind: Bundle kind selecting the subdirectory layout
        with_volumes: Also create volumes/ (cold backups)

    Returns:
        The staging directory

    Raises:
        CollaboratorError: If the directory cannot be replaced
    """
    try:
        if staging_dir.exists():
            shutil.rmtree(staging_dir)

        for subdir in LAYOUTS[kind]:
            (staging_dir / subdir).mkdir(parents=True)
        if with_volumes:
            (staging_dir / VOLUMES_DIR).mkdir(parents=True)
    except OSError as e:
        raise _filesystem_error("prepare staging directory", staging_dir, e)

    logger.debug("staging_dir_created", path=str(staging_dir), kind=kind.value)
    return staging_dir


def copy_site_files(workdir: Path, staging_dir: Path, site_files: Tuple[str, ...]) -> None:
    """Copy each site file from the working directory into site_files/."""
    target = staging_dir / SITE_FILES_DIR
    try:
        target.mkdir(parents=True, exist_ok=True)
        for name in site_files:
            shutil.copy2(workdir / name, target / name)
    except OSError as e:
        raise _filesystem_error("copy site files into", target, e)
    logger.debug("site_files_copied", count=len(site_files), target=str(target))


def restore_site_files(
    staging_dir: Path,
    workdir: Path,
    site_files: Tuple[str, ...],
) -> List[str]:
    """
    Overwrite working-directory site files with the bundle's copies.

    Files the bundle lacks are left untouched.

    Returns:
        Names of the files that were restored

    Raises:
        CollaboratorError: If a site file cannot be overwritten
    """
    source = staging_dir / SITE_FILES_DIR
    if not source.is_dir():
        logger.warning("bundle_has_no_site_files", path=str(source))
        return []

    restored = []
    for name in site_files:
        candidate = source / name
        if candidate.is_file():
            try:
                shutil.copy2(candidate, workdir / name)
            except OSError as e:
                raise _filesystem_error("restore", workdir / name, e)
            restored.append(name)
        else:
            logger.warning("site_file_not_in_bundle", file=name)

    logger.info("site_files_restored", files=restored)
    return restored


async def pack(staging_dir: Path, archive_path: Path) -> Path:
    """
    Pack a staging directory into a .tar.gz at its canonical path.

    A stale archive is removed before writing so an interrupted run
    never leaves an old archive that looks current.

    Returns:
        Path to the archive

    Raises:
        CollaboratorError: If the archive cannot be written
    """
    try:
        archive_path.unlink(missing_ok=True)
        await asyncio.to_thread(_pack_sync, staging_dir, archive_path)
    except (OSError, tarfile.TarError) as e:
        raise CollaboratorError(
            f"Failed to create archive: {e}",
            details={"archive_path": str(archive_path)},
        )

    logger.info(
        "bundle_packed",
        archive=str(archive_path),
        size=archive_path.stat().st_size,
    )
    return archive_path


def _pack_sync(staging_dir: Path, archive_path: Path) -> None:
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "w:gz") as tar:
        tar.add(staging_dir, arcname=staging_dir.name)


async def unpack(
    archive_path: Path,
    expected_name: str,
    temp_parent: Path | None = None,
) -> Path:
    """
    Extract an archive into a fresh temporary directory.

    Never extracts over the working directory. The temporary directory
    is left in place on failure for inspection.

    Args:
        archive_path: The .tar.gz to extract
        expected_name: Name of the staging directory the archive must contain
        temp_parent: Where to create the temporary directory (default: system temp)

    Returns:
        Path to the extracted staging directory

    Raises:
        MissingBundleError: If the archive does not exist
        CorruptBundleError: If the archive is unreadable, unsafe, or lacks
            the expected directory
    """
    if not archive_path.is_file():
        raise MissingBundleError(
            explain_missing_bundle(archive_path),
            details={"archive_path": str(archive_path)},
        )

    try:
        extract_to = Path(
            tempfile.mkdtemp(
                prefix="stackbak-restore-",
                dir=str(temp_parent) if temp_parent is not None else None,
            )
        )
    except OSError as e:
        parent = temp_parent if temp_parent is not None else Path(tempfile.gettempdir())
        raise _filesystem_error("create extraction directory in", parent, e)

    try:
        await asyncio.to_thread(_unpack_sync, archive_path, extract_to)
    except CorruptBundleError:
        raise
    except (OSError, tarfile.TarError, EOFError) as e:
        raise CorruptBundleError(
            f"Failed to extract archive: {e}",
            details={"archive_path": str(archive_path), "extract_to": str(extract_to)},
        )

    extracted = extract_to / expected_name
    if not extracted.is_dir():
        raise CorruptBundleError(
            f"Archive does not contain {expected_name}/",
            details={"archive_path": str(archive_path), "extract_to": str(extract_to)},
        )

    logger.info("bundle_unpacked", archive=str(archive_path), path=str(extracted))
    return extracted


def _unpack_sync(archive_path: Path, extract_to: Path) -> None:
    with tarfile.open(archive_path, "r:*") as tar:
        # Security: Check for path traversal
        for member in tar.getmembers():
            if member.name.startswith("/") or ".." in Path(member.name).parts:
                raise CorruptBundleError(
                    f"Unsafe path in archive: {member.name}",
                    details={"archive_path": str(archive_path)},
                )
        tar.extractall(extract_to, filter="data")
