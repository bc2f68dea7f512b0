# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Hot Backup - Capture while the stack keeps running.

The database is dumped with mysqldump inside its container. Redis is
only asked to BGSAVE into its own volume; cache state is treated as
recoverable, so a missing or failing cache is a warning.
"""

from datetime import datetime

import structlog

from stackbak.backup.models import CaptureResult
from stackbak.backup.database import dump_database, trigger_cache_save
from stackbak.bundle import DB_DIR, copy_site_files, pack, stage, write_manifest
from stackbak.config import BundleKind, BundleType, StackBakConfig
from stackbak.exceptions import ServiceNotRunningError
from stackbak.resolver import ensure_site_files_exist
from stackbak.runtime import ContainerRuntime
from stackbak.steps import StepPolicy, run_step

logger = structlog.get_logger()

HOT_BUNDLE_TYPES = {
    BundleKind.FULL: BundleType.FULL_ONLINE,
    BundleKind.DATA: BundleType.DATA_ONLINE,
}


async def capture_hot(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    kind: BundleKind,
    now: datetime | None = None,
) -> CaptureResult:
    """
    Create a bundle without stopping any service.

    Args:
        config: stackbak configuration
        runtime: Container runtime for the stack
        kind: FULL (site files + dump) or DATA (dump only)
        now: Capture time recorded in the manifest

    Returns:
        CaptureResult describing the written archive

    Raises:
        MissingConfigFileError: If any site file is missing
        ServiceNotRunningError: If the database service is not running
        CollaboratorError: If the dump or packing fails
    """
    ensure_site_files_exist(config.workdir, config.site_files)

    bundle_type = HOT_BUNDLE_TYPES[kind]
    warnings = []

    logger.info("hot_backup_started", kind=kind.value, workdir=str(config.workdir))

    running = await runtime.running_services()
    if config.db_service not in running:
        raise ServiceNotRunningError(
            f"Database service '{config.db_service}' is not running; nothing to dump",
            details={"running": sorted(running)},
        )

    staging_dir = stage(config.staging_dir(kind), kind)

    if config.cache_service in running:
        await run_step(
            "cache_bgsave",
            lambda: trigger_cache_save(config, runtime),
            StepPolicy.BEST_EFFORT,
            warnings,
        )
    else:
        message = f"cache service '{config.cache_service}' is not running; skipped BGSAVE"
        logger.warning("cache_service_not_running", service=config.cache_service)
        warnings.append(message)

    dump_size = await dump_database(
        config, runtime, staging_dir / DB_DIR / config.dump_filename
    )

    if kind == BundleKind.FULL:
        copy_site_files(config.workdir, staging_dir, config.site_files)

    archive_path = config.archive_path(kind)
    manifest = await write_manifest(
        staging_dir,
        bundle_type,
        config.workdir,
        bundle=archive_path.name,
        now=now,
    )
    await pack(staging_dir, archive_path)

    logger.info(
        "hot_backup_completed",
        kind=kind.value,
        archive=str(archive_path),
        dump_bytes=dump_size,
        warnings=len(warnings),
    )

    return CaptureResult(
        kind=kind,
        bundle_type=bundle_type,
        archive_path=archive_path,
        staging_dir=staging_dir,
        manifest=manifest,
        warnings=warnings,
    )
