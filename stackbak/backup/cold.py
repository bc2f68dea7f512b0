# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Cold Backup - Capture raw volume bytes with the stack stopped.

Each volume is archived by a throwaway helper container that mounts it
read-only. The stack is brought back up whether or not the capture
succeeded.
"""

import functools
import shlex
from datetime import datetime

import structlog

from stackbak.backup.models import CaptureResult
from stackbak.bundle import VOLUMES_DIR, copy_site_files, pack, stage, write_manifest
from stackbak.config import BundleKind, BundleType, StackBakConfig
from stackbak.exceptions import ConfigurationError
from stackbak.resolver import ensure_site_files_exist
from stackbak.runtime import ContainerRuntime
from stackbak.steps import StepPolicy, run_step

logger = structlog.get_logger()


def volume_capture_command(capture_name: str) -> str:
    return f"cd /data && tar -czf /backup/{shlex.quote(capture_name + '.tar.gz')} ."


def volume_restore_command(capture_name: str) -> str:
    return f"cd /data && tar -xzf /backup/{shlex.quote(capture_name + '.tar.gz')}"


async def capture_cold(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    kind: BundleKind = BundleKind.FULL,
    now: datetime | None = None,
) -> CaptureResult:
    """
    Stop the stack, archive every volume and the site files, restart.

    Only full bundles can be captured cold.

    Raises:
        ConfigurationError: If kind is not FULL
        MissingConfigFileError: If any site file is missing
        CollaboratorError: If a volume capture, packing, or the restart fails
    """
    if kind != BundleKind.FULL:
        raise ConfigurationError(
            "Cold backups capture whole volumes and are only available for full bundles",
            details={"kind": kind.value},
        )

    ensure_site_files_exist(config.workdir, config.site_files)

    warnings = []
    logger.info("cold_backup_started", workdir=str(config.workdir))

    await run_step("stack_down", runtime.compose_down, StepPolicy.BEST_EFFORT, warnings)

    try:
        staging_dir = stage(config.staging_dir(kind), kind, with_volumes=True)
        volumes_dir = staging_dir / VOLUMES_DIR

        for capture_name, volume in config.volumes.items():
            await run_step(
                f"volume_capture:{capture_name}",
                functools.partial(
                    runtime.run_helper,
                    config.helper_image,
                    volume,
                    volumes_dir,
                    volume_capture_command(capture_name),
                    volume_read_only=True,
                ),
                StepPolicy.MANDATORY,
            )

        copy_site_files(config.workdir, staging_dir, config.site_files)

        archive_path = config.archive_path(kind)
        manifest = await write_manifest(
            staging_dir,
            BundleType.FULL_OFFLINE,
            config.workdir,
            bundle=archive_path.name,
            extra={f"{name}_volume": volume for name, volume in config.volumes.items()},
            now=now,
        )
        await pack(staging_dir, archive_path)
    except Exception:
        # Do not leave the site down because the capture failed
        await run_step("stack_up", runtime.compose_up, StepPolicy.BEST_EFFORT, warnings)
        raise

    await run_step("stack_up", runtime.compose_up, StepPolicy.MANDATORY)

    logger.info("cold_backup_completed", archive=str(archive_path), warnings=len(warnings))

    return CaptureResult(
        kind=kind,
        bundle_type=BundleType.FULL_OFFLINE,
        archive_path=archive_path,
        staging_dir=staging_dir,
        manifest=manifest,
        warnings=warnings,
    )
