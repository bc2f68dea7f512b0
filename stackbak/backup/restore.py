# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Restore Executor - Bring a bundle back into the running stack.

The sequence is linear:

    idle -> confirm -> stopped -> unpacked -> files_restored
         -> volumes_restored -> database_starting -> database_ready
         -> database_imported -> restarted -> done

with `aborted` reachable from confirm and `failed` from anywhere.
States that do not apply to a bundle (no site files, no volumes, no
dump) are skipped. Nothing destructive happens before the operator
types the literal confirmation token.
"""

import asyncio
import functools
import shutil
import time
from pathlib import Path
from typing import Callable

import structlog

from stackbak.backup.cold import volume_restore_command
from stackbak.backup.database import import_database, wait_for_database
from stackbak.backup.models import RestoreResult, RestoreSource, RestoreState
from stackbak.bundle import DB_DIR, VOLUMES_DIR, restore_site_files, unpack
from stackbak.config import BundleKind, StackBakConfig
from stackbak.errors import explain_missing_bundle
from stackbak.exceptions import CorruptBundleError, MissingBundleError
from stackbak.resolver import ensure_site_files_exist
from stackbak.runtime import ContainerRuntime
from stackbak.steps import StepPolicy, run_step

logger = structlog.get_logger()

# Prompt: shows text, returns the operator's raw answer
Prompt = Callable[[str], str]

CONFIRM_TOKEN = "YES"


def is_confirmed(answer: str) -> bool:
    """Only the exact token counts; no trimming, no case folding."""
    return answer == CONFIRM_TOKEN


def _answer_is_yes(answer: str, default: bool) -> bool:
    normalized = answer.strip().lower()
    if not normalized:
        return default
    return normalized in ("y", "yes")


class RestoreExecutor:
    """
    Runs one restore at a time for a stack.

    Args:
        config: stackbak configuration
        runtime: Container runtime for the stack
        prompt: Used for the confirmation question
        sleep: Delay used between readiness probes
    """

    def __init__(
        self,
        config: StackBakConfig,
        runtime: ContainerRuntime,
        prompt: Prompt,
        sleep=asyncio.sleep,
    ):
        self.config = config
        self.runtime = runtime
        self.prompt = prompt
        self.sleep = sleep
        self.state = RestoreState.IDLE
        self.history = [RestoreState.IDLE]

    def _enter(self, state: RestoreState) -> None:
        self.state = state
        self.history.append(state)
        logger.info("restore_state", state=state.value)

    def bundle_path(self, kind: BundleKind, source: RestoreSource) -> Path:
        if source == RestoreSource.LOCAL:
            return self.config.staging_dir(kind)
        return self.config.archive_path(kind)

    async def run(
        self,
        kind: BundleKind,
        source: RestoreSource = RestoreSource.ARCHIVE,
    ) -> RestoreResult:
        """
        Restore a bundle.

        Args:
            kind: FULL or DATA
            source: ARCHIVE (the .tar.gz) or LOCAL (the staging directory
                left by the last backup; site files are not replaced)

        Returns:
            RestoreResult with state DONE, or ABORTED if not confirmed

        Raises:
            MissingBundleError: If the bundle does not exist
            MissingConfigFileError: If any site file is missing
            CorruptBundleError: If the bundle lacks required content
            CollaboratorError: If a mandatory external step fails
        """
        self.state = RestoreState.IDLE
        self.history = [RestoreState.IDLE]
        started = time.monotonic()
        bundle_path = self.bundle_path(kind, source)
        result = RestoreResult(kind=kind, source=source, state=self.state, bundle_path=bundle_path)

        try:
            await self._run(kind, source, bundle_path, result)
        except Exception as e:
            self._enter(RestoreState.FAILED)
            logger.error(
                "restore_failed",
                kind=kind.value,
                error=str(e),
                extracted_dir=str(result.extracted_dir) if result.extracted_dir else None,
            )
            raise
        finally:
            result.state = self.state
            result.states = list(self.history)
            result.duration_seconds = time.monotonic() - started

        return result

    async def _run(
        self,
        kind: BundleKind,
        source: RestoreSource,
        bundle_path: Path,
        result: RestoreResult,
    ) -> None:
        config = self.config
        runtime = self.runtime

        exists = bundle_path.is_dir() if source == RestoreSource.LOCAL else bundle_path.is_file()
        if not exists:
            raise MissingBundleError(
                explain_missing_bundle(bundle_path),
                details={"bundle_path": str(bundle_path)},
            )
        ensure_site_files_exist(config.workdir, config.site_files)

        self._enter(RestoreState.CONFIRM)
        what = "the full site (data and configuration files)" if kind == BundleKind.FULL else "the database"
        answer = self.prompt(
            f"Restore {what} from {bundle_path}? Current data will be overwritten. "
            f"Type {CONFIRM_TOKEN} to continue"
        )
        if not is_confirmed(answer):
            self._enter(RestoreState.ABORTED)
            logger.info("restore_cancelled", kind=kind.value)
            return

        await run_step("stack_down", runtime.compose_down, StepPolicy.BEST_EFFORT, result.warnings)
        self._enter(RestoreState.STOPPED)

        if source == RestoreSource.ARCHIVE:
            bundle_dir = await unpack(
                bundle_path,
                config.staging_dir(kind).name,
                temp_parent=config.backup_root,
            )
            result.extracted_dir = bundle_dir
        else:
            bundle_dir = bundle_path
        self._enter(RestoreState.UNPACKED)

        if kind == BundleKind.FULL and source == RestoreSource.ARCHIVE:
            result.restored_files = restore_site_files(bundle_dir, config.workdir, config.site_files)
            self._enter(RestoreState.FILES_RESTORED)

        volumes_dir = bundle_dir / VOLUMES_DIR
        if volumes_dir.is_dir():
            result.restored_volumes = await self._restore_volumes(volumes_dir, result)
            self._enter(RestoreState.VOLUMES_RESTORED)

        dump_path = bundle_dir / DB_DIR / config.dump_filename
        if dump_path.is_file():
            await run_step(
                "database_start",
                functools.partial(runtime.compose_up, config.db_service),
                StepPolicy.MANDATORY,
            )
            self._enter(RestoreState.DATABASE_STARTING)

            if await wait_for_database(config, runtime, self.sleep):
                self._enter(RestoreState.DATABASE_READY)
            else:
                result.warnings.append(
                    f"database not ready after {config.ready_attempts} attempts; importing anyway"
                )

            await import_database(config, runtime, dump_path)
            result.database_imported = True
            self._enter(RestoreState.DATABASE_IMPORTED)
        elif not result.restored_volumes:
            raise CorruptBundleError(
                "Bundle contains neither a database dump nor volume captures",
                details={"bundle_dir": str(bundle_dir)},
            )

        await run_step("stack_up", runtime.compose_up, StepPolicy.MANDATORY)
        status = await run_step("stack_status", runtime.compose_ps, StepPolicy.BEST_EFFORT, result.warnings)
        result.status_output = status.stdout if status is not None else ""
        self._enter(RestoreState.RESTARTED)

        if result.extracted_dir is not None:
            shutil.rmtree(result.extracted_dir.parent, ignore_errors=True)
            logger.debug("restore_temp_removed", path=str(result.extracted_dir.parent))

        self._enter(RestoreState.DONE)
        logger.info("restore_completed", kind=kind.value, source=source.value)

    async def _restore_volumes(self, volumes_dir: Path, result: RestoreResult) -> list:
        """
        Recreate every configured volume from its capture.

        All captures are checked before any volume is touched.
        """
        config = self.config
        runtime = self.runtime

        missing = [
            str(volumes_dir / f"{name}.tar.gz")
            for name in config.volumes
            if not (volumes_dir / f"{name}.tar.gz").is_file()
        ]
        if missing:
            raise CorruptBundleError(
                "Bundle is missing volume captures",
                details={"missing": missing},
            )

        for name, volume in config.volumes.items():
            await run_step(
                f"volume_remove:{name}",
                functools.partial(runtime.remove_volume, volume),
                StepPolicy.BEST_EFFORT,
                result.warnings,
            )
            await run_step(
                f"volume_create:{name}",
                functools.partial(runtime.create_volume, volume),
                StepPolicy.MANDATORY,
            )
            await run_step(
                f"volume_restore:{name}",
                functools.partial(
                    runtime.run_helper,
                    config.helper_image,
                    volume,
                    volumes_dir,
                    volume_restore_command(name),
                    volume_read_only=False,
                ),
                StepPolicy.MANDATORY,
            )

        return list(config.volumes)


async def restore_data_then_optional_full(
    config: StackBakConfig,
    executor: RestoreExecutor,
    prompt: Prompt,
) -> RestoreResult:
    """
    Guided restore: prefer the data bundle, fall back to the full bundle.

    The data bundle is offered first and accepted on empty input. The
    full bundle also overwrites configuration files, so it is offered
    only if the data restore was declined or unavailable, and only an
    explicit yes accepts it.

    Raises:
        MissingBundleError: If neither bundle exists (nothing is stopped)
    """
    data_archive = config.archive_path(BundleKind.DATA)
    full_archive = config.archive_path(BundleKind.FULL)
    has_data = data_archive.is_file()
    has_full = full_archive.is_file()

    if not has_data and not has_full:
        raise MissingBundleError(
            "No bundle to restore from. "
            f"{explain_missing_bundle(data_archive)} {explain_missing_bundle(full_archive)}",
            details={"data_archive": str(data_archive), "full_archive": str(full_archive)},
        )

    if has_data:
        answer = prompt(f"Data bundle found at {data_archive}. Restore the database from it? [Y/n]")
        if _answer_is_yes(answer, default=True):
            return await executor.run(BundleKind.DATA)
        logger.info("data_restore_declined")

    if has_full:
        answer = prompt(
            f"Restore the full site bundle {full_archive}? "
            "This also overwrites compose.yaml, .env and Caddyfile. [y/N]"
        )
        if _answer_is_yes(answer, default=False):
            return await executor.run(BundleKind.FULL)
        logger.info("full_restore_declined")

    return RestoreResult(
        kind=BundleKind.FULL if has_full else BundleKind.DATA,
        source=RestoreSource.ARCHIVE,
        state=RestoreState.ABORTED,
        states=[RestoreState.IDLE, RestoreState.ABORTED],
    )
