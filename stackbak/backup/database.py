# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Database - MySQL and Redis commands run inside the stack.

Credentials never leave the containers: every command is wrapped in
`sh -c` so MYSQL_ROOT_PASSWORD / REDIS_PASSWORD are read from the
container's own environment.
"""

import asyncio
import functools
from pathlib import Path
from typing import Awaitable, Callable, List

import structlog

from stackbak.bundle.codec import GzipFileSink, check_gzip, iter_gunzip
from stackbak.config import StackBakConfig
from stackbak.exceptions import CorruptBundleError
from stackbak.runtime import CommandResult, ContainerRuntime
from stackbak.steps import StepPolicy, run_step

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


def dump_command(db_name: str) -> List[str]:
    """
    mysqldump with a consistent InnoDB snapshot.

    --set-gtid-purged=OFF keeps GTID_PURGED statements out of the dump;
    they make the import fail on a server that already has GTIDs.
    """
    return [
        "sh",
        "-c",
        'exec mysqldump -uroot -p"$MYSQL_ROOT_PASSWORD" '
        "--single-transaction --quick --routines --triggers --events "
        '--set-gtid-purged=OFF "$0"',
        db_name,
    ]


def import_command(db_name: str) -> List[str]:
    return ["sh", "-c", 'exec mysql -uroot -p"$MYSQL_ROOT_PASSWORD" "$0"', db_name]


def ping_command() -> List[str]:
    return [
        "sh",
        "-c",
        'exec mysqladmin ping -h 127.0.0.1 -uroot -p"$MYSQL_ROOT_PASSWORD" --silent',
    ]


def bgsave_command() -> List[str]:
    return ["sh", "-c", 'exec redis-cli ${REDIS_PASSWORD:+-a "$REDIS_PASSWORD"} BGSAVE']


async def dump_database(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    dest: Path,
) -> int:
    """
    Stream a gzip-compressed dump of the configured database into dest.

    Returns:
        Uncompressed dump size in bytes

    Raises:
        CollaboratorError: If mysqldump exits non-zero or the file cannot be
            written; the partial file is removed
    """
    try:
        async with GzipFileSink(dest) as sink:
            await run_step(
                "database_dump",
                functools.partial(
                    runtime.exec_in_service,
                    config.db_service,
                    dump_command(config.db_name),
                    stdout_sink=sink.write,
                ),
                StepPolicy.MANDATORY,
            )
    except Exception:
        # A partial dump must never be mistaken for a usable one
        dest.unlink(missing_ok=True)
        logger.warning("partial_dump_removed", path=str(dest))
        raise

    if sink.bytes_in == 0:
        logger.warning("database_dump_empty", db=config.db_name)

    logger.info(
        "database_dumped",
        db=config.db_name,
        path=str(dest),
        size=sink.bytes_in,
    )
    return sink.bytes_in


async def import_database(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    dump_path: Path,
) -> CommandResult:
    """
    Decompress a dump and stream it into mysql inside the database service.

    Raises:
        CorruptBundleError: If the dump file is missing, not gzip, or truncated
        CollaboratorError: If mysql exits non-zero (its stderr is the message)
    """
    if not dump_path.is_file():
        raise CorruptBundleError(
            f"Database dump not found in bundle: {dump_path}",
            details={"path": str(dump_path)},
        )

    # Nothing reaches mysql unless the whole dump decompresses
    size = await check_gzip(dump_path)
    logger.info("database_dump_verified", path=str(dump_path), size=size)

    result = await run_step(
        "database_import",
        functools.partial(
            runtime.exec_in_service,
            config.db_service,
            import_command(config.db_name),
            stdin_chunks=iter_gunzip(dump_path),
        ),
        StepPolicy.MANDATORY,
    )
    logger.info("database_imported", db=config.db_name, path=str(dump_path))
    return result


async def wait_for_database(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """
    Poll the database until it answers or the attempt budget runs out.

    Returns:
        True if the database answered, False if the budget was exhausted
    """
    for attempt in range(1, config.ready_attempts + 1):
        result = await runtime.exec_in_service(config.db_service, ping_command())
        if result.ok:
            logger.info("database_ready", attempt=attempt)
            return True

        logger.debug("database_not_ready_yet", attempt=attempt, error=result.diagnostic)
        if attempt < config.ready_attempts:
            await sleep(config.ready_delay_seconds)

    logger.warning("database_ready_timeout", attempts=config.ready_attempts)
    return False


async def trigger_cache_save(
    config: StackBakConfig,
    runtime: ContainerRuntime,
) -> CommandResult:
    """Ask Redis to start a background save. Completion is not awaited."""
    return await runtime.exec_in_service(config.cache_service, bgsave_command())
