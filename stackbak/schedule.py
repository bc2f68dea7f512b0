# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Schedule - The cron.d file that runs unattended backups.

The file always holds exactly two entries: a daily full backup at a
fixed time and a data backup every N minutes. Each entry pins
STACKBAK_WORKDIR so the scheduled run does not depend on cron's cwd.
"""

import os
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import aiofiles
import structlog

from stackbak.config import StackBakConfig
from stackbak.errors import (
    explain_invalid_interval,
    explain_invalid_time,
    explain_relative_program_path,
)
from stackbak.exceptions import ScheduleError
from stackbak.resolver import WORKDIR_ENV

logger = structlog.get_logger()

SCHEDULE_FILE_MODE = 0o644
CRON_USER = "root"

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440

_TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")
_INTERVAL_RE = re.compile(r"^[0-9]+$")

SCHEDULE_HEADER = (
    "# Managed by stackbak. Changes are overwritten.\n"
    "SHELL=/bin/sh\n"
    "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin\n"
)


@dataclass(frozen=True)
class Schedule:
    """Validated schedule input."""

    full_hour: int
    full_minute: int
    data_interval_minutes: int


def parse_time_of_day(value: str) -> Tuple[int, int]:
    """
    Parse strict HH:MM (00:00 through 23:59).

    Raises:
        ScheduleError: If value is not two-digit hours and minutes in range
    """
    match = _TIME_RE.match(value or "")
    if not match:
        raise ScheduleError(explain_invalid_time(value))
    return int(match.group(1)), int(match.group(2))


def parse_interval(value: str) -> int:
    """
    Parse the data-backup interval in minutes, 1 through 1440.

    Raises:
        ScheduleError: If value is not a whole number in range
    """
    text = str(value).strip()
    if not _INTERVAL_RE.match(text):
        raise ScheduleError(explain_invalid_interval(str(value)))
    minutes = int(text)
    if not MIN_INTERVAL_MINUTES <= minutes <= MAX_INTERVAL_MINUTES:
        raise ScheduleError(explain_invalid_interval(str(value)))
    return minutes


def validate_schedule(full_time: str, data_interval: str) -> Schedule:
    hour, minute = parse_time_of_day(full_time)
    return Schedule(
        full_hour=hour,
        full_minute=minute,
        data_interval_minutes=parse_interval(data_interval),
    )


def interval_to_cron(minutes: int) -> str:
    """
    Cron time fields for "every N minutes".

    Cron cannot step minutes past the hour, so N >= 60 is rounded down
    to whole hours.
    """
    if minutes < 60:
        return f"*/{minutes} * * * *"

    hours = minutes // 60
    if minutes % 60:
        logger.warning(
            "schedule_interval_rounded",
            requested_minutes=minutes,
            effective_minutes=hours * 60,
        )
    if hours >= 24:
        return "0 0 * * *"
    return f"0 */{hours} * * *"


def render_schedule(
    config: StackBakConfig,
    schedule: Schedule,
    program: str,
    workdir: Path,
) -> str:
    env = f"{WORKDIR_ENV}={shlex.quote(str(workdir))}"
    prog = shlex.quote(program)

    full_line = (
        f"{schedule.full_minute} {schedule.full_hour} * * * {CRON_USER} "
        f"{env} {prog} full-backup >> {shlex.quote(str(config.full_log_path))} 2>&1"
    )
    data_line = (
        f"{interval_to_cron(schedule.data_interval_minutes)} {CRON_USER} "
        f"{env} {prog} data-backup >> {shlex.quote(str(config.data_log_path))} 2>&1"
    )
    return f"{SCHEDULE_HEADER}{full_line}\n{data_line}\n"


async def write_schedule(
    config: StackBakConfig,
    full_time: str,
    data_interval: str,
    invoked_path: str,
    workdir: Path | None = None,
) -> Path:
    """
    Overwrite the schedule file with the full and data backup entries.

    All input is validated before anything is written.

    Args:
        config: stackbak configuration (schedule and log paths)
        full_time: Daily full-backup time, HH:MM
        data_interval: Minutes between data backups, 1-1440
        invoked_path: Absolute path of the stackbak program
        workdir: Working directory pinned into the entries (default: config.workdir)

    Returns:
        Path to the schedule file

    Raises:
        ScheduleError: On invalid input or a write failure
    """
    if not os.path.isabs(invoked_path):
        raise ScheduleError(explain_relative_program_path(invoked_path))

    schedule = validate_schedule(full_time, data_interval)
    content = render_schedule(
        config,
        schedule,
        invoked_path,
        workdir if workdir is not None else config.workdir,
    )

    path = config.schedule_path
    temp_path = path.with_name(f".{path.name}.tmp")

    try:
        async with aiofiles.open(temp_path, "w") as f:
            await f.write(content)
        os.chmod(temp_path, SCHEDULE_FILE_MODE)
        # Write atomically: temp file -> rename
        temp_path.replace(path)
    except OSError as e:
        raise ScheduleError(
            f"Failed to write schedule file: {e}",
            details={"path": str(path)},
        )

    logger.info(
        "schedule_written",
        path=str(path),
        full_time=f"{schedule.full_hour:02d}:{schedule.full_minute:02d}",
        data_interval_minutes=schedule.data_interval_minutes,
    )
    return path


async def read_schedule(config: StackBakConfig) -> str | None:
    """Contents of the schedule file, or None if there is none."""
    try:
        async with aiofiles.open(config.schedule_path, "r") as f:
            return await f.read()
    except FileNotFoundError:
        return None


def delete_schedule(config: StackBakConfig) -> bool:
    """
    Remove the schedule file.

    Returns:
        True if a file was removed, False if there was none
    """
    try:
        config.schedule_path.unlink()
    except FileNotFoundError:
        logger.debug("schedule_absent", path=str(config.schedule_path))
        return False

    logger.info("schedule_deleted", path=str(config.schedule_path))
    return True
