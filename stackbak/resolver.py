# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Resolver - Working directory discovery and prerequisite checks.

resolve_workdir() is a pure lookup: the start directory, the environment
mapping and the file-existence predicate are all passed in, so it can be
tested without touching the real process state.
"""

import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Mapping

import structlog

from stackbak.config import DEFAULT_WORKDIR, STACK_DEFINITION_FILE
from stackbak.errors import (
    explain_missing_command,
    explain_missing_site_files,
    explain_workdir_not_found,
    explain_workdir_override_invalid,
)
from stackbak.exceptions import (
    MissingConfigFileError,
    MissingPrerequisiteError,
    WorkdirNotFoundError,
)

logger = structlog.get_logger()

WORKDIR_ENV = "STACKBAK_WORKDIR"

# Commands stackbak shells out to
REQUIRED_COMMANDS = ("docker",)


def resolve_workdir(
    start: Path,
    environ: Mapping[str, str],
    default: Path = DEFAULT_WORKDIR,
    *,
    is_file: Callable[[Path], bool] = Path.is_file,
    is_dir: Callable[[Path], bool] = Path.is_dir,
    definition_file: str = STACK_DEFINITION_FILE,
) -> Path:
    """
    Locate the working directory containing the stack definition.

    Resolution order, first match wins:
    1. STACKBAK_WORKDIR, if set
    2. start or its nearest ancestor containing compose.yaml
    3. default, if it contains compose.yaml

    Args:
        start: Directory to begin the ancestor walk from
        environ: Environment mapping to read the override from
        default: Fallback directory
        is_file: Existence predicate for files
        is_dir: Existence predicate for directories
        definition_file: Filename marking a working directory

    Returns:
        The resolved working directory

    Raises:
        WorkdirNotFoundError: If nothing matches
    """
    override = environ.get(WORKDIR_ENV)
    if override:
        # Relative overrides are taken from the start directory
        candidate = Path(os.path.normpath(start / override))
        if not is_dir(candidate):
            raise WorkdirNotFoundError(
                explain_workdir_override_invalid(override),
                details={"env": WORKDIR_ENV},
            )
        logger.debug("workdir_resolved", source="env", workdir=str(candidate))
        return candidate

    for candidate in (start, *start.parents):
        if is_file(candidate / definition_file):
            logger.debug("workdir_resolved", source="ancestor", workdir=str(candidate))
            return candidate

    if is_file(default / definition_file):
        logger.debug("workdir_resolved", source="default", workdir=str(default))
        return default

    raise WorkdirNotFoundError(explain_workdir_not_found(start, default))


def find_missing_site_files(workdir: Path, site_files: Iterable[str]) -> List[str]:
    """Return every site file absent from workdir, in declaration order."""
    return [name for name in site_files if not (workdir / name).is_file()]


def ensure_site_files_exist(workdir: Path, site_files: Iterable[str]) -> None:
    """
    Check that every site file exists in the working directory.

    All files are checked before failing so the operator sees the
    complete list in a single run.

    Raises:
        MissingConfigFileError: Listing every missing file
    """
    missing = find_missing_site_files(workdir, site_files)
    if not missing:
        return

    for name in missing:
        logger.error("site_file_missing", path=str(workdir / name))

    raise MissingConfigFileError(explain_missing_site_files(workdir, missing), missing)


def check_prerequisites(
    commands: Iterable[str] = REQUIRED_COMMANDS,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    """
    Verify required external commands are installed.

    Raises:
        MissingPrerequisiteError: For the first missing command
    """
    for command in commands:
        if which(command) is None:
            raise MissingPrerequisiteError(
                explain_missing_command(command),
                details={"command": command},
            )
