# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak CLI - Interactive menu and non-interactive scheduler modes.

    stackbak                 interactive menu
    stackbak full-backup     one full backup, for cron
    stackbak data-backup     one data backup, for cron

Raw input is mapped to an Action or Mode once, here; everything below
this module receives typed values. Exit code is 0 on success or when the
operator cancels, 1 on any fatal error.
"""

import asyncio
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
import typer

from stackbak import __version__
from stackbak.backup import (
    RestoreExecutor,
    RestoreResult,
    RestoreSource,
    capture,
    restore_data_then_optional_full,
)
from stackbak.config import BundleKind, StackBakConfig
from stackbak.env import create_config_from_env
from stackbak.errors import explain_relative_program_path, explain_unknown_mode
from stackbak.exceptions import ScheduleError, StackBakError
from stackbak.resolver import check_prerequisites
from stackbak.runtime import ContainerRuntime
from stackbak.schedule import delete_schedule, read_schedule, write_schedule
from stackbak.status import collect_status

logger = structlog.get_logger()

app = typer.Typer(
    add_completion=False,
    help="Backup and restore for the compose stack (MySQL, Redis, Caddy).",
)

EXIT_OK = 0
EXIT_FATAL = 1

DEFAULT_FULL_TIME = "03:00"
DEFAULT_DATA_INTERVAL = "60"


class Action(str, Enum):
    """Everything the interactive menu can do."""

    FULL_BACKUP = "full_backup"
    FULL_RESTORE = "full_restore"
    DATA_BACKUP = "data_backup"
    GUIDED_RESTORE = "guided_restore"
    STATUS = "status"
    CONFIGURE_SCHEDULE = "configure_schedule"
    SHOW_SCHEDULE = "show_schedule"
    DELETE_SCHEDULE = "delete_schedule"
    LOCAL_RESTORE = "local_restore"
    EXIT = "exit"


class Mode(str, Enum):
    """Non-interactive modes accepted as the single argument."""

    FULL_BACKUP = "full-backup"
    DATA_BACKUP = "data-backup"


MODE_KINDS = {
    Mode.FULL_BACKUP: BundleKind.FULL,
    Mode.DATA_BACKUP: BundleKind.DATA,
}

MENU: List[Tuple[str, Action, str]] = [
    ("1", Action.FULL_BACKUP, "Full backup (site files + database)"),
    ("2", Action.FULL_RESTORE, "Full restore from site bundle"),
    ("3", Action.DATA_BACKUP, "Data backup (database only)"),
    ("4", Action.GUIDED_RESTORE, "Restore (data bundle first, full bundle optional)"),
    ("5", Action.STATUS, "Status"),
    ("6", Action.CONFIGURE_SCHEDULE, "Configure schedule"),
    ("7", Action.SHOW_SCHEDULE, "Show schedule"),
    ("8", Action.DELETE_SCHEDULE, "Delete schedule"),
    ("9", Action.LOCAL_RESTORE, "Restore from local snapshot (backup_latest)"),
    ("0", Action.EXIT, "Exit"),
]

_MENU_KEYS: Dict[str, Action] = {key: action for key, action, _ in MENU}

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_menu_choice(raw: str) -> Action | None:
    return _MENU_KEYS.get(raw.strip())


def parse_mode(raw: str) -> Mode:
    """
    Raises:
        StackBakError: If raw is not a known mode
    """
    try:
        return Mode(raw)
    except ValueError:
        raise StackBakError(explain_unknown_mode(raw))


def configure_logging(level_name: str = "info") -> None:
    """Human-readable structlog output on stderr."""
    level = _LOG_LEVELS.get(level_name.lower(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def prompt_text(text: str) -> str:
    """Ask the operator; an empty answer comes back as ''."""
    return typer.prompt(text, default="", show_default=False)


def program_path(argv0: str | None = None) -> str:
    """
    Path cron should invoke to run this program.

    Bare command names are looked up on PATH; `python -m stackbak` maps to
    the installed console script.

    Raises:
        ScheduleError: If no invocable program can be found
    """
    argv0 = argv0 if argv0 is not None else sys.argv[0]
    if os.path.basename(argv0) == "__main__.py":
        found = shutil.which("stackbak")
        if found is None:
            raise ScheduleError(explain_relative_program_path(argv0))
        return found
    if os.sep not in argv0:
        return shutil.which(argv0) or argv0
    return argv0


def make_runtime(config: StackBakConfig) -> ContainerRuntime:
    return ContainerRuntime(config.workdir)


@dataclass
class Session:
    """What every menu action needs."""

    config: StackBakConfig
    runtime: ContainerRuntime
    prompt: Callable[[str], str] = prompt_text


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------


async def do_backup(session: Session, kind: BundleKind) -> None:
    result = await capture(session.config, session.runtime, kind)
    typer.echo(f"Backup complete: {result.archive_path}")
    typer.echo(f"Local snapshot:  {result.staging_dir}")
    for warning in result.warnings:
        typer.echo(f"  warning: {warning}")


def _report_restore(result: RestoreResult) -> None:
    if result.aborted:
        typer.echo("Cancelled.")
        return
    if result.status_output:
        typer.echo(result.status_output.rstrip())
    for warning in result.warnings:
        typer.echo(f"  warning: {warning}")
    typer.echo("Restore complete.")


async def do_full_restore(session: Session) -> None:
    executor = RestoreExecutor(session.config, session.runtime, session.prompt)
    _report_restore(await executor.run(BundleKind.FULL))


async def do_guided_restore(session: Session) -> None:
    executor = RestoreExecutor(session.config, session.runtime, session.prompt)
    result = await restore_data_then_optional_full(session.config, executor, session.prompt)
    _report_restore(result)


async def do_local_restore(session: Session) -> None:
    executor = RestoreExecutor(session.config, session.runtime, session.prompt)
    _report_restore(await executor.run(BundleKind.FULL, RestoreSource.LOCAL))


async def do_status(session: Session) -> None:
    typer.echo(await collect_status(session.config, session.runtime))


async def do_configure_schedule(session: Session) -> None:
    full_time = session.prompt(f"Daily full backup time HH:MM [{DEFAULT_FULL_TIME}]")
    interval = session.prompt(f"Data backup every N minutes (1-1440) [{DEFAULT_DATA_INTERVAL}]")
    try:
        path = await write_schedule(
            session.config,
            full_time or DEFAULT_FULL_TIME,
            interval or DEFAULT_DATA_INTERVAL,
            program_path(),
        )
    except ScheduleError as e:
        # Bad input is not fatal in the menu; nothing was written
        typer.echo(f"Schedule not saved: {e.message}")
        return
    typer.echo(f"Schedule written: {path}")
    await do_show_schedule(session)


async def do_show_schedule(session: Session) -> None:
    content = await read_schedule(session.config)
    if content is None:
        typer.echo(f"No schedule ({session.config.schedule_path} does not exist).")
    else:
        typer.echo(content.rstrip())


async def do_delete_schedule(session: Session) -> None:
    if delete_schedule(session.config):
        typer.echo(f"Schedule deleted: {session.config.schedule_path}")
    else:
        typer.echo("No schedule to delete.")


HANDLERS: Dict[Action, Callable[[Session], Awaitable[None]]] = {
    Action.FULL_BACKUP: lambda s: do_backup(s, BundleKind.FULL),
    Action.FULL_RESTORE: do_full_restore,
    Action.DATA_BACKUP: lambda s: do_backup(s, BundleKind.DATA),
    Action.GUIDED_RESTORE: do_guided_restore,
    Action.STATUS: do_status,
    Action.CONFIGURE_SCHEDULE: do_configure_schedule,
    Action.SHOW_SCHEDULE: do_show_schedule,
    Action.DELETE_SCHEDULE: do_delete_schedule,
    Action.LOCAL_RESTORE: do_local_restore,
}


def print_header(config: StackBakConfig) -> None:
    typer.echo("=" * 50)
    typer.echo(f" stackbak {__version__}")
    typer.echo(f" Working directory: {config.workdir}")
    typer.echo(f" Local snapshot:    {config.staging_dir(BundleKind.FULL)}")
    typer.echo(f" Site bundle:       {config.archive_path(BundleKind.FULL)}")
    typer.echo(f" Data bundle:       {config.archive_path(BundleKind.DATA)}")
    typer.echo("=" * 50)
    for key, _, label in MENU:
        typer.echo(f"{key}) {label}")


async def run_menu(session: Session) -> None:
    """Loop until the operator picks Exit. Fatal errors propagate."""
    while True:
        print_header(session.config)
        raw = session.prompt("Choose")
        action = parse_menu_choice(raw)
        if action is None:
            typer.echo(f"Invalid choice: {raw}")
            continue
        if action == Action.EXIT:
            typer.echo("Bye.")
            return
        await HANDLERS[action](session)


async def run_mode(session: Session, mode: Mode) -> None:
    await do_backup(session, MODE_KINDS[mode])


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


@app.command()
def main_command(
    mode: Optional[str] = typer.Argument(
        None, help="full-backup or data-backup; omit for the interactive menu"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    configure_logging("debug" if verbose else os.getenv("STACKBAK_LOG_LEVEL", "info"))

    try:
        parsed_mode = parse_mode(mode) if mode is not None else None
        check_prerequisites()
        config = create_config_from_env()
        session = Session(config=config, runtime=make_runtime(config))

        if parsed_mode is None:
            asyncio.run(run_menu(session))
        else:
            logger.info("noninteractive_run", mode=parsed_mode.value, workdir=str(config.workdir))
            asyncio.run(run_mode(session, parsed_mode))
    except StackBakError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    except OSError as e:
        logger.error("unexpected_os_error", error=str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    except typer.Abort:
        # Ctrl-D / Ctrl-C at a prompt
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(code=EXIT_OK)

    raise typer.Exit(code=EXIT_OK)


def main() -> None:
    app()
