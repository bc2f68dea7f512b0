# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for stackbak.

These helpers centralize wording for common operator errors so that
all modules present consistent, actionable messages.
"""

from pathlib import Path
from typing import Iterable


def explain_workdir_not_found(start: Path, default: Path) -> str:
    """
    Explain that no working directory could be located.
    """

    return (
        f"Could not find compose.yaml in {start} or any parent directory, "
        f"and the default path {default} does not contain one either. "
        "Run stackbak from the stack directory or set STACKBAK_WORKDIR."
    )


def explain_workdir_override_invalid(value: str) -> str:
    """
    Explain that STACKBAK_WORKDIR points at something that is not a directory.
    """

    return (
        f"STACKBAK_WORKDIR is set to {value!r}, which is not a directory. "
        "Fix or unset it."
    )


def explain_missing_site_files(workdir: Path, missing: Iterable[str]) -> str:
    """
    Explain which site files are missing from the working directory.
    """

    listed = ", ".join(str(workdir / name) for name in missing)
    return (
        f"Missing site files: {listed}. "
        "compose.yaml, .env and Caddyfile must all be in the working directory."
    )


def explain_missing_command(command: str) -> str:
    """
    Explain that a required external command is not installed.
    """

    return f"Missing command: {command}. Install it and make sure it is on PATH."


def explain_missing_bundle(path: Path) -> str:
    """
    Explain that a restore was requested but the bundle is absent.
    """

    return (
        f"Bundle not found: {path}. "
        "Copy the bundle into place or run a backup first."
    )


def explain_unknown_mode(mode: str) -> str:
    """
    Explain that the non-interactive mode argument is not recognized.
    """

    return (
        f"Unknown mode: {mode!r}. "
        "Expected 'full-backup' or 'data-backup', or no argument for the menu."
    )


def explain_invalid_time(value: str) -> str:
    """
    Explain that a time-of-day is not in strict HH:MM form.
    """

    return f"Invalid time {value!r}: expected HH:MM between 00:00 and 23:59."


def explain_invalid_interval(value: str) -> str:
    """
    Explain that the data-backup interval is out of range.
    """

    return (
        f"Invalid interval {value!r}: expected a whole number of minutes "
        "between 1 and 1440."
    )


def explain_relative_program_path(path: str) -> str:
    """
    Explain that scheduled entries need an absolute program path.
    """

    return (
        f"Program path {path!r} is not absolute. "
        "Scheduled jobs run from a different directory; invoke stackbak by its full path."
    )


def explain_invalid_strategy_env(value: str | None) -> str:
    """
    Explain that STACKBAK_FULL_STRATEGY is invalid.
    """

    return (
        f"Invalid STACKBAK_FULL_STRATEGY value: {value!r}. "
        "Expected 'hot' or 'cold'."
    )
