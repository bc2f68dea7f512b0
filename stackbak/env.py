# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration.

Builds the one StackBakConfig used for a run from built-in defaults,
a small set of well-known environment variables, and the resolved
working directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from stackbak.config import DEFAULT_WORKDIR, SnapshotStrategy, StackBakConfig
from stackbak.errors import explain_invalid_strategy_env
from stackbak.exceptions import ConfigurationError
from stackbak.resolver import resolve_workdir


def _parse_strategy(value: str | None) -> SnapshotStrategy:
    if not value:
        return SnapshotStrategy.HOT
    try:
        return SnapshotStrategy(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_strategy_env(value)) from exc


def _optional_path(value: str | None) -> Path | None:
    return Path(value) if value else None


def create_config_from_env(
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> StackBakConfig:
    """
    Create a StackBakConfig from environment variables.

    Optional environment variables:
        - STACKBAK_WORKDIR: Working directory override
        - STACKBAK_DB_CONTAINER: Database service name (default: mysql)
        - STACKBAK_CACHE_CONTAINER: Cache service name (default: redis)
        - STACKBAK_DB_NAME: Database dumped by hot backups (default: relayx)
        - STACKBAK_FULL_STRATEGY: 'hot' | 'cold' (default: hot)
        - STACKBAK_HELPER_IMAGE: Image for volume helpers (default: alpine)
        - STACKBAK_BACKUP_DIR: Where bundles live (default: working directory)
        - STACKBAK_SCHEDULE_FILE: Schedule file (default: /etc/cron.d/stackbak)

    Args:
        environ: Environment mapping (default: os.environ)
        cwd: Start directory for working directory discovery (default: cwd)
    """
    env = os.environ if environ is None else environ
    start = cwd if cwd is not None else Path.cwd()

    workdir = resolve_workdir(start, env, DEFAULT_WORKDIR)

    overrides: dict = {
        "workdir": workdir,
        "backup_dir": _optional_path(env.get("STACKBAK_BACKUP_DIR")),
        "full_strategy": _parse_strategy(env.get("STACKBAK_FULL_STRATEGY")),
    }

    for key, env_name in (
        ("db_service", "STACKBAK_DB_CONTAINER"),
        ("cache_service", "STACKBAK_CACHE_CONTAINER"),
        ("db_name", "STACKBAK_DB_NAME"),
        ("helper_image", "STACKBAK_HELPER_IMAGE"),
    ):
        value = env.get(env_name)
        if value:
            overrides[key] = value

    schedule_file = env.get("STACKBAK_SCHEDULE_FILE")
    if schedule_file:
        overrides["schedule_path"] = Path(schedule_file)

    return StackBakConfig(**overrides)
