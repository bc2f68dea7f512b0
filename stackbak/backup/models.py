# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Result and state types for backup and restore operations.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from stackbak.bundle.manifest import Manifest
from stackbak.config import BundleKind, BundleType


@dataclass
class CaptureResult:
    """Result of a backup."""

    kind: BundleKind
    bundle_type: BundleType
    archive_path: Path
    staging_dir: Path
    manifest: Manifest
    warnings: List[str] = field(default_factory=list)


class RestoreState(str, Enum):
    """States of the restore sequence, in order."""

    IDLE = "idle"
    CONFIRM = "confirm"
    STOPPED = "stopped"
    UNPACKED = "unpacked"
    FILES_RESTORED = "files_restored"
    VOLUMES_RESTORED = "volumes_restored"
    DATABASE_STARTING = "database_starting"
    DATABASE_READY = "database_ready"
    DATABASE_IMPORTED = "database_imported"
    RESTARTED = "restarted"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


class RestoreSource(str, Enum):
    """Where the bundle being restored comes from."""

    ARCHIVE = "archive"  # the kind's .tar.gz, extracted to a temp dir
    LOCAL = "local"  # the kind's staging directory, used in place


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    kind: BundleKind
    source: RestoreSource
    state: RestoreState
    bundle_path: Path | None = None
    states: List[RestoreState] = field(default_factory=list)
    extracted_dir: Path | None = None
    restored_files: List[str] = field(default_factory=list)
    restored_volumes: List[str] = field(default_factory=list)
    database_imported: bool = False
    warnings: List[str] = field(default_factory=list)
    status_output: str = ""
    duration_seconds: float = 0.0

    @property
    def aborted(self) -> bool:
        return self.state == RestoreState.ABORTED
