# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation and passed
explicitly into every component; nothing reads process-wide state
after startup.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple
import re


# The declarative stack definition; its presence marks a working directory
STACK_DEFINITION_FILE = "compose.yaml"

DEFAULT_WORKDIR = Path("/opt/relayx")
DEFAULT_SITE_FILES = (STACK_DEFINITION_FILE, ".env", "Caddyfile")


class BundleKind(str, Enum):
    """Kind of bundle: everything, or the database only."""

    FULL = "full"
    DATA = "data"


class BundleType(str, Enum):
    """Bundle type recorded in the manifest."""

    FULL_ONLINE = "full_online"  # hot capture, site files + dump
    DATA_ONLINE = "data_online"  # hot capture, dump only
    FULL_OFFLINE = "full_offline"  # cold capture, site files + raw volumes


class SnapshotStrategy(str, Enum):
    """How a full backup captures state."""

    HOT = "hot"  # services stay up, native dump
    COLD = "cold"  # stack stopped, raw volume copy


def _default_volumes() -> Dict[str, str]:
    return {
        "mysql": "relayx-mysql",
        "redis": "relayx-redis",
        "caddy_data": "relayx-caddy-data",
        "caddy_config": "relayx-caddy-config",
    }


_SERVICE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class StackBakConfig:
    """
    Immutable configuration for backup and restore runs.

    Built once at startup from defaults plus environment overrides
    (see stackbak.env.create_config_from_env).
    """

    # Directory holding compose.yaml, .env and Caddyfile
    workdir: Path

    # Where staging directories and archives live (default: workdir)
    backup_dir: Path | None = None

    # Files that define the running stack
    site_files: Tuple[str, ...] = DEFAULT_SITE_FILES

    # Compose service names
    db_service: str = "mysql"
    cache_service: str = "redis"

    # The single logical database dumped by hot backups
    db_name: str = "relayx"

    # Capture name -> docker volume name, used by cold backups
    volumes: Dict[str, str] = field(default_factory=_default_volumes)

    # Image for transient helper containers
    helper_image: str = "alpine"

    # Strategy used by the full backup action
    full_strategy: SnapshotStrategy = SnapshotStrategy.HOT

    # Schedule file and the logs its entries append to
    schedule_path: Path = field(default_factory=lambda: Path("/etc/cron.d/stackbak"))
    full_log_path: Path = field(
        default_factory=lambda: Path("/var/log/stackbak-full-backup.log")
    )
    data_log_path: Path = field(
        default_factory=lambda: Path("/var/log/stackbak-data-backup.log")
    )

    # Database readiness probe budget during restore
    ready_attempts: int = 30
    ready_delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.site_files:
            errors.append("site_files must not be empty")

        for name, value in (
            ("db_service", self.db_service),
            ("cache_service", self.cache_service),
            ("db_name", self.db_name),
        ):
            if not value or not _SERVICE_NAME_RE.match(value):
                errors.append(f"Invalid {name}: {value!r}")

        if not self.volumes:
            errors.append("volumes must not be empty")
        for capture_name, volume in self.volumes.items():
            if not capture_name or not volume:
                errors.append(f"Invalid volume mapping: {capture_name!r} -> {volume!r}")

        if self.ready_attempts < 1:
            errors.append(f"ready_attempts must be >= 1, got {self.ready_attempts}")

        if self.ready_delay_seconds < 0:
            errors.append(
                f"ready_delay_seconds must be >= 0, got {self.ready_delay_seconds}"
            )

        # Raise all errors at once
        if errors:
            from stackbak.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def backup_root(self) -> Path:
        return self.backup_dir if self.backup_dir is not None else self.workdir

    @property
    def dump_filename(self) -> str:
        return f"{self.db_name}.sql.gz"

    def staging_dir(self, kind: BundleKind) -> Path:
        """The single "latest" staging directory for a bundle kind."""
        name = "backup_latest" if kind == BundleKind.FULL else "data_backup_latest"
        return self.backup_root / name

    def archive_path(self, kind: BundleKind) -> Path:
        """The single "latest" archive for a bundle kind."""
        name = (
            "site_backup_latest.tar.gz"
            if kind == BundleKind.FULL
            else "data_backup_latest.tar.gz"
        )
        return self.backup_root / name

    def with_updates(self, **kwargs) -> "StackBakConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return StackBakConfig(**current)
