# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Manifest - Plain key=value metadata stored in meta/manifest.txt.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict

import aiofiles
import structlog

from stackbak.config import BundleType
from stackbak.exceptions import CollaboratorError, CorruptBundleError

logger = structlog.get_logger()

MANIFEST_RELPATH = Path("meta") / "manifest.txt"

# Seconds resolution, e.g. 2026-10-17_203915
BACKUP_TIME_FORMAT = "%Y-%m-%d_%H%M%S"

REQUIRED_KEYS = ("backup_time", "type", "workdir")


@dataclass
class Manifest:
    """Bundle metadata."""

    backup_time: str
    type: BundleType
    workdir: str
    bundle: str | None = None
    extra: Dict[str, str] = field(default_factory=dict)

    def render(self) -> str:
        lines = [
            f"backup_time={self.backup_time}",
            f"type={self.type.value}",
            f"workdir={self.workdir}",
        ]
        if self.bundle:
            lines.append(f"bundle={self.bundle}")
        lines.extend(f"{key}={value}" for key, value in self.extra.items())
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, text: str) -> "Manifest":
        """
        Parse manifest text.

        Blank lines and lines without '=' are ignored; unknown keys are
        kept in extra.

        Raises:
            CorruptBundleError: If a required key is missing or type is unknown
        """
        values: Dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition("=")
            if sep and key.strip():
                values[key.strip()] = value.strip()

        missing = [key for key in REQUIRED_KEYS if key not in values]
        if missing:
            raise CorruptBundleError(
                "Manifest is missing required keys",
                details={"missing": missing},
            )

        try:
            bundle_type = BundleType(values.pop("type"))
        except ValueError as exc:
            raise CorruptBundleError(
                "Manifest has an unknown bundle type",
                details={"type": str(exc)},
            ) from exc

        return cls(
            backup_time=values.pop("backup_time"),
            type=bundle_type,
            workdir=values.pop("workdir"),
            bundle=values.pop("bundle", None),
            extra=values,
        )


async def write_manifest(
    staging_dir: Path,
    bundle_type: BundleType,
    workdir: Path,
    bundle: str | None = None,
    extra: Dict[str, str] | None = None,
    now: datetime | None = None,
) -> Manifest:
    """
    Write meta/manifest.txt into a staging directory.

    Args:
        staging_dir: Staging directory (must already contain meta/)
        bundle_type: Type recorded as type=
        workdir: Source working directory
        bundle: Archive filename, if known
        extra: Additional key=value pairs
        now: Capture time (default: local now)

    Returns:
        The written Manifest

    Raises:
        CollaboratorError: If the manifest cannot be written
    """
    captured_at = now or datetime.now()
    manifest = Manifest(
        backup_time=captured_at.strftime(BACKUP_TIME_FORMAT),
        type=bundle_type,
        workdir=str(workdir),
        bundle=bundle,
        extra=dict(extra or {}),
    )

    path = staging_dir / MANIFEST_RELPATH
    try:
        async with aiofiles.open(path, "w") as f:
            await f.write(manifest.render())
    except OSError as e:
        raise CollaboratorError(
            f"Failed to write manifest {path}: {e}",
            details={"path": str(path)},
        )

    logger.debug("manifest_written", path=str(path), type=bundle_type.value)
    return manifest


async def read_manifest(staging_dir: Path) -> Manifest:
    """
    Read meta/manifest.txt from a staging directory.

    Raises:
        CorruptBundleError: If the manifest is absent or malformed
        CollaboratorError: If the manifest exists but cannot be read
    """
    path = staging_dir / MANIFEST_RELPATH
    try:
        async with aiofiles.open(path, "r") as f:
            text = await f.read()
    except FileNotFoundError:
        raise CorruptBundleError(
            f"Manifest not found: {path}",
            details={"path": str(path)},
        )
    except OSError as e:
        raise CollaboratorError(
            f"Failed to read manifest {path}: {e}",
            details={"path": str(path)},
        )
    return Manifest.parse(text)
