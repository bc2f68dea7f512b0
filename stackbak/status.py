# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Status report: services, volumes, and the latest bundles on disk.
"""

from datetime import datetime
from pathlib import Path
from typing import List

from stackbak.bundle.manifest import read_manifest
from stackbak.config import BundleKind, StackBakConfig
from stackbak.exceptions import StackBakError
from stackbak.runtime import ContainerRuntime


def _human_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _tree_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def describe_path(path: Path) -> str:
    """One line: path, size and modification time, or (missing)."""
    if not path.exists():
        return f"  {path}  (missing)"
    size = _tree_size(path) if path.is_dir() else path.stat().st_size
    mtime = datetime.fromtimestamp(path.stat().st_mtime).strftime("%Y-%m-%d %H:%M:%S")
    return f"  {path}  {_human_size(size)}  {mtime}"


async def describe_manifest(staging_dir: Path) -> str:
    """One indented line summarising a staging directory's manifest."""
    try:
        manifest = await read_manifest(staging_dir)
    except StackBakError as e:
        return f"    (manifest unreadable: {e.message})"
    return f"    type={manifest.type.value}  backup_time={manifest.backup_time}"


async def collect_status(config: StackBakConfig, runtime: ContainerRuntime) -> str:
    """
    Build the status report shown by the menu.

    Non-zero exits from docker are shown inline instead of raising.
    """
    lines: List[str] = []

    lines.append("Services:")
    ps = await runtime.compose_ps()
    lines.append(ps.stdout.rstrip() if ps.ok else f"  (unavailable: {ps.diagnostic})")

    lines.append("")
    lines.append("Volumes:")
    volumes = await runtime.list_volumes()
    if volumes.ok:
        present = set(volumes.stdout.split())
        for name in config.volumes.values():
            lines.append(f"  {name}  {'present' if name in present else '(missing)'}")
    else:
        lines.append(f"  (unavailable: {volumes.diagnostic})")

    lines.append("")
    lines.append("Local snapshots:")
    for kind in BundleKind:
        staging_dir = config.staging_dir(kind)
        lines.append(describe_path(staging_dir))
        if staging_dir.is_dir():
            lines.append(await describe_manifest(staging_dir))

    lines.append("")
    lines.append("Archives:")
    for kind in BundleKind:
        lines.append(describe_path(config.archive_path(kind)))

    return "\n".join(lines) + "\n"
