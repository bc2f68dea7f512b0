# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Pick a snapshot strategy and run it.
"""

from datetime import datetime

from stackbak.backup.cold import capture_cold
from stackbak.backup.hot import capture_hot
from stackbak.backup.models import CaptureResult
from stackbak.config import BundleKind, SnapshotStrategy, StackBakConfig
from stackbak.runtime import ContainerRuntime


def strategy_for(config: StackBakConfig, kind: BundleKind) -> SnapshotStrategy:
    """Full backups follow config.full_strategy; data backups are always hot."""
    if kind == BundleKind.FULL:
        return config.full_strategy
    return SnapshotStrategy.HOT


async def capture(
    config: StackBakConfig,
    runtime: ContainerRuntime,
    kind: BundleKind,
    strategy: SnapshotStrategy | None = None,
    now: datetime | None = None,
) -> CaptureResult:
    """Create the latest bundle of the given kind."""
    strategy = strategy or strategy_for(config, kind)
    if strategy == SnapshotStrategy.COLD:
        return await capture_cold(config, runtime, kind, now=now)
    return await capture_hot(config, runtime, kind, now=now)
