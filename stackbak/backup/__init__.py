# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Snapshot producers and the restore executor.
"""

from stackbak.backup.capture import capture, strategy_for
from stackbak.backup.cold import capture_cold
from stackbak.backup.hot import capture_hot
from stackbak.backup.models import (
    CaptureResult,
    RestoreResult,
    RestoreSource,
    RestoreState,
)
from stackbak.backup.restore import (
    RestoreExecutor,
    is_confirmed,
    restore_data_then_optional_full,
)

__all__ = [
    # Capture
    "capture",
    "capture_cold",
    "capture_hot",
    "strategy_for",
    "CaptureResult",
    # Restore
    "RestoreExecutor",
    "RestoreResult",
    "RestoreSource",
    "RestoreState",
    "is_confirmed",
    "restore_data_then_optional_full",
]
