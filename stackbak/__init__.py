# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak - Backup and restore for a compose-managed web stack.

Snapshots the database, cache state and site configuration into
overwriting "latest" bundles, restores them on demand, and manages the
cron entry that runs backups unattended. Package name: stackbak.
"""

__version__ = "0.1.0"

# Configuration
from stackbak.config import BundleKind, SnapshotStrategy, StackBakConfig
from stackbak.env import create_config_from_env

# Backup and restore
from stackbak.backup import (
    RestoreExecutor,
    capture,
    restore_data_then_optional_full,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BundleKind",
    "SnapshotStrategy",
    "StackBakConfig",
    "create_config_from_env",
    # Operations
    "capture",
    "RestoreExecutor",
    "restore_data_then_optional_full",
]
