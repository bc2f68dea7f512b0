# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Bundle Store - Staging layout, manifest, packing and dump compression.
"""

from stackbak.bundle.codec import GzipFileSink, check_gzip, iter_gunzip
from stackbak.bundle.manifest import (
    MANIFEST_RELPATH,
    Manifest,
    read_manifest,
    write_manifest,
)
from stackbak.bundle.store import (
    DB_DIR,
    META_DIR,
    SITE_FILES_DIR,
    VOLUMES_DIR,
    copy_site_files,
    pack,
    restore_site_files,
    stage,
    unpack,
)

__all__ = [
    # Codec
    "GzipFileSink",
    "check_gzip",
    "iter_gunzip",
    # Manifest
    "MANIFEST_RELPATH",
    "Manifest",
    "read_manifest",
    "write_manifest",
    # Store
    "DB_DIR",
    "META_DIR",
    "SITE_FILES_DIR",
    "VOLUMES_DIR",
    "copy_site_files",
    "pack",
    "restore_site_files",
    "stage",
    "unpack",
]
