# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Hot and cold capture against a fake container runtime.

These tests verify:
1. Hot bundles contain the dump and, for full bundles, exactly the site files
2. A stopped database fails the backup before anything is written
3. The cache is optional
4. Cold capture stops the stack first and always brings it back up
"""

import gzip
import tarfile
from datetime import datetime

import pytest

from stackbak.backup import capture, capture_cold, capture_hot, strategy_for
from stackbak.bundle import read_manifest, unpack
from stackbak.config import BundleKind, BundleType, SnapshotStrategy, StackBakConfig
from stackbak.exceptions import (
    CollaboratorError,
    ConfigurationError,
    MissingConfigFileError,
    ServiceNotRunningError,
)
from stackbak.steps import StepPolicy, run_step
from stackbak.runtime import CommandResult

from conftest import DUMP_SQL, SITE_FILE_CONTENTS, FakeRuntime


# ============================================================================
# Step policy
# ============================================================================

async def _failing() -> CommandResult:
    return CommandResult(argv=["docker", "compose", "down"], returncode=1, stderr="daemon down\n")


@pytest.mark.asyncio
async def test_mandatory_step_failure_raises_with_stderr():
    with pytest.raises(CollaboratorError) as exc_info:
        await run_step("stack_down", _failing, StepPolicy.MANDATORY)
    assert exc_info.value.message == "stack_down failed: daemon down"


@pytest.mark.asyncio
async def test_best_effort_step_failure_becomes_warning():
    warnings = []
    result = await run_step("stack_down", _failing, StepPolicy.BEST_EFFORT, warnings)
    assert result.returncode == 1
    assert warnings == ["stack_down: daemon down"]


# ============================================================================
# Hot capture
# ============================================================================

@pytest.mark.asyncio
async def test_hot_full_backup_end_to_end(test_config: StackBakConfig):
    """Full bundle: type full_online, five dumped rows, exactly three site files."""
    runtime = FakeRuntime(running=("mysql", "caddy", "app"))
    when = datetime(2026, 10, 17, 3, 0, 0)

    result = await capture_hot(test_config, runtime, BundleKind.FULL, now=when)

    assert result.bundle_type == BundleType.FULL_ONLINE
    assert result.archive_path == test_config.archive_path(BundleKind.FULL)
    assert result.archive_path.is_file()
    assert any("redis" in w for w in result.warnings)
    assert "bgsave" not in runtime.ops()

    extracted = await unpack(result.archive_path, "backup_latest", temp_parent=test_config.workdir)
    manifest = await read_manifest(extracted)
    assert manifest.type == BundleType.FULL_ONLINE
    assert manifest.backup_time == "2026-10-17_030000"
    assert manifest.workdir == str(test_config.workdir)

    dump = gzip.decompress((extracted / "db" / "relayx.sql.gz").read_bytes())
    assert dump == DUMP_SQL
    assert sum(1 for line in dump.decode().splitlines() if line.startswith("INSERT")) == 5

    site_files = sorted(p.name for p in (extracted / "site_files").iterdir())
    assert site_files == sorted(SITE_FILE_CONTENTS)
    for name, content in SITE_FILE_CONTENTS.items():
        assert (extracted / "site_files" / name).read_text() == content


@pytest.mark.asyncio
async def test_hot_data_backup_has_no_site_files(test_config: StackBakConfig, fake_runtime):
    result = await capture_hot(test_config, fake_runtime, BundleKind.DATA)

    assert result.bundle_type == BundleType.DATA_ONLINE
    assert result.warnings == []
    assert fake_runtime.ops() == ["running_services", "bgsave", "dump"]

    with tarfile.open(result.archive_path) as tar:
        names = tar.getnames()
    assert "data_backup_latest/db/relayx.sql.gz" in names
    assert "data_backup_latest/meta/manifest.txt" in names
    assert not any("site_files" in name for name in names)


@pytest.mark.asyncio
async def test_hot_backup_requires_running_database(test_config: StackBakConfig):
    runtime = FakeRuntime(running=("redis",))

    with pytest.raises(ServiceNotRunningError):
        await capture_hot(test_config, runtime, BundleKind.DATA)

    assert "dump" not in runtime.ops()
    assert not test_config.staging_dir(BundleKind.DATA).exists()
    assert not test_config.archive_path(BundleKind.DATA).exists()


@pytest.mark.asyncio
async def test_hot_backup_checks_site_files_first(test_config: StackBakConfig, fake_runtime):
    (test_config.workdir / ".env").unlink()
    (test_config.workdir / "Caddyfile").unlink()

    with pytest.raises(MissingConfigFileError) as exc_info:
        await capture_hot(test_config, fake_runtime, BundleKind.FULL)

    assert exc_info.value.missing == [".env", "Caddyfile"]
    assert fake_runtime.calls == []


@pytest.mark.asyncio
async def test_cache_save_failure_is_a_warning(test_config: StackBakConfig, fake_runtime):
    fake_runtime.failures["bgsave"] = (1, "NOAUTH Authentication required.")

    result = await capture_hot(test_config, fake_runtime, BundleKind.DATA)

    assert result.archive_path.is_file()
    assert result.warnings == ["cache_bgsave: NOAUTH Authentication required."]


@pytest.mark.asyncio
async def test_dump_failure_is_fatal(test_config: StackBakConfig, fake_runtime):
    fake_runtime.failures["dump"] = (2, "mysqldump: Got error: 1045: Access denied")

    with pytest.raises(CollaboratorError) as exc_info:
        await capture_hot(test_config, fake_runtime, BundleKind.DATA)

    assert "Access denied" in exc_info.value.message
    assert not test_config.archive_path(BundleKind.DATA).exists()
    assert not (test_config.staging_dir(BundleKind.DATA) / "db" / "relayx.sql.gz").exists()


@pytest.mark.asyncio
async def test_new_backup_replaces_previous_bundle(test_config: StackBakConfig, fake_runtime):
    first = await capture_hot(test_config, fake_runtime, BundleKind.DATA)
    (first.staging_dir / "db" / "leftover.txt").write_text("old")

    fake_runtime.dump_output = b"-- second dump\n"
    second = await capture_hot(test_config, fake_runtime, BundleKind.DATA)

    assert second.archive_path == first.archive_path
    assert not (second.staging_dir / "db" / "leftover.txt").exists()
    dump = gzip.decompress((second.staging_dir / "db" / "relayx.sql.gz").read_bytes())
    assert dump == b"-- second dump\n"


# ============================================================================
# Cold capture
# ============================================================================

@pytest.mark.asyncio
async def test_cold_backup_stops_captures_and_restarts(test_config: StackBakConfig, fake_runtime):
    result = await capture_cold(test_config, fake_runtime)

    ops = fake_runtime.ops()
    assert ops[0] == "compose_down"
    assert ops[-1] == "compose_up"
    assert ops.count("volume_capture") == len(test_config.volumes)
    assert ("compose_up", None) in fake_runtime.calls

    assert result.bundle_type == BundleType.FULL_OFFLINE
    assert result.manifest.extra["mysql_volume"] == "relayx-mysql"

    with tarfile.open(result.archive_path) as tar:
        names = set(tar.getnames())
    for capture_name in test_config.volumes:
        assert f"backup_latest/volumes/{capture_name}.tar.gz" in names
    assert "backup_latest/site_files/Caddyfile" in names


@pytest.mark.asyncio
async def test_cold_backup_restarts_stack_after_failure(test_config: StackBakConfig, fake_runtime):
    fake_runtime.failures["volume_capture"] = (1, "no space left on device")

    with pytest.raises(CollaboratorError):
        await capture_cold(test_config, fake_runtime)

    assert fake_runtime.ops()[-1] == "compose_up"
    assert not test_config.archive_path(BundleKind.FULL).exists()


@pytest.mark.asyncio
async def test_cold_backup_continues_when_stop_fails(test_config: StackBakConfig, fake_runtime):
    fake_runtime.failures["compose_down"] = (1, "already stopped")

    result = await capture_cold(test_config, fake_runtime)

    assert result.warnings == ["stack_down: already stopped"]
    assert result.archive_path.is_file()


@pytest.mark.asyncio
async def test_cold_data_backup_is_rejected(test_config: StackBakConfig, fake_runtime):
    with pytest.raises(ConfigurationError):
        await capture_cold(test_config, fake_runtime, BundleKind.DATA)
    assert fake_runtime.calls == []


# ============================================================================
# Strategy selection
# ============================================================================

def test_strategy_for(test_config: StackBakConfig):
    cold = test_config.with_updates(full_strategy=SnapshotStrategy.COLD)
    assert strategy_for(test_config, BundleKind.FULL) == SnapshotStrategy.HOT
    assert strategy_for(cold, BundleKind.FULL) == SnapshotStrategy.COLD
    assert strategy_for(cold, BundleKind.DATA) == SnapshotStrategy.HOT


@pytest.mark.asyncio
async def test_capture_dispatches_on_configured_strategy(test_config: StackBakConfig, fake_runtime):
    cold = test_config.with_updates(full_strategy=SnapshotStrategy.COLD)

    result = await capture(cold, fake_runtime, BundleKind.FULL)

    assert result.bundle_type == BundleType.FULL_OFFLINE
    assert "dump" not in fake_runtime.ops()
