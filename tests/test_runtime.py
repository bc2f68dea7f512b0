# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
ContainerRuntime.run against real local processes, and the dump/import
paths driven through it.
"""

import gzip
from pathlib import Path
from typing import AsyncIterator, Sequence

import pytest

from stackbak.backup.database import dump_database, import_database
from stackbak.config import StackBakConfig
from stackbak.exceptions import CollaboratorError, CorruptBundleError
from stackbak.runtime import CommandResult, ContainerRuntime

from conftest import DUMP_SQL


class ShellRuntime(ContainerRuntime):
    """Runs every in-service command as one local shell script."""

    def __init__(self, workdir: Path, script: str):
        super().__init__(workdir)
        self.script = script

    async def exec_in_service(
        self,
        service: str,
        command: Sequence[str],
        *,
        stdin_chunks=None,
        stdout_sink=None,
    ) -> CommandResult:
        return await self.run(
            ["sh", "-c", self.script],
            stdin_chunks=stdin_chunks,
            stdout_sink=stdout_sink,
        )


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


async def _broken_source() -> AsyncIterator[bytes]:
    yield b"DROP TABLE IF EXISTS `users`;\n"
    raise CorruptBundleError("Dump is truncated")


# ============================================================================
# run()
# ============================================================================

@pytest.mark.asyncio
async def test_run_collects_stdout_and_stderr(temp_dir: Path):
    runtime = ContainerRuntime(temp_dir)

    result = await runtime.run(["sh", "-c", "echo out; echo err >&2; exit 3"])

    assert result.returncode == 3
    assert not result.ok
    assert result.stdout == "out\n"
    assert result.diagnostic == "err"


@pytest.mark.asyncio
async def test_run_streams_stdin_and_stdout(temp_dir: Path):
    runtime = ContainerRuntime(temp_dir)
    received = []

    async def sink(chunk: bytes) -> None:
        received.append(chunk)

    result = await runtime.run(
        ["cat"],
        stdin_chunks=_chunks(b"first;\n", b"second;\n"),
        stdout_sink=sink,
    )

    assert result.ok
    assert result.stdout == ""
    assert b"".join(received) == b"first;\nsecond;\n"


@pytest.mark.asyncio
async def test_missing_executable_is_a_collaborator_error(temp_dir: Path):
    runtime = ContainerRuntime(temp_dir)

    with pytest.raises(CollaboratorError) as exc_info:
        await runtime.run(["stackbak-no-such-command"])
    assert "stackbak-no-such-command" in exc_info.value.message


@pytest.mark.asyncio
async def test_failing_stdin_source_kills_the_child(temp_dir: Path):
    """The child never gets to act on a clean end of input."""
    runtime = ContainerRuntime(temp_dir)

    with pytest.raises(CorruptBundleError):
        await runtime.run(
            ["sh", "-c", "cat > received.sql; touch finished"],
            stdin_chunks=_broken_source(),
        )

    assert not (temp_dir / "finished").exists()


@pytest.mark.asyncio
async def test_failing_stdout_sink_kills_the_child(temp_dir: Path):
    runtime = ContainerRuntime(temp_dir)

    async def sink(chunk: bytes) -> None:
        raise CollaboratorError("disk full")

    with pytest.raises(CollaboratorError) as exc_info:
        await runtime.run(
            ["sh", "-c", "echo first; sleep 5 >/dev/null 2>&1; touch finished"],
            stdout_sink=sink,
        )

    assert exc_info.value.message == "disk full"
    assert not (temp_dir / "finished").exists()


# ============================================================================
# Dump and import through a real process
# ============================================================================

@pytest.mark.asyncio
async def test_import_streams_whole_dump(test_config: StackBakConfig, temp_dir: Path):
    dump_path = temp_dir / "relayx.sql.gz"
    dump_path.write_bytes(gzip.compress(DUMP_SQL))
    runtime = ShellRuntime(temp_dir, "cat > imported.sql")

    await import_database(test_config, runtime, dump_path)

    assert (temp_dir / "imported.sql").read_bytes() == DUMP_SQL


@pytest.mark.asyncio
async def test_truncated_dump_never_reaches_the_database(
    test_config: StackBakConfig, temp_dir: Path
):
    compressed = gzip.compress(DUMP_SQL * 2000)
    dump_path = temp_dir / "relayx.sql.gz"
    dump_path.write_bytes(compressed[: len(compressed) // 2])
    runtime = ShellRuntime(temp_dir, "cat > imported.sql")

    with pytest.raises(CorruptBundleError) as exc_info:
        await import_database(test_config, runtime, dump_path)

    assert "truncated" in exc_info.value.message
    assert not (temp_dir / "imported.sql").exists()


@pytest.mark.asyncio
async def test_dump_written_from_process_output(test_config: StackBakConfig, temp_dir: Path):
    dest = temp_dir / "relayx.sql.gz"
    runtime = ShellRuntime(temp_dir, "echo 'CREATE TABLE t (id int);'")

    size = await dump_database(test_config, runtime, dest)

    assert size == 25
    assert gzip.decompress(dest.read_bytes()) == b"CREATE TABLE t (id int);\n"


@pytest.mark.asyncio
async def test_failed_dump_leaves_no_partial_file(test_config: StackBakConfig, temp_dir: Path):
    dest = temp_dir / "relayx.sql.gz"
    runtime = ShellRuntime(temp_dir, "echo 'CREATE TABLE t (id int);'; echo 'lost connection' >&2; exit 2")

    with pytest.raises(CollaboratorError) as exc_info:
        await dump_database(test_config, runtime, dest)

    assert "lost connection" in exc_info.value.message
    assert not dest.exists()
