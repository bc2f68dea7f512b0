# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for stackbak tests.

Provides a populated working directory, a test configuration, and an
in-memory FakeRuntime standing in for docker.
"""

import re
import tempfile
from pathlib import Path
from typing import AsyncIterable, Dict, Generator, List, Sequence, Set, Tuple

import pytest
import structlog

from stackbak.config import StackBakConfig
from stackbak.runtime import CommandResult


SITE_FILE_CONTENTS = {
    "compose.yaml": "services:\n  mysql:\n    image: mysql:8\n  redis:\n    image: redis:7\n",
    ".env": "MYSQL_ROOT_PASSWORD=secret\n",
    "Caddyfile": "example.com {\n  reverse_proxy app:8080\n}\n",
}

DUMP_ROWS = [f"INSERT INTO `users` VALUES ({i},'user{i}@example.com');" for i in range(1, 6)]

DUMP_SQL = (
    "-- MySQL dump\n"
    "CREATE TABLE `users` (`id` int NOT NULL, `email` varchar(255), PRIMARY KEY (`id`));\n"
    + "\n".join(DUMP_ROWS)
    + "\n"
).encode()


class FakeRuntime:
    """
    Scripted stand-in for ContainerRuntime.

    Records every call in `calls` as a tuple whose first element is the
    operation name. Failures are injected per operation via `failures`.
    """

    def __init__(
        self,
        running: Sequence[str] = ("mysql", "redis", "caddy", "app"),
        dump_output: bytes = DUMP_SQL,
    ):
        self.calls: List[Tuple] = []
        self.running: Set[str] = set(running)
        self.dump_output = dump_output
        self.failures: Dict[str, Tuple[int, str]] = {}
        self.ping_failures = 0
        self.imported = b""
        self.volumes: Set[str] = set()

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _result(self, op: str, argv: List[str] | None = None, stdout: str = "") -> CommandResult:
        argv = argv or [op]
        if op in self.failures:
            code, stderr = self.failures[op]
            return CommandResult(argv=argv, returncode=code, stderr=stderr)
        return CommandResult(argv=argv, returncode=0, stdout=stdout)

    async def compose_down(self) -> CommandResult:
        self.calls.append(("compose_down",))
        return self._result("compose_down")

    async def compose_up(self, service: str | None = None) -> CommandResult:
        self.calls.append(("compose_up", service))
        return self._result("compose_up")

    async def compose_ps(self) -> CommandResult:
        self.calls.append(("compose_ps",))
        return self._result("compose_ps", stdout="NAME  STATUS\nmysql running\n")

    async def running_services(self) -> Set[str]:
        self.calls.append(("running_services",))
        return set(self.running)

    async def exec_in_service(
        self,
        service: str,
        command: Sequence[str],
        *,
        stdin_chunks: AsyncIterable[bytes] | None = None,
        stdout_sink=None,
    ) -> CommandResult:
        script = " ".join(command)
        if "mysqldump" in script:
            op = "dump"
        elif "mysqladmin ping" in script:
            op = "ping"
        elif "BGSAVE" in script:
            op = "bgsave"
        elif "exec mysql " in script:
            op = "import"
        else:
            op = "exec"
        self.calls.append((op, service))

        if op == "ping" and self.ping_failures > 0:
            self.ping_failures -= 1
            return CommandResult(argv=list(command), returncode=1, stderr="connect failed")

        if op == "import" and stdin_chunks is not None:
            async for chunk in stdin_chunks:
                self.imported += chunk

        result = self._result(op, list(command))
        if op == "dump" and result.ok and stdout_sink is not None:
            # Deliver in small pieces to exercise streaming
            for start in range(0, len(self.dump_output), 17):
                await stdout_sink(self.dump_output[start:start + 17])
        return result

    async def run_helper(
        self,
        image: str,
        volume: str,
        host_dir: Path,
        shell_command: str,
        *,
        volume_read_only: bool,
    ) -> CommandResult:
        match = re.search(r"/backup/(\S+?)\.tar\.gz", shell_command)
        name = match.group(1) if match else "unknown"
        op = "volume_capture" if volume_read_only else "volume_restore"
        self.calls.append((op, volume, name))

        result = self._result(op)
        if result.ok and volume_read_only:
            (host_dir / f"{name}.tar.gz").write_bytes(f"contents of {volume}".encode())
        return result

    async def create_volume(self, name: str) -> CommandResult:
        self.calls.append(("volume_create", name))
        self.volumes.add(name)
        return self._result("volume_create")

    async def remove_volume(self, name: str) -> CommandResult:
        self.calls.append(("volume_remove", name))
        self.volumes.discard(name)
        return self._result("volume_remove")

    async def list_volumes(self) -> CommandResult:
        self.calls.append(("volume_list",))
        return self._result("volume_list", stdout="\n".join(sorted(self.volumes)))


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo any structlog configuration a CLI test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workdir(temp_dir: Path) -> Path:
    """A working directory holding compose.yaml, .env and Caddyfile."""
    path = temp_dir / "site"
    path.mkdir()
    write_site_files(path)
    return path


@pytest.fixture
def test_config(workdir: Path, temp_dir: Path) -> StackBakConfig:
    """Configuration pointing every path into the temp directory."""
    cron_dir = temp_dir / "cron.d"
    cron_dir.mkdir()
    return StackBakConfig(
        workdir=workdir,
        schedule_path=cron_dir / "stackbak",
        full_log_path=temp_dir / "full.log",
        data_log_path=temp_dir / "data.log",
        ready_attempts=3,
        ready_delay_seconds=0,
    )


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


def write_site_files(path: Path, names=None) -> None:
    """Write the standard site files (or a subset) into path."""
    for name, content in SITE_FILE_CONTENTS.items():
        if names is None or name in names:
            (path / name).write_text(content)


def tree_snapshot(root: Path) -> Dict[str, bytes]:
    """Relative path -> bytes for every file under root."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


async def no_sleep(_seconds: float) -> None:
    return None
