# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Runtime - Thin async wrapper around the docker CLI.

Every call blocks the calling task until the child process exits and
returns a CommandResult; deciding whether a non-zero exit is fatal is
left to the caller (see stackbak.steps).
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, Awaitable, Callable, List, Sequence, Set

import structlog

from stackbak.exceptions import CollaboratorError

logger = structlog.get_logger()

# Read size for streamed stdout
STREAM_CHUNK_SIZE = 64 * 1024

StdoutSink = Callable[[bytes], Awaitable[None]]


@dataclass
class CommandResult:
    """Outcome of one external command."""

    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """The command's own error text, for surfacing to the operator."""
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


class ContainerRuntime:
    """
    Docker and docker compose operations for one stack directory.

    Compose commands run with the working directory as cwd so compose
    picks up compose.yaml and .env from there.
    """

    def __init__(self, workdir: Path, docker: str = "docker"):
        self.workdir = workdir
        self.docker = docker

    async def run(
        self,
        argv: Sequence[str],
        *,
        stdin_chunks: AsyncIterable[bytes] | None = None,
        stdout_sink: StdoutSink | None = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            argv: Command and arguments
            stdin_chunks: Bytes streamed to the child's stdin, if any
            stdout_sink: Receives stdout chunks as they arrive; when
                omitted stdout is collected into the result

        Returns:
            CommandResult (stdout is empty when a sink was given)

        Raises:
            CollaboratorError: If the command cannot be started
            Exception: Whatever stdin_chunks or stdout_sink raised; the
                child is killed and reaped first
        """
        argv = list(argv)
        logger.debug("command_started", argv=argv)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.workdir),
                stdin=(
                    asyncio.subprocess.PIPE
                    if stdin_chunks is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CollaboratorError(
                f"Failed to start {argv[0]}: {e}",
                details={"argv": argv},
            )

        collected: List[bytes] = []
        # First exception raised by our own side of the pipes
        failures: List[BaseException] = []

        def abort(error: BaseException) -> None:
            # The child must not see a clean EOF and act on partial input
            if not failures:
                failures.append(error)
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
            logger.warning("command_killed", argv=argv, error=str(error))

        async def pump_stdout() -> None:
            while True:
                chunk = await proc.stdout.read(STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                if failures:
                    continue
                if stdout_sink is None:
                    collected.append(chunk)
                    continue
                try:
                    await stdout_sink(chunk)
                except Exception as e:
                    abort(e)

        async def feed_stdin() -> None:
            try:
                async for chunk in stdin_chunks:
                    proc.stdin.write(chunk)
                    await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # Child exited early; its exit status and stderr say why
                logger.debug("stdin_closed_by_child", argv=argv)
            except Exception as e:
                abort(e)
            finally:
                proc.stdin.close()

        jobs = [pump_stdout(), proc.stderr.read()]
        if stdin_chunks is not None:
            jobs.append(feed_stdin())

        outcome = await asyncio.gather(*jobs)
        returncode = await proc.wait()

        if failures:
            raise failures[0]

        result = CommandResult(
            argv=argv,
            returncode=returncode,
            stdout=b"".join(collected).decode(errors="replace"),
            stderr=outcome[1].decode(errors="replace"),
        )
        logger.debug("command_finished", argv=argv, returncode=returncode)
        return result

    # ------------------------------------------------------------------
    # docker compose
    # ------------------------------------------------------------------

    def _compose(self, *args: str) -> List[str]:
        return [self.docker, "compose", *args]

    async def compose_down(self) -> CommandResult:
        return await self.run(self._compose("down"))

    async def compose_up(self, service: str | None = None) -> CommandResult:
        """Bring the whole stack up, or just one service."""
        args = ["up", "-d"]
        if service:
            args.append(service)
        return await self.run(self._compose(*args))

    async def compose_ps(self) -> CommandResult:
        return await self.run(self._compose("ps"))

    async def running_services(self) -> Set[str]:
        """
        Names of compose services currently running.

        Raises:
            CollaboratorError: If compose cannot be queried
        """
        result = await self.run(
            self._compose("ps", "--services", "--filter", "status=running")
        )
        if not result.ok:
            raise CollaboratorError(
                f"Could not list running services: {result.diagnostic}",
                details={"argv": result.argv},
            )
        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    async def exec_in_service(
        self,
        service: str,
        command: Sequence[str],
        *,
        stdin_chunks: AsyncIterable[bytes] | None = None,
        stdout_sink: StdoutSink | None = None,
    ) -> CommandResult:
        """Run a command inside a running service without a TTY."""
        return await self.run(
            self._compose("exec", "-T", service, *command),
            stdin_chunks=stdin_chunks,
            stdout_sink=stdout_sink,
        )

    # ------------------------------------------------------------------
    # volumes and helper containers
    # ------------------------------------------------------------------

    async def run_helper(
        self,
        image: str,
        volume: str,
        host_dir: Path,
        shell_command: str,
        *,
        volume_read_only: bool,
    ) -> CommandResult:
        """
        Run a transient container with a volume at /data and host_dir at /backup.

        Exactly one side is writable: the volume when restoring, the
        host directory when capturing.
        """
        data_mount = f"{volume}:/data:ro" if volume_read_only else f"{volume}:/data"
        backup_mount = (
            f"{host_dir}:/backup" if volume_read_only else f"{host_dir}:/backup:ro"
        )
        return await self.run(
            [
                self.docker,
                "run",
                "--rm",
                "-v",
                data_mount,
                "-v",
                backup_mount,
                image,
                "sh",
                "-c",
                shell_command,
            ]
        )

    async def create_volume(self, name: str) -> CommandResult:
        return await self.run([self.docker, "volume", "create", name])

    async def remove_volume(self, name: str) -> CommandResult:
        return await self.run([self.docker, "volume", "rm", "-f", name])

    async def list_volumes(self) -> CommandResult:
        return await self.run([self.docker, "volume", "ls", "--format", "{{.Name}}"])
