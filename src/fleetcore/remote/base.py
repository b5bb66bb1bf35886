"""Base host capability interface."""

import logging
import os
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from fleetcore.errors import CommandFailure, LocalFileNotFoundError
from fleetcore.models import Command, ExecutionResult, TransferProtocol

if TYPE_CHECKING:
    from fleetcore.models import HostConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Raw outcome of a transport-level command execution."""

    exit_code: int
    stdout: str
    stderr: str
    duration: Optional[float] = None
    timed_out: bool = False


def run_local(argv: list[str], timeout: Optional[int] = None) -> CommandResult:
    """Run ``argv`` on the coordinator, e.g. the rsync binary.

    A missing binary is reported as exit code 127, like a shell would.
    """
    start_time = time.time()
    try:
        proc = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        return CommandResult(
            exit_code=127,
            stdout="",
            stderr=f"{argv[0]}: command not found",
            duration=time.time() - start_time,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            exit_code=-1,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
            duration=time.time() - start_time,
            timed_out=True,
        )
    return CommandResult(
        exit_code=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
        duration=time.time() - start_time,
    )


class RemoteHost(ABC):
    """A machine commands and files can be sent to.

    Subclasses supply the transport primitives (:meth:`run`, :meth:`_put`,
    :meth:`_get`, :meth:`_sync_to`, :meth:`_sync_from`); everything the
    execution core needs is built on top of them here.
    """

    def __init__(self, name: str, roles: Iterable[str] = ()):
        self.name = name
        self.roles = tuple(str(role) for role in roles)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, roles={list(self.roles)!r})"

    @abstractmethod
    def connect(self) -> bool:
        """Establish connection to the host.

        Returns:
            True if connection successful.
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to the host."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if currently connected."""

    @abstractmethod
    def run(self, command_line: str, timeout: Optional[int] = None) -> CommandResult:
        """Run a shell command line on the host.

        Args:
            command_line: Fully rendered command line.
            timeout: Execution timeout in seconds.

        Returns:
            CommandResult with exit code and output.
        """

    @abstractmethod
    def _put(self, local_path: str, remote_path: str) -> None:
        """Copy a local file or directory to the host, raising OSError on failure."""

    @abstractmethod
    def _get(self, remote_path: str, local_path: str) -> None:
        """Copy a host file to the coordinator, raising OSError on failure."""

    @abstractmethod
    def _sync_to(self, local_path: str, remote_path: str) -> CommandResult:
        """rsync a local path to the host."""

    @abstractmethod
    def _sync_from(self, remote_path: str, local_path: str) -> CommandResult:
        """rsync a host path to the coordinator."""

    # --- Command execution ---

    def execute(
        self,
        command: Command,
        accept_all_exit_codes: bool = False,
        acceptable_exit_codes: Optional[Iterable[int]] = None,
        timeout: Optional[int] = None,
    ) -> ExecutionResult:
        """Execute a command descriptor.

        Args:
            command: The command to run.
            accept_all_exit_codes: Return the result whatever its exit code.
            acceptable_exit_codes: Exit codes counted as success (default {0}).
            timeout: Execution timeout in seconds.

        Returns:
            The execution result.

        Raises:
            CommandFailure: If the exit code is not acceptable and
                ``accept_all_exit_codes`` is not set.
        """
        codes = frozenset(acceptable_exit_codes) if acceptable_exit_codes else frozenset({0})
        if timeout is None:
            timeout = command.options.get("timeout")

        raw = self.run(command.cmd_line(), timeout=timeout)
        result = self._make_result(command, raw, codes)
        if not accept_all_exit_codes and not result.success:
            raise CommandFailure.from_result(result)
        return result

    def _make_result(
        self,
        command: Command,
        raw: CommandResult,
        codes: frozenset[int] = frozenset({0}),
    ) -> ExecutionResult:
        return ExecutionResult(
            host=self,
            command=command,
            stdout=raw.stdout,
            stderr=raw.stderr,
            exit_code=raw.exit_code,
            acceptable_exit_codes=codes,
            duration=raw.duration,
        )

    # --- File transfer ---

    def transfer_to(
        self,
        local_path: str,
        remote_path: str,
        protocol: TransferProtocol = TransferProtocol.PLAIN,
    ) -> ExecutionResult:
        """Copy a local file to the host.

        Raises:
            LocalFileNotFoundError: If ``local_path`` does not exist. Checked
                before the host is contacted.
            CommandFailure: If the host side of the copy failed.
        """
        protocol = TransferProtocol.parse(protocol)
        if not os.path.exists(local_path):
            raise LocalFileNotFoundError(local_path)

        command = Command(protocol.value, (local_path, f"{self.name}:{remote_path}"))
        if protocol is TransferProtocol.SYNC:
            raw = self._sync_to(local_path, remote_path)
        else:
            raw = self._plain_copy(self._put, local_path, remote_path)

        result = self._make_result(command, raw)
        if not result.success:
            raise CommandFailure.from_result(result)
        return result

    def transfer_from(
        self,
        remote_path: str,
        local_path: str,
        protocol: TransferProtocol = TransferProtocol.PLAIN,
    ) -> ExecutionResult:
        """Copy a host file to the coordinator.

        Raises:
            CommandFailure: If the copy failed.
        """
        protocol = TransferProtocol.parse(protocol)
        command = Command(protocol.value, (f"{self.name}:{remote_path}", local_path))
        if protocol is TransferProtocol.SYNC:
            raw = self._sync_from(remote_path, local_path)
        else:
            raw = self._plain_copy(self._get, remote_path, local_path)

        result = self._make_result(command, raw)
        if not result.success:
            raise CommandFailure.from_result(result)
        return result

    def _plain_copy(self, copy, source: str, destination: str) -> CommandResult:
        start_time = time.time()
        try:
            copy(source, destination)
        except OSError as e:
            return CommandResult(
                exit_code=1,
                stdout="",
                stderr=str(e) or type(e).__name__,
                duration=time.time() - start_time,
            )
        return CommandResult(exit_code=0, stdout="", stderr="", duration=time.time() - start_time)

    # --- Account and directory helpers ---

    def make_tmpdir(self, prefix: str = "") -> str:
        """Create a uniquely named temporary directory and return its path."""
        name = prefix or "fleetcore"
        result = self.execute(Command("mktemp", ("-dt", f"{name}.XXXXXX")))
        return result.stdout.strip()

    def user_exists(self, name: str) -> ExecutionResult:
        return self.execute(Command("getent", ("passwd", name)), accept_all_exit_codes=True)

    def group_exists(self, name: str) -> ExecutionResult:
        return self.execute(Command("getent", ("group", name)), accept_all_exit_codes=True)

    def change_owner(self, path: str, user: str) -> ExecutionResult:
        return self.execute(Command("chown", (user, path)))

    def change_group(self, path: str, group: str) -> ExecutionResult:
        return self.execute(Command("chgrp", (group, path)))

    def remove_dir(self, path: str) -> ExecutionResult:
        logger.debug("Removing %s on %s", path, self.name)
        return self.execute(Command("rm", ("-rf", path)))


class HostFactory:
    """Factory for creating hosts from inventory configuration."""

    @classmethod
    def create(cls, config: "HostConfig", connect_timeout: int = 30) -> RemoteHost:
        """Create an appropriate host for the given configuration.

        Args:
            config: Host configuration.
            connect_timeout: SSH connection timeout in seconds.

        Returns:
            A RemoteHost instance.
        """
        from fleetcore.remote.local import LocalHost
        from fleetcore.remote.ssh import SSHHost

        if config.is_local():
            return LocalHost(name=config.name, roles=config.roles)

        return SSHHost(
            name=config.name,
            hostname=config.hostname,
            port=config.port,
            username=config.username,
            key_file=config.key_file,
            password=config.password,
            roles=config.roles,
            timeout=connect_timeout,
        )

    @classmethod
    def create_all(
        cls, configs: Iterable["HostConfig"], connect_timeout: int = 30
    ) -> list[RemoteHost]:
        """Create hosts for every enabled configuration, keeping their order."""
        return [cls.create(c, connect_timeout) for c in configs if c.enabled]
