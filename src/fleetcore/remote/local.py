"""Local host backend."""

import os
import shutil
import subprocess
import time
from typing import Iterable, Optional

from fleetcore.remote.base import CommandResult, RemoteHost, run_local


class LocalHost(RemoteHost):
    """Runs commands and copies files on the coordinator itself."""

    def __init__(self, name: str = "localhost", roles: Iterable[str] = ()):
        """Initialize the local host."""
        super().__init__(name, roles)
        self._connected = True

    def connect(self) -> bool:
        """Local host is always connected."""
        self._connected = True
        return True

    def disconnect(self) -> None:
        """No-op for local host."""
        pass

    def is_connected(self) -> bool:
        return self._connected

    def run(self, command_line: str, timeout: Optional[int] = None) -> CommandResult:
        """Execute a command line locally.

        Args:
            command_line: Command to execute.
            timeout: Execution timeout in seconds.

        Returns:
            CommandResult with exit code and output.
        """
        start_time = time.time()

        try:
            result = subprocess.run(
                ["/bin/sh", "-c", command_line],
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return CommandResult(
                exit_code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
                duration=time.time() - start_time,
            )

        except subprocess.TimeoutExpired as e:
            return CommandResult(
                exit_code=-1,
                stdout=e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or ""),
                stderr=f"Command timed out after {timeout} seconds",
                duration=time.time() - start_time,
                timed_out=True,
            )

    def _put(self, local_path: str, remote_path: str) -> None:
        if os.path.isdir(local_path):
            if os.path.isdir(remote_path):
                remote_path = os.path.join(remote_path, os.path.basename(local_path.rstrip("/")))
            shutil.copytree(local_path, remote_path)
        else:
            shutil.copy2(local_path, remote_path)

    def _get(self, remote_path: str, local_path: str) -> None:
        self._put(remote_path, local_path)

    def _sync_to(self, local_path: str, remote_path: str) -> CommandResult:
        return run_local(["rsync", "-a", local_path, remote_path])

    def _sync_from(self, remote_path: str, local_path: str) -> CommandResult:
        return run_local(["rsync", "-a", remote_path, local_path])
