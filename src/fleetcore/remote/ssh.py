"""SSH host backend for Unix hosts."""

import logging
import os
import posixpath
import shlex
import stat
import time
from pathlib import Path
from typing import Iterable, Optional

import paramiko

from fleetcore.remote.base import CommandResult, RemoteHost, run_local

logger = logging.getLogger(__name__)


class SSHHost(RemoteHost):
    """Executes commands on a remote host via SSH and moves files via SFTP or rsync."""

    def __init__(
        self,
        name: str,
        hostname: str,
        port: int = 22,
        username: Optional[str] = None,
        key_file: Optional[str] = None,
        password: Optional[str] = None,
        roles: Iterable[str] = (),
        timeout: int = 30,
    ):
        """Initialize the SSH host.

        Args:
            name: Inventory name of the host.
            hostname: Remote hostname or IP address.
            port: SSH port (default: 22).
            username: SSH username.
            key_file: Path to SSH private key file.
            password: SSH password (key_file preferred).
            roles: Role tags of the host.
            timeout: Connection timeout in seconds.
        """
        super().__init__(name, roles)
        self.hostname = hostname
        self.port = port
        self.username = username
        self.key_file = key_file
        self.password = password
        self.timeout = timeout
        self._client: Optional[paramiko.SSHClient] = None

    def connect(self) -> bool:
        """Establish SSH connection."""
        try:
            self._client = paramiko.SSHClient()
            self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            connect_kwargs = {
                "hostname": self.hostname,
                "port": self.port,
                "timeout": self.timeout,
            }

            if self.username:
                connect_kwargs["username"] = self.username

            if self.key_file:
                key_path = Path(self.key_file).expanduser()
                connect_kwargs["key_filename"] = str(key_path)
            elif self.password:
                connect_kwargs["password"] = self.password

            self._client.connect(**connect_kwargs)
            logger.debug("Connected to %s (%s:%d)", self.name, self.hostname, self.port)
            return True

        except (paramiko.SSHException, OSError) as e:
            self._client = None
            raise ConnectionError(f"Failed to connect to {self.hostname}: {e}") from e

    def disconnect(self) -> None:
        """Close SSH connection."""
        if self._client:
            self._client.close()
            self._client = None

    def is_connected(self) -> bool:
        """Check if SSH connection is active."""
        if not self._client:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def _ensure_connected(self) -> paramiko.SSHClient:
        if not self.is_connected():
            self.connect()
        return self._client

    def run(self, command_line: str, timeout: Optional[int] = None) -> CommandResult:
        """Execute a command line on the remote host.

        Args:
            command_line: Command to execute.
            timeout: Execution timeout in seconds.

        Returns:
            CommandResult with exit code and output.
        """
        client = self._ensure_connected()
        start_time = time.time()

        try:
            stdin, stdout, stderr = client.exec_command(command_line, timeout=timeout)

            exit_code = stdout.channel.recv_exit_status()
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")

            return CommandResult(
                exit_code=exit_code,
                stdout=stdout_text,
                stderr=stderr_text,
                duration=time.time() - start_time,
            )

        except TimeoutError:
            return CommandResult(
                exit_code=-1,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                duration=time.time() - start_time,
                timed_out=True,
            )

    def _put(self, local_path: str, remote_path: str) -> None:
        """Upload a file or directory via SFTP."""
        client = self._ensure_connected()
        sftp = client.open_sftp()
        try:
            target = remote_path
            if _is_remote_dir(sftp, remote_path):
                target = posixpath.join(remote_path, os.path.basename(local_path.rstrip("/")))

            if os.path.isdir(local_path):
                self._put_tree(sftp, local_path, target)
            else:
                sftp.put(local_path, target)
        finally:
            sftp.close()

    def _put_tree(self, sftp: paramiko.SFTPClient, local_dir: str, remote_dir: str) -> None:
        sftp.mkdir(remote_dir)
        for entry in sorted(os.listdir(local_dir)):
            local_entry = os.path.join(local_dir, entry)
            remote_entry = posixpath.join(remote_dir, entry)
            if os.path.isdir(local_entry):
                self._put_tree(sftp, local_entry, remote_entry)
            else:
                sftp.put(local_entry, remote_entry)

    def _get(self, remote_path: str, local_path: str) -> None:
        """Download a file via SFTP."""
        client = self._ensure_connected()
        sftp = client.open_sftp()
        try:
            if os.path.isdir(local_path):
                local_path = os.path.join(local_path, posixpath.basename(remote_path))
            sftp.get(remote_path, local_path)
        finally:
            sftp.close()

    def _ssh_target(self, path: str) -> str:
        user = f"{self.username}@" if self.username else ""
        return f"{user}{self.hostname}:{path}"

    def _rsync_argv(self, source: str, destination: str) -> list[str]:
        ssh = ["ssh", "-p", str(self.port), "-o", "StrictHostKeyChecking=no"]
        if self.key_file:
            ssh.extend(["-i", str(Path(self.key_file).expanduser())])
        return ["rsync", "-az", "-e", " ".join(shlex.quote(part) for part in ssh), source, destination]

    def _sync_to(self, local_path: str, remote_path: str) -> CommandResult:
        return run_local(self._rsync_argv(local_path, self._ssh_target(remote_path)))

    def _sync_from(self, remote_path: str, local_path: str) -> CommandResult:
        return run_local(self._rsync_argv(self._ssh_target(remote_path), local_path))

    def __enter__(self) -> "SSHHost":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()


def _is_remote_dir(sftp: paramiko.SFTPClient, path: str) -> bool:
    try:
        return stat.S_ISDIR(sftp.stat(path).st_mode)
    except FileNotFoundError:
        return False
