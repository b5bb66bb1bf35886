"""Shared fixtures: scripted in-memory hosts."""

import posixpath
import shlex
import threading
import time

import pytest

from fleetcore.remote.base import CommandResult, RemoteHost


class FakeHost(RemoteHost):
    """A host that records command lines and answers them from a script."""

    def __init__(
        self,
        name,
        roles=(),
        exit_code=0,
        stdout="",
        users=(),
        groups=(),
        delay=0.0,
        has_rsync=True,
        missing_dirs=(),
    ):
        super().__init__(name, roles)
        self.exit_code = exit_code
        self.stdout = stdout
        self.users = set(users)
        self.groups = set(groups)
        self.delay = delay
        self.has_rsync = has_rsync
        self.missing_dirs = set(missing_dirs)
        self.commands = []
        self.uploads = []
        self.downloads = []
        self.dirs = set()
        self.threads = []
        self.connected = False
        self._counter = 0

    def connect(self):
        self.connected = True
        return True

    def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def run(self, command_line, timeout=None):
        self.commands.append(command_line)
        self.threads.append(threading.current_thread().name)
        if self.delay:
            time.sleep(self.delay)

        argv = shlex.split(command_line)
        if argv[0] == "env":
            argv = argv[1:]
            while argv and "=" in argv[0]:
                argv = argv[1:]

        head = argv[0]
        if head == "mktemp":
            self._counter += 1
            path = f"/tmp/{argv[2].split('.')[0]}.{self.name}{self._counter}"
            self.dirs.add(path)
            return CommandResult(0, path + "\n", "")
        if head == "getent":
            known = self.users if argv[1] == "passwd" else self.groups
            if argv[2] in known:
                return CommandResult(0, f"{argv[2]}:x:1000:\n", "")
            return CommandResult(2, "", "")
        if head == "rm":
            self.dirs.discard(argv[-1])
            return CommandResult(0, "", "")
        if head in ("chown", "chgrp", "chmod"):
            return CommandResult(0, "", "")
        return CommandResult(self.exit_code, self.stdout, "" if self.exit_code == 0 else "boom")

    def _check_dir(self, remote_path):
        if posixpath.dirname(remote_path) in self.missing_dirs:
            raise FileNotFoundError(2, "No such file or directory", remote_path)

    def _put(self, local_path, remote_path):
        self._check_dir(remote_path)
        self.uploads.append(("scp", local_path, remote_path))

    def _get(self, remote_path, local_path):
        self._check_dir(remote_path)
        self.downloads.append(("scp", remote_path, local_path))

    def _sync_to(self, local_path, remote_path):
        if not self.has_rsync:
            return CommandResult(127, "", "bash: rsync: command not found")
        if posixpath.dirname(remote_path) in self.missing_dirs:
            return CommandResult(11, "", "rsync: mkdir failed: No such file or directory")
        self.uploads.append(("rsync", local_path, remote_path))
        return CommandResult(0, "", "")

    def _sync_from(self, remote_path, local_path):
        self.downloads.append(("rsync", remote_path, local_path))
        return CommandResult(0, "", "")


@pytest.fixture
def make_host():
    """Factory for scripted hosts."""
    return FakeHost


@pytest.fixture
def hosts():
    """A small inventory mirroring a typical puppet test layout."""
    return [
        FakeHost("master", roles=["master", "agent", "default"]),
        FakeHost("agent", roles=["agent"]),
        FakeHost("console", roles=["dashboard", "agent"]),
        FakeHost("db", roles=["database", "agent"]),
        FakeHost("custom", roles=["custom", "agent"]),
    ]


@pytest.fixture
def local_script(tmp_path):
    """A small executable shell script on the coordinator."""
    script = tmp_path / "make-enterprisy.sh"
    script.write_text("#!/bin/sh\necho enterprisy\n")
    script.chmod(0o755)
    return str(script)
