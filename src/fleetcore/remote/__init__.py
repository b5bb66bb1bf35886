"""Host backends the execution core talks to."""

from fleetcore.remote.base import CommandResult, HostFactory, RemoteHost
from fleetcore.remote.local import LocalHost
from fleetcore.remote.ssh import SSHHost

__all__ = [
    "CommandResult",
    "HostFactory",
    "RemoteHost",
    "LocalHost",
    "SSHHost",
]
