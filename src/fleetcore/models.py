"""fleetcore data models."""

import logging
import shlex
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from fleetcore.errors import InvalidArgumentError

if TYPE_CHECKING:
    from fleetcore.remote.base import RemoteHost


class TransferProtocol(Enum):
    """How files are moved between the coordinator and a host."""

    PLAIN = "scp"
    SYNC = "rsync"

    @classmethod
    def parse(cls, value: Any) -> "TransferProtocol":
        """Accept a protocol member, its value, or its name (any case).

        Raises:
            InvalidArgumentError: If the value names no known protocol.
        """
        if value is None:
            return cls.PLAIN
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise InvalidArgumentError(
            f"Unknown transfer protocol '{value}' (expected one of: scp, rsync)"
        )


@dataclass(frozen=True)
class Command:
    """An immutable command line plus arguments and environment overlay."""

    command: str
    args: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or not self.command.strip():
            raise InvalidArgumentError("Command requires a non-empty command string")
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        object.__setattr__(
            self, "environment", {str(k): str(v) for k, v in self.environment.items()}
        )
        object.__setattr__(self, "options", dict(self.options))

    def with_environment(self, overlay: Optional[dict[str, Any]]) -> "Command":
        """Return a copy whose environment is updated key by key with ``overlay``."""
        if not overlay:
            return self
        merged = dict(self.environment)
        merged.update({str(k): str(v) for k, v in overlay.items()})
        return replace(self, environment=merged)

    def cmd_line(self) -> str:
        """Render the shell command line, prefixed by ``env`` when needed."""
        parts = []
        if self.environment:
            parts.append("env")
            parts.extend(
                f"{key}={shlex.quote(value)}" for key, value in self.environment.items()
            )
        parts.append(self.command)
        parts.extend(shlex.quote(arg) for arg in self.args)
        return " ".join(parts)

    def __str__(self) -> str:
        return self.cmd_line()


@dataclass
class ExecutionResult:
    """Outcome of running one command on one host."""

    host: "RemoteHost"
    command: Command
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    acceptable_exit_codes: frozenset[int] = frozenset({0})
    duration: Optional[float] = None
    logger: Optional[logging.Logger] = field(default=None, repr=False, compare=False)

    @property
    def success(self) -> bool:
        return self.exit_code in self.acceptable_exit_codes

    @property
    def output(self) -> str:
        return self.stdout + self.stderr

    def log(self, logger: logging.Logger) -> None:
        """Attach ``logger`` to this result and record the result on it."""
        self.logger = logger
        level = logging.INFO if self.success else logging.WARNING
        logger.log(
            level,
            "%s $ %s (exit %s%s)",
            self.host,
            self.command.cmd_line(),
            self.exit_code,
            f", {self.duration:.2f}s" if self.duration is not None else "",
        )
        if self.stdout:
            logger.debug("%s stdout:\n%s", self.host, self.stdout.rstrip())
        if self.stderr:
            logger.debug("%s stderr:\n%s", self.host, self.stderr.rstrip())

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "host": str(self.host),
            "command": self.command.cmd_line(),
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "success": self.success,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for :meth:`fleetcore.retry.RetryExecutor.retry_on`."""

    max_retries: int = 60
    interval_seconds: float = 7.0
    acceptable_exit_codes: frozenset[int] = frozenset({0})

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise InvalidArgumentError("max_retries must not be negative")
        if self.interval_seconds < 0:
            raise InvalidArgumentError("interval_seconds must not be negative")
        codes = frozenset(self.acceptable_exit_codes) or frozenset({0})
        object.__setattr__(self, "acceptable_exit_codes", codes)

    def accepts(self, exit_code: int) -> bool:
        return exit_code in self.acceptable_exit_codes


@dataclass(frozen=True)
class ResourceHandle:
    """A temporary directory created on a host by the resource manager."""

    remote_path: str
    host: "RemoteHost"
    owner: Optional[str] = None
    group: Optional[str] = None

    def __str__(self) -> str:
        return self.remote_path


@dataclass
class HostConfig:
    """Inventory entry describing how to reach a host."""

    name: str
    hostname: str
    port: int = 22
    username: Optional[str] = None
    key_file: Optional[str] = None
    password: Optional[str] = None  # For non-key auth (use key_file when possible)
    roles: list[str] = field(default_factory=list)
    enabled: bool = True
    connection_type: str = "ssh"  # ssh, local

    def __post_init__(self) -> None:
        """Validate host configuration."""
        if not self.name:
            raise ValueError("Host name is required")
        if not self.hostname:
            raise ValueError("Hostname is required")
        if self.connection_type not in ("ssh", "local"):
            raise ValueError(
                f"Unsupported connection type '{self.connection_type}' for host '{self.name}'"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert host to dictionary."""
        return {
            "name": self.name,
            "hostname": self.hostname,
            "port": self.port,
            "username": self.username,
            "key_file": self.key_file,
            "roles": list(self.roles),
            "enabled": self.enabled,
            "connection_type": self.connection_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HostConfig":
        """Create host from dictionary."""
        return cls(
            name=data["name"],
            hostname=data.get("hostname", data["name"]),
            port=data.get("port", 22),
            username=data.get("username"),
            key_file=data.get("key_file"),
            password=data.get("password"),
            roles=[str(r) for r in data.get("roles", [])],
            enabled=data.get("enabled", True),
            connection_type=data.get("connection_type", "ssh"),
        )

    def is_local(self) -> bool:
        """Check if this host represents the local machine."""
        return (
            self.name == "local"
            or self.hostname in ("localhost", "127.0.0.1", "::1")
            or self.connection_type == "local"
        )
