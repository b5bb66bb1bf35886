"""Exception types raised by the execution core."""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from fleetcore.models import ExecutionResult


class FleetError(Exception):
    """Base class for every error raised by fleetcore."""


class InvalidArgumentError(FleetError, ValueError):
    """A caller passed an argument of the wrong shape."""


class LocalFileNotFoundError(FleetError, FileNotFoundError):
    """A local file needed for a transfer does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Local file not found: {path}")
        self.path = path


class CommandFailure(FleetError, RuntimeError):
    """A remote command finished with an unacceptable exit code."""

    def __init__(self, message: str, result: "ExecutionResult"):
        super().__init__(message)
        self.result = result

    @classmethod
    def from_result(cls, result: "ExecutionResult") -> "CommandFailure":
        """Build the failure for a result that did not succeed."""
        message = (
            f"Command `{result.command.cmd_line()}` on {result.host} "
            f"exited with {result.exit_code}"
        )
        if result.stderr:
            message += f": {result.stderr.strip()}"
        return cls(message, result)


class ResourceError(FleetError, RuntimeError):
    """Setting up a scoped remote resource failed and was rolled back."""

    def __init__(self, message: str, host: Any, account: Optional[str] = None):
        super().__init__(message)
        self.host = host
        self.account = account


class RetryExhaustedError(FleetError, RuntimeError):
    """A command never satisfied its acceptance predicate."""

    def __init__(self, message: str, result: Any, attempts: int):
        super().__init__(message)
        self.result = result
        self.attempts = attempts


class HostFailuresError(FleetError, RuntimeError):
    """One or more hosts of a fan-out failed.

    ``failures`` maps each failing host to the exception its unit raised,
    ``results`` holds the per-host outcome in resolved-host order (``None``
    for hosts whose unit raised).
    """

    def __init__(self, failures: list[tuple[Any, BaseException]], results: list[Any]):
        lines = [f"{host}: {exc}" for host, exc in failures]
        super().__init__(
            f"{len(failures)} of {len(results)} host(s) failed:\n  " + "\n  ".join(lines)
        )
        self.failures = failures
        self.results = results

    @property
    def failed_hosts(self) -> list[Any]:
        return [host for host, _ in self.failures]
