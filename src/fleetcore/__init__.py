"""fleetcore - multi-host command dispatch for acceptance testing."""

__version__ = "0.1.0"

from fleetcore.errors import (
    CommandFailure,
    FleetError,
    HostFailuresError,
    InvalidArgumentError,
    LocalFileNotFoundError,
    ResourceError,
    RetryExhaustedError,
)
from fleetcore.fleet import Fleet
from fleetcore.models import (
    Command,
    ExecutionResult,
    ResourceHandle,
    RetryPolicy,
    TransferProtocol,
)

__all__ = [
    "__version__",
    "Fleet",
    "Command",
    "ExecutionResult",
    "ResourceHandle",
    "RetryPolicy",
    "TransferProtocol",
    "FleetError",
    "CommandFailure",
    "HostFailuresError",
    "InvalidArgumentError",
    "LocalFileNotFoundError",
    "ResourceError",
    "RetryExhaustedError",
]
