"""The context object tests drive hosts through."""

import logging
from typing import Any, Iterable, Optional, Union

from fleetcore.dispatcher import Dispatcher
from fleetcore.hosts import HostSpecifier, hosts_with_role
from fleetcore.inventory import Inventory, Settings
from fleetcore.models import Command, ExecutionResult, ResourceHandle, RetryPolicy
from fleetcore.remote.base import HostFactory, RemoteHost
from fleetcore.resources import ResourceManager
from fleetcore.retry import RetryExecutor
from fleetcore.scripts import ScriptRunner
from fleetcore.transfer import TransferManager

logger = logging.getLogger(__name__)


class Fleet:
    """Bundles dispatch, retry, transfer, tmpdir and script helpers over a host set.

    Example:
        >>> with Fleet.from_inventory(Inventory(config_dir)) as fleet:
        ...     fleet.on("agent", "puppet --version", parallel=True)
        ...     fleet.shell("hostname", after=lambda: print(fleet.stdout))
    """

    def __init__(
        self,
        hosts: Iterable[RemoteHost] = (),
        settings: Optional[Settings] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.hosts = list(hosts)
        self.settings = settings or Settings()
        self.dispatcher = Dispatcher(self.hosts, log=log)
        self.retrier = RetryExecutor(self.dispatcher, self.settings.retry_policy())
        self.resources = ResourceManager(self.dispatcher)
        self.transfer = TransferManager(self.dispatcher)
        self.scripts = ScriptRunner(
            self.dispatcher, self.transfer, self.resources, self.settings.tmpdir_prefix
        )

    @classmethod
    def from_inventory(cls, inventory: Inventory, log: Optional[logging.Logger] = None) -> "Fleet":
        """Build hosts for every enabled inventory entry."""
        hosts = HostFactory.create_all(
            inventory.list_hosts(enabled=True), inventory.settings.connect_timeout
        )
        return cls(hosts, inventory.settings, log)

    # --- Host lookup ---

    def hosts_as(self, role: str) -> list[RemoteHost]:
        return hosts_with_role(role, self.hosts)

    @property
    def default(self) -> RemoteHost:
        """The host with the ``default`` role, else the first host.

        Raises:
            LookupError: If the fleet has no hosts.
        """
        tagged = self.hosts_as("default")
        if tagged:
            return tagged[0]
        if not self.hosts:
            raise LookupError("The fleet has no hosts")
        return self.hosts[0]

    def get(self, name: str) -> Optional[RemoteHost]:
        for host in self.hosts:
            if host.name == name:
                return host
        return None

    # --- Operations ---

    def on(
        self, specifier: HostSpecifier, command: Union[str, Command], **options: Any
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        options.setdefault("parallel", self.settings.parallel)
        return self.dispatcher.on(specifier, command, **options)

    def shell(self, command: Union[str, Command], **options: Any) -> ExecutionResult:
        """Run ``command`` on the default host."""
        return self.on(self.default, command, **options)

    def retry_on(
        self,
        specifier: HostSpecifier,
        command: Union[str, Command],
        policy: Optional[RetryPolicy] = None,
        **options: Any,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        return self.retrier.retry_on(specifier, command, policy, **options)

    def create_tmpdir_on(
        self,
        specifier: HostSpecifier,
        prefix: str = "",
        owner: Optional[str] = None,
        group: Optional[str] = None,
    ) -> Union[ResourceHandle, list[ResourceHandle]]:
        return self.resources.create_tmpdir_on(specifier, prefix, owner, group)

    def copy_to(self, specifier: HostSpecifier, local_path: str, remote_path: str, **options: Any):
        return self.transfer.copy_to(specifier, local_path, remote_path, **options)

    def copy_from(self, specifier: HostSpecifier, remote_path: str, local_path: str, **options: Any):
        return self.transfer.copy_from(specifier, remote_path, local_path, **options)

    def materialize_remote_file(
        self, specifier: HostSpecifier, remote_path: str, contents: Union[str, bytes], **options: Any
    ):
        return self.transfer.materialize_remote_file(specifier, remote_path, contents, **options)

    def run_script_on(self, specifier: HostSpecifier, script: str, **options: Any):
        return self.scripts.run_script_on(specifier, script, **options)

    def run_script(self, script: str, **options: Any) -> ExecutionResult:
        """Upload and run ``script`` on the default host."""
        return self.run_script_on(self.default, script, **options)

    # --- Most recent result ---

    @property
    def result(self) -> Optional[ExecutionResult]:
        return self.dispatcher.result

    @property
    def stdout(self) -> Optional[str]:
        return self.result.stdout if self.result else None

    @property
    def stderr(self) -> Optional[str]:
        return self.result.stderr if self.result else None

    @property
    def exit_code(self) -> Optional[int]:
        return self.result.exit_code if self.result else None

    # --- Lifecycle ---

    def close(self) -> None:
        for host in self.hosts:
            host.disconnect()

    def __enter__(self) -> "Fleet":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
