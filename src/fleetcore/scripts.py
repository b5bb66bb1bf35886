"""Upload-and-run of local scripts."""

import logging
import os
import posixpath
import shlex
from typing import Any, Union

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import LocalFileNotFoundError
from fleetcore.hosts import HostSpecifier, is_plural
from fleetcore.models import Command, ExecutionResult
from fleetcore.remote.base import RemoteHost
from fleetcore.resources import ResourceManager
from fleetcore.transfer import TransferManager

logger = logging.getLogger(__name__)


class ScriptRunner:
    """Copies a script into a fresh tmpdir on each host and executes it there."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        transfer: TransferManager,
        resources: ResourceManager,
        tmpdir_prefix: str = "fleetcore",
    ):
        self.dispatcher = dispatcher
        self.transfer = transfer
        self.resources = resources
        self.tmpdir_prefix = tmpdir_prefix

    def run_script_on(
        self,
        specifier: HostSpecifier,
        script: str,
        **dispatch_options: Any,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Upload ``script`` to every host of ``specifier`` and run it.

        Every upload happens before anything is executed; if one of them
        fails the error propagates and the script runs nowhere.

        Args:
            specifier: A host, a list of hosts, or a role tag.
            script: Path of the local script.
            **dispatch_options: ``parallel``, ``callback``, ``after`` and
                ``environment`` as for :meth:`Dispatcher.on`; the rest go to
                :meth:`Dispatcher.run_command`.

        Returns:
            The dispatch result(s), shaped like :meth:`Dispatcher.on`'s.
        """
        script = os.path.expanduser(script)
        if not os.path.isfile(script):
            raise LocalFileNotFoundError(script)

        hosts = self.dispatcher.resolve(specifier)
        name = os.path.basename(script)
        parallel = dispatch_options.pop("parallel", False)
        notify = self.dispatcher.notifier(
            dispatch_options.pop("callback", None), dispatch_options.pop("after", None)
        )

        def upload(host: RemoteHost) -> str:
            handle = self.resources.create_tmpdir_on(host, self.tmpdir_prefix)
            remote_script = posixpath.join(handle.remote_path, name)
            self.transfer.copy_to(host, script, remote_script)
            host.execute(Command("chmod", ("+x", remote_script)))
            return remote_script

        remote_scripts = self.dispatcher.fan_out(hosts, upload, parallel=parallel)
        logger.debug("Uploaded %s to %d host(s)", name, len(hosts))

        environment = dispatch_options.pop("environment", None)
        # Hosts may repeat; each slot runs the script it uploaded.
        commands = [
            self.dispatcher.build_command(shlex.quote(path), environment) for path in remote_scripts
        ]

        def execute(host: RemoteHost, command: Command) -> ExecutionResult:
            return self.dispatcher.run_command(host, command, **dispatch_options)

        results = self.dispatcher.fan_out(
            hosts, execute, parallel=parallel, on_result=notify, per_host=commands
        )
        return results if is_plural(specifier) else results[0]
