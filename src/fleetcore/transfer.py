"""File transfer to and from hosts."""

import logging
import os
import tempfile
from typing import Any, Union

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import CommandFailure, LocalFileNotFoundError
from fleetcore.hosts import HostSpecifier, is_plural
from fleetcore.models import ExecutionResult, TransferProtocol
from fleetcore.remote.base import RemoteHost

logger = logging.getLogger(__name__)


class TransferManager:
    """Fans file copies out over a host list."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def copy_to(
        self,
        specifier: HostSpecifier,
        local_path: str,
        remote_path: str,
        protocol: Union[TransferProtocol, str, None] = TransferProtocol.PLAIN,
        parallel: bool = False,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Copy a local file or directory to every host of ``specifier``.

        Raises:
            LocalFileNotFoundError: If ``local_path`` does not exist. No host
                is contacted in that case.
            CommandFailure: If the copy to a single host failed.
            HostFailuresError: If the copy to any of several hosts failed.
        """
        protocol = TransferProtocol.parse(protocol)
        if not os.path.exists(local_path):
            raise LocalFileNotFoundError(local_path)
        hosts = self.dispatcher.resolve(specifier)

        def copy(host: RemoteHost) -> ExecutionResult:
            return self._logged(host.transfer_to, local_path, remote_path, protocol)

        results = self.dispatcher.fan_out(hosts, copy, parallel=parallel)
        return results if is_plural(specifier) else results[0]

    def copy_from(
        self,
        specifier: HostSpecifier,
        remote_path: str,
        local_path: str,
        protocol: Union[TransferProtocol, str, None] = TransferProtocol.PLAIN,
        parallel: bool = False,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Copy a file from every host of ``specifier`` to ``local_path``.

        Raises:
            CommandFailure: If the copy from a single host failed.
            HostFailuresError: If the copy from any of several hosts failed.
        """
        protocol = TransferProtocol.parse(protocol)
        hosts = self.dispatcher.resolve(specifier)

        def copy(host: RemoteHost) -> ExecutionResult:
            return self._logged(host.transfer_from, remote_path, local_path, protocol)

        results = self.dispatcher.fan_out(hosts, copy, parallel=parallel)
        return results if is_plural(specifier) else results[0]

    def materialize_remote_file(
        self,
        specifier: HostSpecifier,
        remote_path: str,
        contents: Union[str, bytes],
        protocol: Union[TransferProtocol, str, None] = None,
        **options: Any,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Write ``contents`` to ``remote_path`` on every host of ``specifier``.

        The contents go through a local temporary file which is removed
        afterwards. ``protocol`` defaults to a plain copy.
        """
        protocol = TransferProtocol.parse(protocol)
        mode = "wb" if isinstance(contents, bytes) else "w"
        with tempfile.NamedTemporaryFile(mode, prefix="fleetcore-", delete=False) as tmpfile:
            tmpfile.write(contents)
            local_path = tmpfile.name

        try:
            return self.copy_to(specifier, local_path, remote_path, protocol, **options)
        finally:
            os.unlink(local_path)

    def _logged(self, transfer, source: str, destination: str, protocol: TransferProtocol) -> ExecutionResult:
        try:
            result = transfer(source, destination, protocol)
        except CommandFailure as e:
            e.result.log(self.dispatcher.logger)
            raise
        result.log(self.dispatcher.logger)
        return result
