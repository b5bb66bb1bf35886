"""Scoped temporary directories on hosts."""

import logging
from typing import Optional, Union

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import ResourceError
from fleetcore.hosts import HostSpecifier, is_plural
from fleetcore.models import ResourceHandle
from fleetcore.remote.base import RemoteHost

logger = logging.getLogger(__name__)


class ResourceManager:
    """Creates temporary directories and hands out handles to them."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def create_tmpdir_on(
        self,
        specifier: HostSpecifier,
        prefix: str = "",
        owner: Optional[str] = None,
        group: Optional[str] = None,
    ) -> Union[ResourceHandle, list[ResourceHandle]]:
        """Create a temporary directory on every host of ``specifier``.

        Ownership is only changed when ``owner`` or ``group`` is given, and
        the two are changed by separate commands. If the requested account
        does not exist on a host, the directory just created there is removed
        before the error is raised. Hosts are handled independently.

        Args:
            specifier: A host, a list of hosts, or a role tag.
            prefix: Prefix of the directory name.
            owner: User to ``chown`` the directory to.
            group: Group to ``chgrp`` the directory to.

        Returns:
            One handle per host, bare for a single host.

        Raises:
            ResourceError: If ``owner`` or ``group`` does not exist on a host.
        """
        hosts = self.dispatcher.resolve(specifier)

        def create(host: RemoteHost) -> ResourceHandle:
            return self._create_one(host, prefix, owner, group)

        handles = self.dispatcher.fan_out(hosts, create)
        return handles if is_plural(specifier) else handles[0]

    def _create_one(
        self,
        host: RemoteHost,
        prefix: str,
        owner: Optional[str],
        group: Optional[str],
    ) -> ResourceHandle:
        path = host.make_tmpdir(prefix)
        logger.debug("Created %s on %s", path, host)

        if owner:
            if not host.user_exists(owner).success:
                host.remove_dir(path)
                raise ResourceError(f"User {owner} does not exist on {host}.", host, owner)
            host.change_owner(path, owner)

        if group:
            if not host.group_exists(group).success:
                host.remove_dir(path)
                raise ResourceError(f"Group {group} does not exist on {host}.", host, group)
            host.change_group(path, group)

        return ResourceHandle(remote_path=path, host=host, owner=owner, group=group)

    def remove(self, handle: ResourceHandle) -> None:
        """Delete the directory behind ``handle``."""
        handle.host.remove_dir(handle.remote_path)
