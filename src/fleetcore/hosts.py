"""Resolution of host specifiers into concrete host lists."""

from enum import Enum
from typing import Any, Sequence, Union

from fleetcore.errors import InvalidArgumentError
from fleetcore.remote.base import RemoteHost

HostSpecifier = Union[RemoteHost, Sequence[RemoteHost], str, Enum]


def _role_key(tag: Union[str, Enum]) -> str:
    if isinstance(tag, Enum):
        tag = tag.value
    return str(tag).strip().lower()


def is_role(specifier: Any) -> bool:
    return isinstance(specifier, (str, Enum))


def is_plural(specifier: Any) -> bool:
    """Whether dispatching to ``specifier`` yields a list of results.

    Only a single host yields a bare result; host lists and role tags always
    yield a list, whatever the number of hosts they resolve to.
    """
    return not isinstance(specifier, RemoteHost)


def hosts_with_role(role: Union[str, Enum], inventory: Sequence[RemoteHost]) -> list[RemoteHost]:
    """Return every inventory host carrying ``role``, in inventory order."""
    key = _role_key(role)
    return [host for host in inventory if key in (_role_key(r) for r in host.roles)]


def resolve_hosts(specifier: HostSpecifier, inventory: Sequence[RemoteHost] = ()) -> list[RemoteHost]:
    """Turn a host specifier into an ordered list of hosts.

    Args:
        specifier: A host, a non-empty list of hosts, or a role tag.
        inventory: Known hosts, used to resolve role tags.

    Returns:
        The resolved hosts. An unknown role tag resolves to an empty list.

    Raises:
        InvalidArgumentError: If the specifier has none of the accepted shapes.
    """
    if isinstance(specifier, RemoteHost):
        return [specifier]

    if is_role(specifier):
        return hosts_with_role(specifier, inventory)

    if isinstance(specifier, (list, tuple)):
        if not specifier:
            raise InvalidArgumentError("Host list must not be empty")
        bad = [h for h in specifier if not isinstance(h, RemoteHost)]
        if bad:
            raise InvalidArgumentError(
                f"Host list must contain only hosts, got {type(bad[0]).__name__}"
            )
        return list(specifier)

    raise InvalidArgumentError(
        "Hosts must be given as a host, a list of hosts, or a role name, "
        f"not {type(specifier).__name__}"
    )
