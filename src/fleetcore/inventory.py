"""Host inventory and settings stored as YAML."""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from fleetcore.models import HostConfig, RetryPolicy


@dataclass
class Settings:
    """Defaults applied by the execution core."""

    max_retries: int = 60
    retry_interval: float = 7.0
    parallel: bool = False
    tmpdir_prefix: str = "fleetcore"
    connect_timeout: int = 30

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, interval_seconds=self.retry_interval)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Settings":
        """Create settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Inventory:
    """Manages the host inventory stored in ``hosts.yaml``.

    Host order in the file is significant: role lookups resolve hosts in
    that order.
    """

    FILENAME = "hosts.yaml"

    def __init__(self, config_dir: Path):
        """Initialize the inventory.

        Args:
            config_dir: Directory holding ``hosts.yaml``.
        """
        self.config_dir = config_dir
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.path = config_dir / self.FILENAME
        self.settings = Settings()
        self._hosts: list[HostConfig] = []
        self.load()

    def load(self) -> None:
        """(Re)read ``hosts.yaml``. A missing file is an empty inventory.

        Raises:
            ValueError: If the file is not a valid inventory.
        """
        if not self.path.exists():
            self.settings = Settings()
            self._hosts = []
            return

        with open(self.path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid inventory file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Invalid inventory file {self.path}: expected a mapping")

        self.settings = Settings.from_dict(data.get("settings"))
        self._hosts = [HostConfig.from_dict(h) for h in data.get("hosts") or []]

    def save(self) -> None:
        data = {
            "settings": self.settings.to_dict(),
            "hosts": [host.to_dict() for host in self._hosts],
        }
        with open(self.path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get_host(self, name: str) -> Optional[HostConfig]:
        """Get a host by name.

        Returns:
            The host if found, None otherwise.
        """
        for host in self._hosts:
            if host.name == name:
                return host
        return None

    def list_hosts(
        self,
        role: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> list[HostConfig]:
        """List hosts in inventory order with optional filtering.

        Args:
            role: Filter by role (case-insensitive).
            enabled: Filter by enabled status.

        Returns:
            List of matching hosts.
        """
        hosts = list(self._hosts)
        if role is not None:
            wanted = role.lower()
            hosts = [h for h in hosts if wanted in (r.lower() for r in h.roles)]
        if enabled is not None:
            hosts = [h for h in hosts if h.enabled == enabled]
        return hosts

    def add_host(self, host: HostConfig) -> HostConfig:
        """Append a host to the inventory.

        Raises:
            ValueError: If a host with the same name already exists.
        """
        if self.get_host(host.name):
            raise ValueError(f"Host '{host.name}' already exists")
        self._hosts.append(host)
        self.save()
        return host

    def remove_host(self, name: str) -> bool:
        """Remove a host.

        Returns:
            True if removed, False if not found.
        """
        host = self.get_host(name)
        if host is None:
            return False
        self._hosts.remove(host)
        self.save()
        return True

    def import_from_file(self, file_path: Path, overwrite: bool = False) -> int:
        """Import hosts from a YAML file holding a list or a ``hosts:`` mapping.

        Args:
            file_path: Path to the YAML file.
            overwrite: Whether to replace existing hosts of the same name.

        Returns:
            Number of hosts imported.
        """
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)

        if not data:
            return 0

        hosts_data = data.get("hosts", []) if isinstance(data, dict) else data
        imported = 0

        for host_data in hosts_data:
            if not isinstance(host_data, dict):
                continue

            host = HostConfig.from_dict(host_data)
            existing = self.get_host(host.name)
            if existing is not None:
                if not overwrite:
                    continue
                self._hosts[self._hosts.index(existing)] = host
            else:
                self._hosts.append(host)
            imported += 1

        self.save()
        return imported
