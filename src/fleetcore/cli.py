"""fleet CLI - Main entry point."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Union

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fleetcore import __version__
from fleetcore.errors import FleetError, HostFailuresError
from fleetcore.fleet import Fleet
from fleetcore.hosts import HostSpecifier
from fleetcore.inventory import Inventory
from fleetcore.models import ExecutionResult, HostConfig, ResourceHandle, RetryPolicy

console = Console()
error_console = Console(stderr=True)


def get_config_dir() -> Path:
    """Get the configuration directory."""
    config_dir = Path.home() / ".fleetcore"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


class OutputFormatter:
    """Handles output formatting for CLI."""

    def __init__(self, json_output: bool = False):
        self.json_output = json_output

    def print_hosts(self, hosts: list[HostConfig]) -> None:
        """Print hosts in table or JSON format."""
        if self.json_output:
            console.print_json(json.dumps([h.to_dict() for h in hosts], default=str))
            return

        if not hosts:
            console.print("[yellow]No hosts found.[/yellow]")
            return

        table = Table(title="Inventory")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Address", style="magenta")
        table.add_column("Roles", style="green")
        table.add_column("Connection")
        table.add_column("Enabled", style="blue")

        for host in hosts:
            address = f"{host.username + '@' if host.username else ''}{host.hostname}:{host.port}"
            table.add_row(
                host.name,
                address,
                ", ".join(host.roles) or "—",
                host.connection_type,
                "[green]✓[/green]" if host.enabled else "[red]✗[/red]",
            )

        console.print(table)

    def print_results(self, results: Union[ExecutionResult, list[ExecutionResult]]) -> None:
        """Print one or many execution results."""
        results = results if isinstance(results, list) else [results]
        if self.json_output:
            console.print_json(json.dumps([r.to_dict() for r in results], default=str))
            return

        for result in results:
            status = "[green]✓[/green]" if result.success else "[red]✗[/red]"
            console.print(f"{status} [bold cyan]{result.host}[/bold cyan] (exit code: {result.exit_code})")
            if result.stdout:
                console.print(result.stdout.rstrip(), markup=False, highlight=False)
            if result.stderr:
                console.print(result.stderr.rstrip(), style="red", markup=False, highlight=False)

    def print_handles(self, handles: Union[ResourceHandle, list[ResourceHandle]]) -> None:
        handles = handles if isinstance(handles, list) else [handles]
        if self.json_output:
            data = [{"host": str(h.host), "path": h.remote_path} for h in handles]
            console.print_json(json.dumps(data))
            return
        for handle in handles:
            console.print(f"[bold cyan]{handle.host}[/bold cyan] {handle.remote_path}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        if not self.json_output:
            console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print error message."""
        if self.json_output:
            error_console.print_json(json.dumps({"error": message}))
        else:
            error_console.print(f"[red]✗[/red] {message}")


def parse_env(formatter: OutputFormatter, env: tuple[str, ...]) -> dict[str, str]:
    env_dict = {}
    for e in env:
        if "=" in e:
            key, value = e.split("=", 1)
            env_dict[key] = value
        else:
            formatter.print_error(f"Invalid environment variable format: {e}")
            sys.exit(1)
    return env_dict


def select_hosts(
    ctx: click.Context, fleet: Fleet, names: tuple[str, ...], role: Optional[str]
) -> HostSpecifier:
    """Turn --host/--role options into a host specifier."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    if names and role:
        formatter.print_error("Use either --host or --role, not both")
        sys.exit(1)
    if role:
        return role

    if not names:
        try:
            return fleet.default
        except LookupError as e:
            formatter.print_error(str(e))
            sys.exit(1)

    selected = []
    for name in names:
        host = fleet.get(name)
        if host is None:
            formatter.print_error(f"Host '{name}' not found")
            sys.exit(1)
        selected.append(host)
    return selected[0] if len(selected) == 1 else selected


def run_operation(ctx: click.Context, operation, *args: Any, **kwargs: Any) -> Any:
    """Run a fleet operation, reporting failures the CLI way."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    try:
        return operation(*args, **kwargs)
    except HostFailuresError as e:
        for host, exc in e.failures:
            formatter.print_error(f"{host}: {exc}")
        sys.exit(1)
    except (FleetError, OSError, ValueError) as e:
        formatter.print_error(str(e))
        sys.exit(1)


def host_options(func):
    func = click.option("--role", "-r", default=None, help="Target every host with this role")(func)
    func = click.option("--host", "-h", "hosts", multiple=True, help="Target host (repeatable)")(func)
    return func


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--config-dir", type=click.Path(), help="Custom configuration directory")
@click.option("--verbose", "-v", is_flag=True, help="Log every command and its output")
@click.version_option(version=__version__, prog_name="fleet")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, config_dir: Optional[str], verbose: bool) -> None:
    """fleet - run commands and copy files across a fleet of test hosts."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["formatter"] = OutputFormatter(json_output)
    ctx.obj["config_dir"] = Path(config_dir) if config_dir else get_config_dir()

    try:
        inventory = Inventory(ctx.obj["config_dir"])
    except ValueError as e:
        ctx.obj["formatter"].print_error(str(e))
        sys.exit(1)

    ctx.obj["inventory"] = inventory
    fleet = Fleet.from_inventory(inventory, log=logging.getLogger("fleetcore.results"))
    ctx.obj["fleet"] = fleet
    ctx.call_on_close(fleet.close)


# --- Inventory Commands ---

@cli.command("hosts")
@click.option("--role", "-r", default=None, help="Filter by role")
@click.pass_context
def list_hosts(ctx: click.Context, role: Optional[str]) -> None:
    """List inventory hosts."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    inventory: Inventory = ctx.obj["inventory"]
    formatter.print_hosts(inventory.list_hosts(role=role))


@cli.command("add-host")
@click.argument("name")
@click.option("--hostname", "-H", default=None, help="Address (default: NAME)")
@click.option("--port", "-p", type=int, default=22, help="SSH port")
@click.option("--user", "-u", "username", default=None, help="SSH username")
@click.option("--key-file", "-k", default=None, help="SSH private key")
@click.option("--role", "-r", "roles", multiple=True, help="Host role (repeatable)")
@click.option("--local", "is_local", is_flag=True, help="Run on this machine instead of over SSH")
@click.pass_context
def add_host(
    ctx: click.Context,
    name: str,
    hostname: Optional[str],
    port: int,
    username: Optional[str],
    key_file: Optional[str],
    roles: tuple[str, ...],
    is_local: bool,
) -> None:
    """Add a host to the inventory."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    inventory: Inventory = ctx.obj["inventory"]

    try:
        host = HostConfig(
            name=name,
            hostname=hostname or name,
            port=port,
            username=username,
            key_file=key_file,
            roles=list(roles),
            connection_type="local" if is_local else "ssh",
        )
        inventory.add_host(host)
        formatter.print_success(f"Host '{name}' added")
    except ValueError as e:
        formatter.print_error(str(e))
        sys.exit(1)


@cli.command("remove-host")
@click.argument("name")
@click.pass_context
def remove_host(ctx: click.Context, name: str) -> None:
    """Remove a host from the inventory."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    inventory: Inventory = ctx.obj["inventory"]

    if not inventory.remove_host(name):
        formatter.print_error(f"Host '{name}' not found")
        sys.exit(1)
    formatter.print_success(f"Host '{name}' removed")


@cli.command("import")
@click.argument("file", type=click.Path(exists=True))
@click.option("--overwrite", is_flag=True, help="Overwrite existing hosts")
@click.pass_context
def import_hosts(ctx: click.Context, file: str, overwrite: bool) -> None:
    """Import hosts from a YAML file."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    inventory: Inventory = ctx.obj["inventory"]

    try:
        imported = inventory.import_from_file(Path(file), overwrite=overwrite)
        formatter.print_success(f"Imported {imported} host(s)")
    except (ValueError, KeyError, OSError) as e:
        formatter.print_error(f"Import failed: {e}")
        sys.exit(1)


# --- Execution Commands ---

@cli.command("on")
@click.argument("command")
@host_options
@click.option("--env", "-e", multiple=True, help="Environment variables (KEY=VALUE)")
@click.option("--parallel/--serial", default=None, help="Run on all hosts at once")
@click.option("--accept-all-exit-codes", is_flag=True, help="Do not fail on a non-zero exit")
@click.option("--timeout", "-T", type=int, default=None, help="Execution timeout in seconds")
@click.pass_context
def run_on(
    ctx: click.Context,
    command: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    env: tuple[str, ...],
    parallel: Optional[bool],
    accept_all_exit_codes: bool,
    timeout: Optional[int],
) -> None:
    """Run COMMAND on the selected hosts (default host if none given)."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    options: dict[str, Any] = {
        "environment": parse_env(formatter, env) or None,
        "accept_all_exit_codes": accept_all_exit_codes,
        "timeout": timeout,
    }
    if parallel is not None:
        options["parallel"] = parallel

    specifier = select_hosts(ctx, fleet, hosts, role)
    results = run_operation(ctx, fleet.on, specifier, command, **options)
    formatter.print_results(results)


@cli.command("retry")
@click.argument("command")
@host_options
@click.option("--max-retries", "-n", type=int, default=None, help="Retries after the first attempt")
@click.option("--interval", "-i", type=float, default=None, help="Seconds between attempts")
@click.option("--exit-code", "exit_codes", type=int, multiple=True, help="Acceptable exit code (repeatable)")
@click.pass_context
def retry(
    ctx: click.Context,
    command: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    max_retries: Optional[int],
    interval: Optional[float],
    exit_codes: tuple[int, ...],
) -> None:
    """Run COMMAND until it exits with an acceptable code."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]
    settings = fleet.settings

    try:
        policy = RetryPolicy(
            max_retries=settings.max_retries if max_retries is None else max_retries,
            interval_seconds=settings.retry_interval if interval is None else interval,
            acceptable_exit_codes=frozenset(exit_codes or (0,)),
        )
    except ValueError as e:
        formatter.print_error(str(e))
        sys.exit(1)

    specifier = select_hosts(ctx, fleet, hosts, role)
    results = run_operation(ctx, fleet.retry_on, specifier, command, policy)
    formatter.print_results(results)


@cli.command("tmpdir")
@host_options
@click.option("--prefix", default="", help="Directory name prefix")
@click.option("--owner", default=None, help="User to chown the directory to")
@click.option("--group", default=None, help="Group to chgrp the directory to")
@click.pass_context
def tmpdir(
    ctx: click.Context,
    hosts: tuple[str, ...],
    role: Optional[str],
    prefix: str,
    owner: Optional[str],
    group: Optional[str],
) -> None:
    """Create a temporary directory on the selected hosts."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    specifier = select_hosts(ctx, fleet, hosts, role)
    handles = run_operation(ctx, fleet.create_tmpdir_on, specifier, prefix, owner, group)
    formatter.print_handles(handles)


# --- Transfer Commands ---

@cli.command("copy-to")
@click.argument("local_path")
@click.argument("remote_path")
@host_options
@click.option("--protocol", "-P", type=click.Choice(["scp", "rsync"]), default="scp")
@click.option("--parallel/--serial", default=False)
@click.pass_context
def copy_to(
    ctx: click.Context,
    local_path: str,
    remote_path: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    protocol: str,
    parallel: bool,
) -> None:
    """Copy LOCAL_PATH to REMOTE_PATH on the selected hosts."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    specifier = select_hosts(ctx, fleet, hosts, role)
    run_operation(
        ctx, fleet.copy_to, specifier, local_path, remote_path, protocol=protocol, parallel=parallel
    )
    formatter.print_success(f"Copied {local_path} to {remote_path}")


@cli.command("copy-from")
@click.argument("remote_path")
@click.argument("local_path")
@host_options
@click.option("--protocol", "-P", type=click.Choice(["scp", "rsync"]), default="scp")
@click.pass_context
def copy_from(
    ctx: click.Context,
    remote_path: str,
    local_path: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    protocol: str,
) -> None:
    """Copy REMOTE_PATH from the selected hosts to LOCAL_PATH."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    specifier = select_hosts(ctx, fleet, hosts, role)
    run_operation(ctx, fleet.copy_from, specifier, remote_path, local_path, protocol=protocol)
    formatter.print_success(f"Copied {remote_path} to {local_path}")


@cli.command("write-file")
@click.argument("remote_path")
@host_options
@click.option("--content", "-c", default=None, help="File contents (default: read stdin)")
@click.option("--protocol", "-P", type=click.Choice(["scp", "rsync"]), default="scp")
@click.pass_context
def write_file(
    ctx: click.Context,
    remote_path: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    content: Optional[str],
    protocol: str,
) -> None:
    """Write literal contents to REMOTE_PATH on the selected hosts."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    if content is None:
        content = click.get_text_stream("stdin").read()

    specifier = select_hosts(ctx, fleet, hosts, role)
    run_operation(ctx, fleet.materialize_remote_file, specifier, remote_path, content, protocol=protocol)
    formatter.print_success(f"Wrote {remote_path}")


@cli.command("run-script")
@click.argument("script", type=click.Path())
@host_options
@click.option("--env", "-e", multiple=True, help="Environment variables (KEY=VALUE)")
@click.option("--parallel/--serial", default=None, help="Run on all hosts at once")
@click.pass_context
def run_script(
    ctx: click.Context,
    script: str,
    hosts: tuple[str, ...],
    role: Optional[str],
    env: tuple[str, ...],
    parallel: Optional[bool],
) -> None:
    """Upload SCRIPT to a temporary directory on the selected hosts and run it."""
    formatter: OutputFormatter = ctx.obj["formatter"]
    fleet: Fleet = ctx.obj["fleet"]

    options: dict[str, Any] = {"environment": parse_env(formatter, env) or None}
    options["parallel"] = fleet.settings.parallel if parallel is None else parallel

    specifier = select_hosts(ctx, fleet, hosts, role)
    results = run_operation(ctx, fleet.run_script_on, specifier, script, **options)
    formatter.print_results(results)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
