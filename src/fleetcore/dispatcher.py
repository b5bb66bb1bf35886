"""Command dispatch to one or many hosts."""

import logging
import queue
import threading
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar, Union

from fleetcore.errors import CommandFailure, HostFailuresError, InvalidArgumentError
from fleetcore.hosts import HostSpecifier, is_plural, resolve_hosts
from fleetcore.models import Command, ExecutionResult
from fleetcore.remote.base import RemoteHost

logger = logging.getLogger(__name__)

T = TypeVar("T")

ResultCallback = Callable[[ExecutionResult], Any]
AmbientCallback = Callable[[], Any]


class Dispatcher:
    """Runs commands against resolved hosts, serially or one thread per host."""

    def __init__(
        self,
        inventory: Iterable[RemoteHost] = (),
        log: Optional[logging.Logger] = None,
    ):
        """Initialize the dispatcher.

        Args:
            inventory: Known hosts, used to resolve role tags.
            log: Logger every execution result is recorded on.
        """
        self.inventory = list(inventory)
        self.logger = log or logger
        self.result: Optional[ExecutionResult] = None

    def resolve(self, specifier: HostSpecifier) -> list[RemoteHost]:
        return resolve_hosts(specifier, self.inventory)

    def on(
        self,
        specifier: HostSpecifier,
        command: Union[str, Command],
        *,
        environment: Optional[dict[str, Any]] = None,
        parallel: bool = False,
        accept_all_exit_codes: bool = False,
        acceptable_exit_codes: Optional[Iterable[int]] = None,
        timeout: Optional[int] = None,
        callback: Optional[ResultCallback] = None,
        after: Optional[AmbientCallback] = None,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Run a command on every host of ``specifier``.

        Args:
            specifier: A host, a list of hosts, or a role tag.
            command: A command line or a prepared :class:`Command`.
            environment: Variables merged over the command's own environment.
            parallel: Run one thread per host when there are at least two.
            accept_all_exit_codes: Never raise on a bad exit code.
            acceptable_exit_codes: Exit codes counted as success (default {0}).
            timeout: Per-host execution timeout in seconds.
            callback: Called with each host's result as soon as it is available.
            after: Called with no argument as soon as each host's result is
                available; the result is reachable through :attr:`result`.

        Returns:
            A bare result for a single host, otherwise a list of results in
            resolved-host order.

        Raises:
            InvalidArgumentError: If ``command`` or ``specifier`` has the wrong
                shape. Raised before any host is contacted.
            CommandFailure: If a single host's command failed.
            HostFailuresError: If any host of a multi-host dispatch failed.
        """
        descriptor = self.build_command(command, environment)
        hosts = self.resolve(specifier)

        def run_on(host: RemoteHost) -> ExecutionResult:
            return self.run_command(
                host,
                descriptor,
                accept_all_exit_codes=accept_all_exit_codes,
                acceptable_exit_codes=acceptable_exit_codes,
                timeout=timeout,
            )

        notify = self.notifier(callback, after)
        results = self.fan_out(hosts, run_on, parallel=parallel, on_result=notify)
        return results if is_plural(specifier) else results[0]

    def run_command(
        self,
        host: RemoteHost,
        command: Command,
        accept_all_exit_codes: bool = False,
        acceptable_exit_codes: Optional[Iterable[int]] = None,
        timeout: Optional[int] = None,
    ) -> ExecutionResult:
        """Execute ``command`` on one host and log the result.

        Safe to call from fan-out workers: :attr:`result` is left untouched,
        only the notifier updates it.

        Raises:
            CommandFailure: If the exit code is not acceptable and
                ``accept_all_exit_codes`` is not set.
        """
        codes = frozenset(acceptable_exit_codes) if acceptable_exit_codes else frozenset({0})
        result = host.execute(
            command,
            accept_all_exit_codes=True,
            acceptable_exit_codes=codes,
            timeout=timeout,
        )
        result.log(self.logger)
        if not accept_all_exit_codes and not result.success:
            raise CommandFailure.from_result(result)
        return result

    def notifier(
        self,
        callback: Optional[ResultCallback] = None,
        after: Optional[AmbientCallback] = None,
    ) -> Callable[[ExecutionResult], None]:
        """Return the per-result hook that updates :attr:`result` and runs the callbacks."""

        def notify(result: ExecutionResult) -> None:
            self.result = result
            if callback is not None:
                callback(result)
            if after is not None:
                after()

        return notify

    @staticmethod
    def build_command(
        command: Union[str, Command], environment: Optional[dict[str, Any]] = None
    ) -> Command:
        """Wrap ``command`` into a :class:`Command` and merge ``environment``.

        Raises:
            InvalidArgumentError: If ``command`` is neither a string nor a Command.
        """
        if isinstance(command, Command):
            return command.with_environment(environment)
        if isinstance(command, str):
            return Command(command, environment=dict(environment or {}))
        raise InvalidArgumentError(
            f"on() must be called with a String or Command as the command argument, "
            f"not {type(command).__name__}"
        )

    def fan_out(
        self,
        hosts: Sequence[RemoteHost],
        unit: Callable[..., T],
        parallel: bool = False,
        on_result: Optional[Callable[[T], Any]] = None,
        per_host: Optional[Sequence[Any]] = None,
    ) -> list[T]:
        """Apply ``unit`` to every host and return the outcomes in host order.

        With ``per_host``, slot ``i`` is called as ``unit(hosts[i], per_host[i])``.

        Every host's unit runs to completion even when another one fails.
        ``on_result`` runs in the calling thread once per successful unit,
        as soon as that unit finishes. An exception from ``on_result`` is
        recorded against that host like a unit failure.

        Raises:
            HostFailuresError: If any unit or ``on_result`` call raised. A lone
                host re-raises its own exception instead.
        """
        def call(index: int) -> T:
            if per_host is None:
                return unit(hosts[index])
            return unit(hosts[index], per_host[index])

        outcomes: list[Any] = [None] * len(hosts)
        errors: list[Optional[BaseException]] = [None] * len(hosts)

        def settle(index: int) -> None:
            if errors[index] is not None or on_result is None:
                return
            try:
                on_result(outcomes[index])
            except Exception as e:
                errors[index] = e

        def run_inline(index: int) -> None:
            try:
                outcomes[index] = call(index)
            except Exception as e:
                errors[index] = e
            settle(index)

        if parallel and len(hosts) > 1:
            self._run_threaded(hosts, call, outcomes, errors, settle, run_inline)
        else:
            for index in range(len(hosts)):
                run_inline(index)

        failures = [(hosts[i], e) for i, e in enumerate(errors) if e is not None]
        if failures:
            if len(hosts) == 1:
                raise failures[0][1]
            raise HostFailuresError(failures, outcomes)
        return outcomes

    def _run_threaded(self, hosts, call, outcomes, errors, settle, run_inline) -> None:
        done: "queue.Queue[int]" = queue.Queue()

        def worker(index: int) -> None:
            try:
                outcomes[index] = call(index)
            except Exception as e:
                errors[index] = e
            finally:
                done.put(index)

        started = 0
        for index, host in enumerate(hosts):
            thread = threading.Thread(
                target=worker,
                args=(index,),
                daemon=True,
                name=f"fleetcore-{host.name}",
            )
            try:
                thread.start()
            except RuntimeError as e:
                logger.warning(
                    "Cannot start a thread for %s (%s); running remaining hosts sequentially",
                    host,
                    e,
                )
                break
            started += 1

        for _ in range(started):
            settle(done.get())

        for index in range(started, len(hosts)):
            run_inline(index)
