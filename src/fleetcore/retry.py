"""Bounded retry of dispatched commands."""

import logging
import time
from typing import Any, Callable, Optional, Union

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import RetryExhaustedError
from fleetcore.hosts import HostSpecifier
from fleetcore.models import Command, ExecutionResult, RetryPolicy

logger = logging.getLogger(__name__)


class RetryExecutor:
    """Re-dispatches a command until its exit code is acceptable.

    The first attempt is followed by up to ``max_retries + 1`` more, so a
    command that never succeeds is dispatched ``max_retries + 2`` times
    before :class:`RetryExhaustedError` is raised.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.dispatcher = dispatcher
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    def retry_on(
        self,
        specifier: HostSpecifier,
        command: Union[str, Command],
        policy: Optional[RetryPolicy] = None,
        **dispatch_options: Any,
    ) -> Union[ExecutionResult, list[ExecutionResult]]:
        """Dispatch ``command`` until it is accepted or the attempts run out.

        Args:
            specifier: A host, a list of hosts, or a role tag.
            command: A command line or a prepared :class:`Command`.
            policy: Retry bounds; defaults to the executor's default policy.
            **dispatch_options: Passed through to :meth:`Dispatcher.on`.

        Returns:
            The first accepted result (or list of results).

        Raises:
            RetryExhaustedError: With the last result, once every attempt failed.
        """
        policy = policy or self.default_policy
        dispatch_options["accept_all_exit_codes"] = True
        dispatch_options.setdefault("acceptable_exit_codes", policy.acceptable_exit_codes)

        logger.debug(
            "Trying `%s` up to %d times, %.2fs apart",
            command,
            policy.max_retries + 2,
            policy.interval_seconds,
        )

        result = self.dispatcher.on(specifier, command, **dispatch_options)
        attempts = 1
        while not self._accepted(result, policy):
            if attempts >= policy.max_retries + 2:
                logger.debug("`%s` failed after %d attempts", command, attempts)
                raise RetryExhaustedError(
                    f"Command `{command}` failed after {attempts} attempts", result, attempts
                )
            self._sleep(policy.interval_seconds)
            result = self.dispatcher.on(specifier, command, **dispatch_options)
            attempts += 1

        logger.debug("`%s` succeeded after %d attempt(s)", command, attempts)
        return result

    @staticmethod
    def _accepted(result: Union[ExecutionResult, list[ExecutionResult]], policy: RetryPolicy) -> bool:
        results = result if isinstance(result, list) else [result]
        return all(policy.accepts(r.exit_code) for r in results)
