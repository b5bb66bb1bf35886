"""Tests for the command dispatcher."""

import logging
import threading
from unittest.mock import patch

import pytest

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import CommandFailure, HostFailuresError, InvalidArgumentError
from fleetcore.models import Command, ExecutionResult


@pytest.fixture
def dispatcher(hosts):
    return Dispatcher(hosts)


class TestOn:
    """Tests for Dispatcher.on."""

    def test_environment_is_passed_to_command(self, dispatcher, hosts):
        """Test that the environment the command runs within can be given."""
        dispatcher.on(hosts[0], "ls ~/.bin", environment={"HOME": "/tmp/test_home"})
        assert hosts[0].commands == ["env HOME=/tmp/test_home ls ~/.bin"]

    def test_environment_overrides_command_environment(self, dispatcher, hosts):
        """Test that an explicit environment beats the descriptor's own."""
        command = Command("commander command", environment={"HOME": "default"})
        result = dispatcher.on(hosts[0], command, environment={"HOME": "override"})
        assert result.command.environment == {"HOME": "override"}

    def test_command_environment_used_without_override(self, dispatcher, hosts):
        command = Command("commander command", environment={"HOME": "default"})
        result = dispatcher.on(hosts[0], command)
        assert result.command.environment == {"HOME": "default"}

    def test_role_string_finds_matching_hosts(self, dispatcher, hosts):
        """Test that a string is treated as a role."""
        results = dispatcher.on("master", "echo hello")
        assert [r.host for r in results] == [hosts[0]]
        assert hosts[0].commands == ["echo hello"]
        assert hosts[1].commands == []

    def test_single_host_returns_bare_result(self, dispatcher, hosts):
        """Test that a single host yields a result, not a list."""
        result = dispatcher.on(hosts[2], "hostname")
        assert isinstance(result, ExecutionResult)
        assert result.host is hosts[2]

    def test_host_list_returns_results_in_order(self, dispatcher, hosts):
        """Test that a host list yields one result per host, in order."""
        results = dispatcher.on(hosts, "hostname")
        assert isinstance(results, list)
        assert [r.host for r in results] == hosts

    def test_list_of_one_is_still_a_list(self, dispatcher, hosts):
        results = dispatcher.on([hosts[0]], "hostname")
        assert isinstance(results, list)
        assert len(results) == 1

    def test_unknown_role_returns_empty_list(self, dispatcher):
        assert dispatcher.on("nonexistent", "hostname") == []

    def test_result_exposes_output(self, make_host):
        """Test access to stdout, stderr and exit code."""
        host = make_host("web", stdout="stdout")
        result = Dispatcher([host]).on(host, "ls")
        assert result.stdout == "stdout"
        assert result.stderr == ""
        assert result.exit_code == 0

    def test_rejects_non_command(self, dispatcher, hosts):
        """Test that only strings and Commands are accepted, before any host runs."""
        with pytest.raises(InvalidArgumentError, match="called with a String or Command"):
            dispatcher.on(hosts, object())
        assert all(host.commands == [] for host in hosts)

    def test_executes_given_command_object(self, dispatcher, hosts):
        command = Command("echo face_testing")
        result = dispatcher.on(hosts[0], command)
        assert result.command == command
        assert hosts[0].commands == ["echo face_testing"]


class TestExitCodes:
    """Tests for success handling."""

    def test_failure_raises_command_failure(self, make_host):
        """Test that a failing command raises with its result attached."""
        host = make_host("web", exit_code=3)
        with pytest.raises(CommandFailure) as exc_info:
            Dispatcher([host]).on(host, "false")
        assert exc_info.value.result.exit_code == 3
        assert exc_info.value.result.host is host

    def test_accept_all_exit_codes(self, make_host):
        host = make_host("web", exit_code=3)
        result = Dispatcher([host]).on(host, "false", accept_all_exit_codes=True)
        assert result.exit_code == 3
        assert not result.success

    def test_acceptable_exit_codes(self, make_host):
        """Test that extra exit codes can count as success."""
        host = make_host("web", exit_code=1)
        result = Dispatcher([host]).on(host, "grep x f", acceptable_exit_codes=[0, 1])
        assert result.success

    @pytest.mark.parametrize("parallel", [False, True])
    def test_failure_does_not_stop_other_hosts(self, make_host, parallel):
        """Test that every host runs and all failures are reported together."""
        good1 = make_host("good1")
        bad1 = make_host("bad1", exit_code=1)
        good2 = make_host("good2")
        bad2 = make_host("bad2", exit_code=2)
        hosts = [good1, bad1, good2, bad2]

        with pytest.raises(HostFailuresError) as exc_info:
            Dispatcher(hosts).on(hosts, "check", parallel=parallel)

        error = exc_info.value
        assert error.failed_hosts == [bad1, bad2]
        assert all(isinstance(e, CommandFailure) for _, e in error.failures)
        assert error.results[0].host is good1
        assert error.results[1] is None
        assert all(host.commands == ["check"] for host in hosts)
        assert "bad1" in str(error) and "bad2" in str(error)


class TestParallel:
    """Tests for parallel fan-out."""

    def test_results_ordered_regardless_of_completion(self, make_host):
        """Test that slower hosts earlier in the list keep their slot."""
        hosts = [
            make_host("slow", delay=0.2, stdout="slow"),
            make_host("medium", delay=0.1, stdout="medium"),
            make_host("fast", stdout="fast"),
        ]
        completed = []
        results = Dispatcher(hosts).on(
            hosts, "hostname", parallel=True, callback=lambda r: completed.append(r.stdout)
        )
        assert [r.stdout for r in results] == ["slow", "medium", "fast"]
        assert completed == ["fast", "medium", "slow"]

    def test_each_host_runs_in_its_own_thread(self, hosts):
        Dispatcher(hosts).on(hosts, "hostname", parallel=True)
        names = {host.threads[0] for host in hosts}
        assert len(names) == len(hosts)
        assert threading.current_thread().name not in names

    def test_parallel_matches_sequential(self, hosts):
        """Test that both modes return the same shape and order."""
        dispatcher = Dispatcher(hosts)
        sequential = dispatcher.on(hosts, "hostname")
        parallel = dispatcher.on(hosts, "hostname", parallel=True)
        assert [r.host for r in sequential] == [r.host for r in parallel]

    def test_single_host_parallel_stays_inline(self, hosts):
        Dispatcher(hosts).on(hosts[0], "hostname", parallel=True)
        assert hosts[0].threads == [threading.current_thread().name]

    def test_degrades_when_threads_unavailable(self, hosts):
        """Test that failing to start threads falls back to sequential execution."""
        with patch("threading.Thread.start", side_effect=RuntimeError("can't start new thread")):
            results = Dispatcher(hosts).on(hosts, "hostname", parallel=True)

        assert [r.host for r in results] == hosts
        assert all(host.commands == ["hostname"] for host in hosts)
        assert all(host.threads == [threading.current_thread().name] for host in hosts)


class TestCallbacks:
    """Tests for per-host callbacks."""

    def test_callback_receives_result(self, dispatcher, hosts):
        """Test that callback gets each result."""
        seen = []
        dispatcher.on(hosts[0], "ls", callback=seen.append)
        assert len(seen) == 1
        assert isinstance(seen[0], ExecutionResult)

    def test_after_sees_ambient_result(self, make_host):
        """Test that after() runs with the current result on the dispatcher."""
        host = make_host("web", stdout="stdout")
        dispatcher = Dispatcher([host])
        seen = []
        dispatcher.on(host, "ls", after=lambda: seen.append(dispatcher.result.stdout))
        assert seen == ["stdout"]

    @pytest.mark.parametrize("parallel", [False, True])
    def test_raising_callback_does_not_stop_other_hosts(self, make_host, parallel):
        """Test that a callback error is reported for its host after every host has run."""
        hosts = [make_host("first"), make_host("second", delay=0.1), make_host("third", delay=0.2)]

        def callback(result):
            if result.host.name == "first":
                raise RuntimeError("callback broke")

        with pytest.raises(HostFailuresError) as exc_info:
            Dispatcher(hosts).on(hosts, "hostname", parallel=parallel, callback=callback)

        assert exc_info.value.failed_hosts == [hosts[0]]
        assert str(exc_info.value.failures[0][1]) == "callback broke"
        assert [len(host.commands) for host in hosts] == [1, 1, 1]
        assert exc_info.value.results[2].host is hosts[2]

    def test_raising_callback_single_host(self, make_host):
        host = make_host("web")

        def after():
            raise RuntimeError("after broke")

        with pytest.raises(RuntimeError, match="after broke"):
            Dispatcher([host]).on(host, "hostname", after=after)

    def test_callbacks_once_per_host(self, dispatcher, hosts):
        calls = []
        dispatcher.on(hosts, "ls", callback=calls.append, after=lambda: calls.append(None))
        assert len(calls) == 2 * len(hosts)


class TestLogging:
    """Tests for result logging."""

    def test_each_result_logged(self, hosts, caplog):
        """Test that every host's result is recorded on the dispatcher's logger."""
        log = logging.getLogger("test.dispatch")
        with caplog.at_level(logging.INFO, logger="test.dispatch"):
            results = Dispatcher(hosts, log=log).on(hosts, "uptime")

        assert len([r for r in caplog.records if r.name == "test.dispatch"]) == len(hosts)
        assert all(r.logger is log for r in results)

    def test_failed_result_logged_as_warning(self, make_host, caplog):
        host = make_host("web", exit_code=1)
        with caplog.at_level(logging.INFO):
            Dispatcher([host]).on(host, "false", accept_all_exit_codes=True)
        assert any(r.levelno == logging.WARNING for r in caplog.records)
