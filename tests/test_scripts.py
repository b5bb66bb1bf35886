"""Tests for uploading and running local scripts."""

import shlex
import time

import pytest

from fleetcore.dispatcher import Dispatcher
from fleetcore.errors import CommandFailure, HostFailuresError, LocalFileNotFoundError
from fleetcore.resources import ResourceManager
from fleetcore.scripts import ScriptRunner
from fleetcore.transfer import TransferManager


def runner_for(*hosts):
    dispatcher = Dispatcher(hosts)
    return ScriptRunner(dispatcher, TransferManager(dispatcher), ResourceManager(dispatcher))


class TestRunScriptOn:
    """Tests for run_script_on."""

    def test_uploads_then_executes(self, make_host, local_script):
        """Test that the script lands in a fresh tmpdir and runs from there."""
        host = make_host("web", stdout="enterprisy\n")
        result = runner_for(host).run_script_on(host, local_script)

        remote_script = host.uploads[0][2]
        assert remote_script.startswith("/tmp/fleetcore.web")
        assert remote_script.endswith("/make-enterprisy.sh")
        assert host.commands[-2:] == [f"chmod +x {remote_script}", remote_script]
        assert result.stdout == "enterprisy\n"
        assert result.command.command == remote_script

    def test_missing_script(self, hosts):
        with pytest.raises(LocalFileNotFoundError):
            runner_for(*hosts).run_script_on(hosts, "/no/such/script.sh")
        assert all(host.commands == [] for host in hosts)

    def test_every_upload_before_any_execution(self, hosts, local_script):
        """Test that nothing runs until the script is on every host."""
        order = []
        for host in hosts:
            original = host._put

            def put(local_path, remote_path, host=host, original=original):
                order.append(("upload", host.name))
                original(local_path, remote_path)

            host._put = put

        results = runner_for(*hosts).run_script_on(
            hosts, local_script, callback=lambda r: order.append(("run", r.host.name))
        )

        assert len(results) == len(hosts)
        uploads = [i for i, (kind, _) in enumerate(order) if kind == "upload"]
        runs = [i for i, (kind, _) in enumerate(order) if kind == "run"]
        assert max(uploads) < min(runs)

    def test_upload_failure_runs_nothing(self, make_host, local_script):
        """Test that a failed upload on one host stops execution everywhere."""
        good = make_host("good")
        bad = make_host("bad")
        bad.missing_dirs.add("/tmp/fleetcore.bad1")

        with pytest.raises(HostFailuresError) as exc_info:
            runner_for(good, bad).run_script_on([good, bad], local_script)

        assert exc_info.value.failed_hosts == [bad]
        assert not any(c.endswith("make-enterprisy.sh") and not c.startswith("chmod") for c in good.commands)

    def test_failing_script_raises(self, make_host, local_script):
        host = make_host("web", exit_code=4)
        with pytest.raises(CommandFailure) as exc_info:
            runner_for(host).run_script_on(host, local_script)
        assert exc_info.value.result.exit_code == 4

    def test_accept_all_exit_codes(self, make_host, local_script):
        host = make_host("web", exit_code=4)
        result = runner_for(host).run_script_on(host, local_script, accept_all_exit_codes=True)
        assert result.exit_code == 4

    def test_environment_passed(self, make_host, local_script):
        host = make_host("web")
        runner_for(host).run_script_on(host, local_script, environment={"DEBUG": "1"})
        assert host.commands[-1].startswith("env DEBUG=1 /tmp/fleetcore.web")

    def test_role_in_parallel(self, hosts, local_script):
        results = runner_for(*hosts).run_script_on("agent", local_script, parallel=True)
        assert [r.host for r in results] == hosts

    def test_after_sees_own_result_in_parallel(self, make_host, local_script):
        """Test that a slower host finishing mid-callback does not replace the ambient result."""
        fast = make_host("fast")
        slow = make_host("slow", delay=0.1)
        runner = runner_for(fast, slow)
        seen = []

        def after():
            time.sleep(0.3)
            seen.append(runner.dispatcher.result.host.name)

        runner.run_script_on([fast, slow], local_script, parallel=True, after=after)

        assert seen == ["fast", "slow"]

    def test_repeated_host_runs_each_upload(self, make_host, local_script):
        """Test that a host listed twice runs each of its own uploads."""
        host = make_host("web")
        results = runner_for(host).run_script_on([host, host], local_script)

        uploaded = [remote for _, _, remote in host.uploads]
        assert len(set(uploaded)) == 2
        assert [r.command.command for r in results] == uploaded

    def test_script_name_with_spaces(self, make_host, tmp_path):
        """Test that the uploaded path is quoted on the command line."""
        script = tmp_path / "make enterprisy.sh"
        script.write_text("#!/bin/sh\necho enterprisy\n")
        host = make_host("web")

        result = runner_for(host).run_script_on(host, str(script))

        remote_script = host.uploads[0][2]
        assert remote_script.endswith("/make enterprisy.sh")
        assert host.commands[-1] == shlex.quote(remote_script)
        assert result.command.cmd_line() == shlex.quote(remote_script)
