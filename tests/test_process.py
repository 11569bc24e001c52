"""Tests for the process execution capability."""

import asyncio
import subprocess
import sys
from unittest import mock

import pytest

from citty_domains.errors import ProcessError
from citty_domains.process import ProcessResult, cli_command, get_help_output, run_process


def test_cli_command_by_suffix():
    assert cli_command("cli.js", "--help") == ["node", "cli.js", "--help"]
    assert cli_command("tool.py", "--help") == [sys.executable, "tool.py", "--help"]
    assert cli_command("/usr/bin/tool") == ["/usr/bin/tool"]


def test_output_prefers_stdout_on_success():
    assert ProcessResult(stdout="out", stderr="err", exit_code=0).output == "out"
    assert ProcessResult(stdout="out", stderr="err", exit_code=2).output == "err"
    assert ProcessResult(stdout="out", stderr="", exit_code=2).output == "out"


def test_run_process_captures_output():
    completed = subprocess.CompletedProcess(args=["tool"], returncode=0, stdout="help", stderr="")
    with mock.patch("citty_domains.process.subprocess.run", return_value=completed) as run:
        result = asyncio.run(run_process(["tool", "--help"], timeout=5))
    assert result == ProcessResult(stdout="help", stderr="", exit_code=0)
    assert run.call_args.kwargs["timeout"] == 5
    assert run.call_args.kwargs["capture_output"] is True


def test_run_process_timeout():
    with mock.patch(
        "citty_domains.process.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="tool", timeout=1),
    ):
        with pytest.raises(ProcessError, match="timeout"):
            asyncio.run(run_process(["tool"], timeout=1))


def test_run_process_missing_executable():
    with mock.patch("citty_domains.process.subprocess.run", side_effect=FileNotFoundError("tool")):
        with pytest.raises(ProcessError):
            asyncio.run(run_process(["tool"], timeout=1))


def test_get_help_output_uses_runner(make_runner):
    runner = make_runner(stdout="Commands:\n  infra server list")
    output = asyncio.run(get_help_output("cli.js", runner, timeout=3))
    assert output.startswith("Commands:")
    assert runner.calls == [["node", "cli.js", "--help"]]


def test_get_help_output_rejects_crash_output(make_runner):
    runner = make_runner(stderr="Error: Cannot find module 'commander'", exit_code=1)
    with pytest.raises(ProcessError, match="exited with code 1"):
        asyncio.run(get_help_output("cli.js", runner))


def test_get_help_output_accepts_usage_on_stderr(make_runner):
    runner = make_runner(stderr="Usage: cli <command>\nCommands:\n  infra server list", exit_code=1)
    assert asyncio.run(get_help_output("cli.js", runner)).startswith("Usage:")
