"""Shared fixtures: a fake process runner so no test spawns a real CLI."""

import pytest

from citty_domains.process import ProcessResult


class FakeRunner:
    """Async stand-in for ``run_process`` that records every call."""

    def __init__(self, stdout="", stderr="", exit_code=0, error=None):
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.error = error
        self.calls = []

    async def __call__(self, args, timeout, cwd=None, env=None):
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        return ProcessResult(stdout=self.stdout, stderr=self.stderr, exit_code=self.exit_code)


@pytest.fixture
def make_runner():
    return FakeRunner


HELP_TEXT = """Usage: cli <command> [options]

Commands:
  infra server create    Create a new server
  infra server list      List servers
  infra network list     List networks
  dev project create - Create a project
"""


@pytest.fixture
def help_text():
    return HELP_TEXT
