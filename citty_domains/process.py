"""Process execution used to introspect a live CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .errors import ProcessError

logger = logging.getLogger(__name__)

_NODE_SUFFIXES = {".js", ".mjs", ".cjs"}

HELP_SECTION_MARKERS = ("commands:", "usage:")


def has_help_section(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in HELP_SECTION_MARKERS)


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def output(self) -> str:
        """Stdout on success, otherwise stderr (falling back to stdout)."""
        if self.exit_code == 0:
            return self.stdout
        return self.stderr or self.stdout


ProcessRunner = Callable[..., Awaitable[ProcessResult]]


def cli_command(cli_path: str | Path, *args: str) -> list[str]:
    """Build the argv that runs ``cli_path`` with ``args``."""
    path = Path(cli_path)
    suffix = path.suffix.lower()
    if suffix in _NODE_SUFFIXES:
        return ["node", str(path), *args]
    if suffix == ".py":
        return [sys.executable, str(path), *args]
    return [str(path), *args]


async def run_process(
    args: list[str],
    timeout: float,
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
) -> ProcessResult:
    """Run a child process off the event loop and capture its output.

    ``subprocess.run`` kills the child when the timeout expires, so nothing
    outlives the call on either path.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _run_sync, args, timeout, cwd, env)


def _run_sync(
    args: list[str],
    timeout: float,
    cwd: Optional[Path],
    env: Optional[dict[str, str]],
) -> ProcessResult:
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **env} if env else None,
        )
    except subprocess.TimeoutExpired as exc:
        raise ProcessError(f"CLI analysis timeout after {timeout:g}s: {' '.join(args)}") from exc
    except OSError as exc:
        raise ProcessError(f"Failed to run {args[0]}: {exc}") from exc

    logger.debug("%s exited with code %d", " ".join(args), result.returncode)
    return ProcessResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)


async def get_help_output(
    cli_path: str | Path,
    runner: ProcessRunner = run_process,
    timeout: float = 10.0,
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
) -> str:
    """Run ``<cli> --help`` and return whichever stream carries the usage text.

    A nonzero exit is only accepted when the output still has a usage or
    commands section; otherwise it raises ``ProcessError``.
    """
    args = cli_command(cli_path, "--help")
    result = await runner(args, timeout, cwd=cwd, env=env)
    output = result.output
    if result.exit_code != 0 and not has_help_section(output):
        raise ProcessError(f"{' '.join(args)} exited with code {result.exit_code} and no help output")
    return output
