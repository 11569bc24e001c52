"""CLI structure analyzer.

Turns ``--help`` text, a manifest's script table, or a config document into
a normalized ``DiscoveryResult`` candidate.

Help text is read line by line:

1. Lines before the first ``commands:``/``usage:`` header are ignored (when
   the text has no header at all, every line is considered).
2. Blank lines and ``-``/``=`` separator lines are skipped.
3. ``domain resource action`` (three words) is tried first.
4. Two words: if the second is a known action verb the first is a resource
   under the synthetic ``default`` domain, otherwise ``domain resource``.
5. A single word is recorded as a domain.

The 3 → 2 → 1 order decides how ambiguous two-word lines are read and must
not be rearranged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from .errors import ProcessError
from .files import read_json
from .models import CommandInfo, DiscoveryResult, utc_now
from .process import HELP_SECTION_MARKERS, ProcessRunner, get_help_output, run_process

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "default"

ACTION_VERBS = frozenset({
    "create", "add", "new", "make", "build",
    "list", "show", "get", "find", "search",
    "update", "edit", "modify", "change",
    "delete", "remove", "destroy", "kill",
    "start", "stop", "restart", "run",
    "deploy", "publish", "release",
    "test", "check", "validate", "verify",
    "backup", "restore", "sync",
    "configure", "setup", "init",
})

_THREE_TOKENS = re.compile(r"^\s*(\w+)\s+(\w+)\s+(\w+)")
_TWO_TOKENS = re.compile(r"^\s*(\w+)\s+(\w+)")
_ONE_TOKEN = re.compile(r"^\s*(\w+)")
_DESCRIPTION = re.compile(r"\s{2,}(.+)$|-\s*(.+)$")

Triple = tuple[Optional[str], Optional[str], Optional[str]]


def is_likely_action(word: str) -> bool:
    return word.lower() in ACTION_VERBS


def extract_description(line: str) -> str:
    """Free text after two or more spaces, or after a dash."""
    match = _DESCRIPTION.search(line)
    if not match:
        return ""
    return (match.group(1) or match.group(2)).strip()


def parse_command_line(line: str) -> Optional[Triple]:
    """Classify one help line as ``(domain, resource, action)``."""
    match = _THREE_TOKENS.match(line)
    if match:
        return match.group(1), match.group(2), match.group(3)

    match = _TWO_TOKENS.match(line)
    if match:
        first, second = match.groups()
        if is_likely_action(second):
            return DEFAULT_DOMAIN, first, second
        return first, second, None

    match = _ONE_TOKEN.match(line)
    if match:
        return match.group(1), None, None
    return None


def parse_script_name(script_name: str) -> Triple:
    """Split ``domain[:resource[:action]]`` into its parts."""
    parts = script_name.split(":")
    domain = parts[0]
    resource = parts[1] if len(parts) >= 2 and parts[1] else None
    action = parts[2] if len(parts) >= 3 and parts[2] else None
    return domain, resource, action


class TaxonomyAccumulator:
    """Ordered sets for building a candidate before normalization."""

    def __init__(self) -> None:
        self.domains: dict[str, None] = {}
        self.resources: dict[str, dict[str, None]] = {}
        self.actions: dict[str, None] = {}
        self.commands: dict[str, CommandInfo] = {}
        self.definitions: dict[str, dict[str, Any]] = {}
        self.metadata: dict[str, Any] = {}

    def add(self, domain: Optional[str], resource: Optional[str] = None, action: Optional[str] = None) -> None:
        if domain:
            self.domains.setdefault(domain, None)
            if resource:
                self.resources.setdefault(domain, {}).setdefault(resource, None)
        if action:
            self.actions.setdefault(action, None)

    def merge(self, result: DiscoveryResult) -> None:
        for domain in result.domains:
            self.domains.setdefault(domain, None)
        for domain, names in result.resources.items():
            bucket = self.resources.setdefault(domain, {})
            for name in names:
                bucket.setdefault(name, None)
        for action in result.actions:
            self.actions.setdefault(action, None)
        self.commands.update(result.commands)
        for name, definition in result.definitions.items():
            self.definitions.setdefault(name, definition)
        self.metadata.update(result.metadata)

    def build(self, **metadata: Any) -> DiscoveryResult:
        return DiscoveryResult(
            domains=list(self.domains),
            resources={domain: list(names) for domain, names in self.resources.items()},
            actions=list(self.actions),
            commands=dict(self.commands),
            definitions=dict(self.definitions),
            metadata={**self.metadata, **metadata},
        )


def parse_help_output(output: str) -> DiscoveryResult:
    """Extract the domain/resource/action structure from ``--help`` text."""
    lines = output.splitlines()
    has_header = any(marker in line.lower() for line in lines for marker in HELP_SECTION_MARKERS)
    in_commands_section = not has_header
    acc = TaxonomyAccumulator()

    for line in lines:
        trimmed = line.strip()
        lowered = trimmed.lower()
        if any(marker in lowered for marker in HELP_SECTION_MARKERS):
            in_commands_section = True
            continue
        if not in_commands_section:
            continue
        if not trimmed or trimmed.startswith(("-", "=")):
            continue

        parsed = parse_command_line(trimmed)
        if parsed is None:
            continue
        domain, resource, action = parsed
        acc.add(domain, resource, action)
        if resource and action and _THREE_TOKENS.match(trimmed):
            acc.commands[f"{domain} {resource} {action}"] = CommandInfo(
                domain=domain,
                resource=resource,
                action=action,
                description=extract_description(trimmed),
            )

    return acc.build()


def analyze_scripts(scripts: Mapping[str, str]) -> DiscoveryResult:
    """Read a manifest's script table using the ``domain:resource:action`` convention."""
    acc = TaxonomyAccumulator()
    for script_name, script_command in scripts.items():
        domain, resource, action = parse_script_name(script_name)
        if not domain:
            continue
        acc.add(domain, resource, action)
        acc.commands[script_name] = CommandInfo(
            domain=domain,
            resource=resource,
            action=action,
            command=script_command,
            type="script",
        )
    return acc.build(source="package.json", scripts_count=len(scripts))


def analyze_config_document(config: Mapping[str, Any], config_path: Optional[str] = None) -> DiscoveryResult:
    """Read domain and resource names straight from a ``domains`` map."""
    acc = TaxonomyAccumulator()
    domains = config.get("domains") or {}
    for name, definition in domains.items():
        acc.add(name)
        definition = definition or {}
        for resource in definition.get("resources") or []:
            resource_name = resource.get("name") if isinstance(resource, Mapping) else resource
            if resource_name:
                acc.add(name, resource_name)
        acc.definitions[name] = {"name": name, **definition}
    for action in config.get("actions") or []:
        acc.add(None, None, action)
    for key, command in (config.get("commands") or {}).items():
        acc.commands[key] = CommandInfo.model_validate(command)
    return acc.build(source="config", config_path=config_path)


class CLIAnalyzer:
    """Analyzes a CLI from its help output, manifest scripts, and config files.

    ``analyze`` never raises: a source that fails is logged and contributes
    an empty candidate.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        runner: ProcessRunner = run_process,
        cwd: Optional[Path] = None,
    ) -> None:
        self.timeout = timeout
        self.runner = runner
        self.cwd = cwd
        self._cache: dict[tuple, DiscoveryResult] = {}

    async def analyze(
        self,
        cli_path: Optional[str | Path] = None,
        help_output: Optional[str] = None,
        package_json_path: Optional[str | Path] = None,
        config_path: Optional[str | Path] = None,
        scripts: Optional[Mapping[str, str]] = None,
        env: Optional[dict[str, str]] = None,
    ) -> DiscoveryResult:
        acc = TaxonomyAccumulator()

        if cli_path or help_output:
            acc.merge(await self.analyze_from_cli(cli_path, help_output, env=env))
        if scripts is not None:
            acc.merge(analyze_scripts(scripts))
        if package_json_path:
            acc.merge(await self.analyze_from_package_json(package_json_path))
        if config_path:
            acc.merge(await self.analyze_from_config(config_path))

        return acc.build(
            analyzed_at=utc_now(),
            total_domains=len(acc.domains),
            total_commands=len(acc.commands),
        )

    async def analyze_from_cli(
        self,
        cli_path: Optional[str | Path] = None,
        help_output: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
    ) -> DiscoveryResult:
        cache_key = ("cli", str(cli_path) if cli_path else None, help_output)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("CLI analysis cache hit for %s", cli_path)
            return cached

        output = help_output
        if output is None and cli_path:
            try:
                output = await get_help_output(
                    cli_path, self.runner, timeout=self.timeout, cwd=self.cwd, env=env
                )
            except ProcessError as exc:
                logger.warning("Failed to analyze CLI at %s: %s", cli_path, exc)
                return DiscoveryResult.empty()

        if not output:
            return DiscoveryResult.empty()

        analysis = parse_help_output(output)
        analysis.metadata.update({"source": "cli-help", "cli_path": str(cli_path) if cli_path else None})
        self._cache[cache_key] = analysis
        return analysis

    async def analyze_from_package_json(self, package_json_path: str | Path) -> DiscoveryResult:
        try:
            manifest = await read_json(Path(package_json_path))
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Failed to analyze package.json at %s: %s", package_json_path, exc)
            return DiscoveryResult.empty()
        return analyze_scripts(manifest.get("scripts") or {})

    async def analyze_from_config(self, config_path: str | Path) -> DiscoveryResult:
        path = Path(config_path)
        if not path.exists():
            return DiscoveryResult.empty()
        try:
            config = await read_json(path)
            return analyze_config_document(config, str(path))
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Failed to analyze config at %s: %s", config_path, exc)
            return DiscoveryResult.empty()

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict:
        return {"size": len(self._cache), "keys": [":".join(str(p) for p in key) for key in self._cache]}
