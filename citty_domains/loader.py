"""Multi-source domain loading with priority ordering and fault isolation."""

from __future__ import annotations

import inspect
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from .cli_analyzer import CLIAnalyzer, TaxonomyAccumulator, analyze_config_document, analyze_scripts
from .errors import SourceError
from .files import find_files, read_config, read_json
from .models import CommandInfo, DiscoveryResult, utc_now

if TYPE_CHECKING:
    from .plugins import DomainPluginSystem

logger = logging.getLogger(__name__)

SourceLoader = Callable[..., Union[DiscoveryResult, Awaitable[DiscoveryResult]]]
SourcePredicate = Callable[[DiscoveryResult], bool]

ENV_PREFIX = "CITTY_DOMAIN_"

# Environment key suffix -> domain field. Anything else is part of the name.
_ENV_FIELDS = {
    "DISPLAY_NAME": "displayName",
    "DISPLAYNAME": "displayName",
    "DESCRIPTION": "description",
    "CATEGORY": "category",
    "COMPLIANCE": "compliance",
    "GOVERNANCE": "governance",
    "RESOURCES": "resources",
    "ACTIONS": "actions",
}


@dataclass
class SourceConfig:
    name: str
    loader: SourceLoader
    validator: Optional[SourcePredicate] = None
    priority: int = 0
    enabled: bool = True


def has_domains(result: DiscoveryResult) -> bool:
    return bool(result.domains)


def _parse_env_value(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def _split_env_key(suffix: str) -> tuple[str, Optional[str]]:
    for env_key, field in _ENV_FIELDS.items():
        marker = "_" + env_key
        if suffix.endswith(marker) and len(suffix) > len(marker):
            return suffix[: -len(marker)], field
    return suffix, None


def domains_from_environment(
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, dict[str, Any]]:
    """Collect domain definitions from ``CITTY_DOMAIN_<NAME>[_<KEY>]`` variables.

    A bare ``<NAME>`` variable holding a JSON object is a whole definition;
    any other bare value declares an empty domain. ``<KEY>`` variables set a
    single field, JSON-decoded when possible. Comma-separated strings are
    accepted for list fields.
    """
    environ = os.environ if environ is None else environ
    definitions: dict[str, dict[str, Any]] = {}

    for key in sorted(environ):
        if not key.startswith(prefix) or len(key) == len(prefix):
            continue
        raw_name, field = _split_env_key(key[len(prefix):])
        name = raw_name.lower()
        definition = definitions.setdefault(name, {"name": name, "resources": [], "actions": []})
        value = _parse_env_value(environ[key])

        if field is None:
            if isinstance(value, Mapping):
                definition.update(value)
                definition["name"] = name
            continue

        if field in ("resources", "actions", "compliance", "governance") and isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        definition[field] = value

    return definitions


def result_from_definitions(definitions: Mapping[str, Mapping[str, Any]], **metadata: Any) -> DiscoveryResult:
    """Turn full domain definitions into a candidate that keeps the definitions."""
    acc = TaxonomyAccumulator()
    for name, definition in definitions.items():
        acc.add(name)
        for resource in definition.get("resources") or []:
            resource_name = resource.get("name") if isinstance(resource, Mapping) else resource
            if not resource_name:
                continue
            acc.add(name, resource_name)
            actions = resource.get("actions") if isinstance(resource, Mapping) else None
            for action in actions or []:
                acc.add(None, None, action)
                acc.commands[f"{name} {resource_name} {action}"] = CommandInfo(
                    domain=name, resource=resource_name, action=action
                )
        for action in definition.get("actions") or []:
            action_name = action.get("name") if isinstance(action, Mapping) else action
            if action_name:
                acc.add(None, None, action_name)
        acc.definitions[name] = {**definition, "name": name}
    return acc.build(domain_count=len(definitions), **metadata)


class DomainLoader:
    """Registry of named discovery sources merged into one candidate.

    Sources run one after another in descending priority. A source that
    raises is recorded in ``metadata.errors`` and the batch continues.
    """

    def __init__(
        self,
        analyzer: Optional[CLIAnalyzer] = None,
        plugin_system: Optional["DomainPluginSystem"] = None,
        sources: Optional[list[str]] = None,
        cache_enabled: bool = True,
    ) -> None:
        self.analyzer = analyzer or CLIAnalyzer()
        self.plugin_system = plugin_system
        self.default_sources = list(sources or [])
        self.cache_enabled = cache_enabled
        self._sources: dict[str, SourceConfig] = {}
        self._cache: dict[tuple[tuple[str, ...], tuple[tuple[str, str], ...]], DiscoveryResult] = {}

    # -- Source registry --------------------------------------------------

    def register_source(
        self,
        name: str,
        loader: SourceLoader,
        validator: Optional[SourcePredicate] = None,
        priority: int = 0,
        enabled: bool = True,
    ) -> SourceConfig:
        source = SourceConfig(name=name, loader=loader, validator=validator, priority=priority, enabled=enabled)
        self._sources[name] = source
        return source

    def unregister_source(self, name: str) -> bool:
        return self._sources.pop(name, None) is not None

    def set_source_enabled(self, name: str, enabled: bool) -> None:
        if name not in self._sources:
            raise SourceError(f"Source {name} not found")
        self._sources[name].enabled = enabled

    def get_source_names(self) -> list[str]:
        return list(self._sources)

    def get_sorted_sources(self, names: Optional[list[str]] = None) -> list[SourceConfig]:
        """Enabled sources from ``names`` by descending priority, ties in registration order."""
        if names is None:
            names = self.default_sources or list(self._sources)
        registration_order = {name: index for index, name in enumerate(self._sources)}
        selected = []
        for name in dict.fromkeys(names):
            source = self._sources.get(name)
            if source is None:
                logger.warning("Skipping unknown discovery source '%s'", name)
                continue
            if source.enabled:
                selected.append(source)
        return sorted(selected, key=lambda s: (-s.priority, registration_order[s.name]))

    # -- Loading ----------------------------------------------------------

    async def load_from_source(self, name: str, **options: Any) -> DiscoveryResult:
        source = self._sources.get(name)
        if source is None or not source.enabled:
            raise SourceError(f"Source {name} not found or disabled")
        result = source.loader(**options)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Mapping):
            result = DiscoveryResult.model_validate(result)
        if not isinstance(result, DiscoveryResult):
            raise SourceError(f"Source {name} returned {type(result).__name__}, expected a discovery result")
        return result

    async def load_all(
        self,
        sources: Optional[list[str]] = None,
        force_refresh: bool = False,
        **options: Any,
    ) -> DiscoveryResult:
        """Merge every enabled source into one candidate.

        Results are cached per requested source list and option values;
        ``force_refresh`` bypasses the cache.
        """
        ordered = self.get_sorted_sources(sources)
        names = tuple(sources if sources is not None else self.default_sources or self._sources)
        cache_key = (names, tuple(sorted((key, repr(value)) for key, value in options.items())))
        if self.cache_enabled and not force_refresh and cache_key in self._cache:
            logger.debug("Loader cache hit for %s", ",".join(names))
            return self._cache[cache_key]

        acc = TaxonomyAccumulator()
        source_log: list[dict[str, Any]] = []
        errors: list[dict[str, str]] = []
        provenance: dict[str, list[str]] = {}

        for source in ordered:
            try:
                result = await self.load_from_source(source.name, **options)
                if source.validator is not None and not source.validator(result):
                    source_log.append({"name": source.name, "success": False, "reason": "rejected by validator"})
                    continue
                acc.merge(result)
            except Exception as exc:
                logger.warning("Failed to load from source %s: %s", source.name, exc)
                errors.append({"source": source.name, "error": str(exc)})
                continue

            for domain in result.domains:
                provenance.setdefault(domain, []).append(source.name)
            source_log.append({"name": source.name, "success": True, "domains_count": len(result.domains)})

        final = acc.build()
        # Per-source metadata from the merge is replaced by the batch summary.
        final.metadata = {
            "sources": source_log,
            "errors": errors,
            "provenance": provenance,
            "loaded_at": utc_now(),
            "total_domains": len(final.domains),
            "total_resources": sum(len(resources) for resources in final.resources.values()),
            "total_actions": len(final.actions),
            "total_commands": len(final.commands),
        }

        if self.cache_enabled:
            self._cache[cache_key] = final
        return final

    # -- Built-in loaders -------------------------------------------------

    async def load_from_cli(
        self,
        cli_path: Optional[str | Path] = None,
        help_output: Optional[str] = None,
        package_json_path: Optional[str | Path] = None,
        config_path: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        return await self.analyzer.analyze(
            cli_path=cli_path,
            help_output=help_output,
            package_json_path=package_json_path,
            config_path=config_path,
        )

    async def load_from_config(
        self,
        config: Optional[Mapping[str, Any]] = None,
        config_path: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        if config is None:
            if not config_path:
                raise SourceError("Config path or config object required")
            path = Path(config_path)
            if not path.exists():
                raise SourceError(f"Config file not found: {path}")
            config = await read_config(path)
        return analyze_config_document(config, str(config_path) if config_path else None)

    async def load_from_directory(
        self,
        directory: Optional[str | Path] = None,
        pattern: str = "*.domain.json",
        recursive: bool = True,
        **_: Any,
    ) -> DiscoveryResult:
        if not directory or not Path(directory).is_dir():
            raise SourceError(f"Directory not found: {directory}")

        definitions: dict[str, dict[str, Any]] = {}
        for path in find_files(Path(directory), pattern, recursive):
            try:
                definition = await read_json(path)
            except (OSError, ValueError) as exc:
                logger.warning("Failed to load domain file %s: %s", path, exc)
                continue
            if not isinstance(definition, Mapping) or not definition.get("name"):
                logger.warning("Domain file %s has no domain name, skipping", path)
                continue
            definitions[definition["name"]] = dict(definition)
        return result_from_definitions(definitions, source="directory", directory=str(directory))

    async def load_from_package_json(
        self,
        package_json_path: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        path = Path(package_json_path or "package.json")
        if not path.exists():
            raise SourceError(f"Package.json not found: {path}")
        manifest = await read_json(path)
        scripts = manifest.get("scripts") if isinstance(manifest, Mapping) else None
        return analyze_scripts(scripts if isinstance(scripts, Mapping) else {})

    async def load_from_environment(
        self,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = ENV_PREFIX,
        **_: Any,
    ) -> DiscoveryResult:
        return result_from_definitions(domains_from_environment(environ, prefix), source="environment")

    async def load_from_plugins(
        self,
        plugin_directory: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        if self.plugin_system is None:
            return DiscoveryResult.empty(source="plugins")
        if plugin_directory and Path(plugin_directory).is_dir():
            await self.plugin_system.load_plugins_from_directory(plugin_directory)
        return result_from_definitions(self.plugin_system.contributed_domains(), source="plugins")

    # -- Cache ------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict[str, Any]:
        return {"size": len(self._cache), "keys": [",".join(names) for names, _ in self._cache]}
