"""Domain discovery orchestrator.

Sequences discovery end to end: pull candidates from the registered sources,
turn them into domains, apply plugin extensions, validate against the live
CLI, register the survivors, and optionally persist the registry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from .builtin_plugins import builtin_plugins
from .cli_analyzer import CLIAnalyzer
from .config import DiscoveryConfig
from .config_manager import DomainConfigManager
from .errors import DomainExistsError, DomainNotFoundError, SourceError
from .loader import DomainLoader, has_domains
from .models import (
    CRUD_ACTIONS,
    CommandCheck,
    DiscoveryReport,
    DiscoveryResult,
    Domain,
    FallbackOutcome,
    ValidationResult,
    coerce_domain,
    display_name_for,
)
from .plugins import DomainPluginSystem
from .process import ProcessRunner, run_process
from .registry import RuntimeDomainRegistry
from .templates import DomainTemplates
from .validator import DomainValidator

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_PRIORITIES = {
    "cli-analysis": 10,
    "config": 8,
    "package-json": 6,
    "plugins": 4,
    "environment": 2,
}


def _observed_actions(name: str, taxonomy: DiscoveryResult) -> dict[str, list[str]]:
    observed: dict[str, dict[str, None]] = {}
    for info in taxonomy.commands.values():
        if info.domain == name and info.resource and info.action:
            observed.setdefault(info.resource, {}).setdefault(info.action, None)
    return {resource: list(actions) for resource, actions in observed.items()}


def candidate_definition(name: str, taxonomy: DiscoveryResult) -> dict[str, Any]:
    """Raw domain definition for one candidate name in a merged taxonomy.

    A source definition is used when one exists; otherwise resources are
    synthesized with the actions observed for them (CRUD when none were).
    Domain-level actions always cover every resource action.
    """
    observed = _observed_actions(name, taxonomy)

    def synthesize(resource: str) -> dict[str, Any]:
        return {
            "name": resource,
            "description": f"Resource: {resource}",
            "actions": observed.get(resource) or list(CRUD_ACTIONS),
        }

    definition = taxonomy.definitions.get(name)
    if definition:
        data = dict(definition)
        resources = [r if isinstance(r, Mapping) else synthesize(r) for r in data.get("resources") or []]
        actions = [a if isinstance(a, Mapping) else {"name": a} for a in data.get("actions") or []]
    else:
        data = {
            "description": f"Discovered domain: {name}",
            "category": "discovered",
        }
        resources, actions = [], []

    known = {resource.get("name") for resource in resources}
    resources += [synthesize(r) for r in taxonomy.resources.get(name, []) if r not in known]

    declared = {action.get("name") for action in actions}
    for resource in resources:
        for action in resource.get("actions") or []:
            if action not in declared:
                actions.append({"name": action, "description": f"Action: {action}", "category": "Discovered"})
                declared.add(action)

    return {**data, "name": name, "resources": resources, "actions": actions}


class DomainDiscoveryOrchestrator:
    """The single entry point other subsystems use for domain discovery.

    Each orchestrator owns its own registry, caches, and plugin set, so
    independent sessions never share state.
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        runner: ProcessRunner = run_process,
        **overrides: Any,
    ) -> None:
        self.config = config or DiscoveryConfig(**overrides)
        cwd = self.config.project_dir

        self.analyzer = CLIAnalyzer(timeout=self.config.timeout, runner=runner, cwd=cwd)
        self.plugin_system = DomainPluginSystem(self.config.plugin_directory)
        self.loader = DomainLoader(analyzer=self.analyzer, plugin_system=self.plugin_system)
        self.templates = DomainTemplates()
        self.registry = RuntimeDomainRegistry(self.templates)
        self.validator = DomainValidator(
            strict_validation=self.config.strict_validation,
            fallback_strategy=self.config.fallback_strategy,
            timeout=self.config.timeout,
            runner=runner,
            cwd=cwd,
        )
        self.config_manager = DomainConfigManager(self.config.config_path)

        self._register_default_sources()
        if self.config.enable_plugins:
            self._load_builtin_plugins()

    # -- Setup ------------------------------------------------------------

    def _register_default_sources(self) -> None:
        loaders = {
            "cli-analysis": self._load_cli_source,
            "config": self._load_config_source,
            "package-json": self._load_package_json_source,
            "plugins": self._load_plugin_source,
            "environment": self.loader.load_from_environment,
        }
        for name, loader in loaders.items():
            self.loader.register_source(
                name, loader, validator=has_domains, priority=DEFAULT_SOURCE_PRIORITIES[name]
            )

    def _load_builtin_plugins(self) -> None:
        for plugin in builtin_plugins():
            self.plugin_system.register_plugin(plugin)

    async def _load_cli_source(
        self,
        cli_path: Optional[str | Path] = None,
        help_output: Optional[str] = None,
        **_: Any,
    ) -> DiscoveryResult:
        path = self.config.resolve(cli_path or self.config.cli_path)
        if help_output is None and not path.exists():
            return DiscoveryResult.empty(source="cli-help")
        return await self.loader.load_from_cli(cli_path=path, help_output=help_output)

    async def _load_config_source(
        self,
        config_path: Optional[str | Path] = None,
        config: Optional[Mapping[str, Any]] = None,
        **_: Any,
    ) -> DiscoveryResult:
        if config is not None:
            return await self.loader.load_from_config(config=config)
        path = self.config.resolve(config_path or self.config.config_path)
        if not path.exists():
            return DiscoveryResult.empty(source="config")
        return await self.loader.load_from_config(config_path=path)

    async def _load_package_json_source(
        self,
        package_json_path: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        path = self.config.resolve(package_json_path or self.config.package_json_path)
        if not path.exists():
            return DiscoveryResult.empty(source="package.json")
        return await self.loader.load_from_package_json(package_json_path=path)

    async def _load_plugin_source(
        self,
        plugin_directory: Optional[str | Path] = None,
        **_: Any,
    ) -> DiscoveryResult:
        if not self.config.enable_plugins:
            return DiscoveryResult.empty(source="plugins")
        directory = self.config.resolve(plugin_directory or self.config.plugin_directory)
        return await self.loader.load_from_plugins(plugin_directory=directory)

    # -- Discovery --------------------------------------------------------

    async def discover_domains(
        self,
        sources: Optional[list[str]] = None,
        force_refresh: bool = False,
        validate: Optional[bool] = None,
        cli_path: Optional[str | Path] = None,
        overwrite: bool = False,
        persist: bool = False,
        **options: Any,
    ) -> DiscoveryReport:
        requested = sources if sources is not None else (self.config.discovery_sources or None)
        if not self.config.auto_discover and not requested:
            logger.info("Domain discovery is disabled")
            return DiscoveryReport()

        logger.info("Starting domain discovery")
        await self.plugin_system.execute_hooks("before_discovery", requested)

        taxonomy = await self.loader.load_all(
            sources=requested, force_refresh=force_refresh, cli_path=cli_path, **options
        )
        logger.info(
            "Discovered %d domains from %d sources",
            len(taxonomy.domains),
            len(taxonomy.metadata.get("sources", [])),
        )

        provenance = taxonomy.metadata.get("provenance", {})
        candidates = []
        for name in taxonomy.domains:
            await self.plugin_system.execute_hooks("before_domain_create", name, taxonomy)
            domain = coerce_domain(candidate_definition(name, taxonomy))
            domain = self.plugin_system.apply_domain_extensions(domain)
            domain.sources = list(provenance.get(name, domain.sources))
            await self.plugin_system.execute_hooks("after_domain_create", domain)
            candidates.append(domain)

        outcomes = await self._validate_candidates(candidates, validate, cli_path)

        conflicts = [o.domain.name for o in outcomes if self.registry.has_domain(o.domain.name)]
        if conflicts and not overwrite:
            raise DomainExistsError(conflicts[0])

        registered = []
        for outcome in outcomes:
            domain = outcome.domain
            source = domain.sources[0] if domain.sources else "discovery"
            await self.plugin_system.execute_hooks("before_register", domain)
            installed = self.registry.register_domain(domain, overwrite=overwrite, source=source, dynamic=False)
            await self.plugin_system.execute_hooks("after_register", installed)
            registered.append(installed)

        report = DiscoveryReport(domains=registered, taxonomy=taxonomy, outcomes=outcomes)
        if persist:
            report.persisted_to = str(await self.save_domains())

        await self.plugin_system.execute_hooks("after_discovery", report)
        logger.info("Registered %d discovered domains", len(registered))
        return report

    async def _validate_candidates(
        self,
        candidates: list[Domain],
        validate: Optional[bool],
        cli_path: Optional[str | Path],
    ) -> list[FallbackOutcome]:
        should_validate = self.config.validate_domains if validate is None else validate
        target = self.config.resolve(cli_path or self.config.cli_path)
        if not should_validate or not candidates:
            return [FallbackOutcome(domain=domain) for domain in candidates]
        if cli_path is None and not target.exists():
            logger.warning("Skipping validation, CLI not found at %s", target)
            return [FallbackOutcome(domain=domain) for domain in candidates]
        return await self.validator.validate_domains(candidates, target)

    # -- Templates --------------------------------------------------------

    async def create_domain_from_template(
        self,
        template_name: str,
        data: Mapping[str, Any],
        register: bool = True,
        overwrite: bool = False,
    ) -> Domain:
        values = dict(data)
        name = values.get("domain") or values.get("name")
        if name:
            values.setdefault("domain", name)
            values.setdefault("displayName", display_name_for(name))
            values.setdefault("description", f"{values['displayName']} domain")

        await self.plugin_system.execute_hooks("before_domain_create", name, values)
        domain = self.templates.create_domain_from_template(template_name, values)
        domain = self.plugin_system.apply_domain_extensions(domain)
        await self.plugin_system.execute_hooks("after_domain_create", domain)

        if not register:
            return domain
        return await self.register_domain(domain, overwrite=overwrite, source="template")

    async def suggest_template_for_cli(
        self,
        cli_structure: Any = None,
        cli_path: Optional[str | Path] = None,
    ) -> str:
        if cli_structure is None:
            path = self.config.resolve(cli_path or self.config.cli_path)
            cli_structure = await self.analyzer.analyze_from_cli(path)
        return self.templates.suggest_template(cli_structure)

    # -- Registry facade --------------------------------------------------

    async def register_domain(
        self,
        domain: Domain | Mapping[str, Any] | str,
        data: Optional[Mapping[str, Any]] = None,
        overwrite: bool = False,
        validate: bool = True,
        source: str = "runtime",
    ) -> Domain:
        if isinstance(domain, str):
            domain = {**(data or {}), "name": domain}
        candidate = coerce_domain(domain, validate=validate)
        if self.registry.has_domain(candidate.name) and not overwrite:
            raise DomainExistsError(candidate.name)

        await self.plugin_system.execute_hooks("before_register", candidate)
        installed = self.registry.register_domain(candidate, overwrite=overwrite, validate=validate, source=source)
        await self.plugin_system.execute_hooks("after_register", installed)
        return installed

    def register_domain_from_config(self, name: str, config: Mapping[str, Any], **options: Any) -> Domain:
        return self.registry.register_domain_from_config(name, config, **options)

    def register_domain_from_cli(self, name: str, analysis: DiscoveryResult, **options: Any) -> Domain:
        return self.registry.register_domain_from_cli(name, analysis, **options)

    def register_domain_from_scripts(self, name: str, scripts: Mapping[str, str], **options: Any) -> Domain:
        return self.registry.register_domain_from_scripts(name, scripts, **options)

    def register_domain_from_environment(
        self, name: str, environ: Optional[Mapping[str, str]] = None, **options: Any
    ) -> Domain:
        return self.registry.register_domain_from_environment(name, environ, **options)

    def register_domain_from_template(
        self, name: str, template: str | Mapping[str, Any], data: Optional[Mapping[str, Any]] = None, **options: Any
    ) -> Domain:
        return self.registry.register_domain_from_template(name, template, data, **options)

    def unregister_domain(self, name: str) -> Domain:
        return self.registry.unregister_domain(name)

    def get_domain(self, name: str) -> Optional[Domain]:
        return self.registry.get_domain(name)

    def get_all_domains(self) -> list[Domain]:
        return self.registry.get_all_domains()

    def validate_command(
        self,
        command: str,
        resource: Optional[str] = None,
        action: Optional[str] = None,
    ) -> CommandCheck:
        """Check ``"domain resource action"`` or a ``(domain, resource, action)`` triple."""
        if resource is not None and action is not None:
            command = f"{command} {resource} {action}"
        return self.registry.validate_command_string(command)

    async def validate_domain(self, name: str, cli_path: Optional[str | Path] = None) -> ValidationResult:
        domain = self.registry.get_domain(name)
        if domain is None:
            raise DomainNotFoundError(name)
        return await self.validator.validate_domain(domain, self.config.resolve(cli_path or self.config.cli_path))

    def get_taxonomy(self) -> DiscoveryResult:
        """The registry as the flat taxonomy handed to test tooling."""
        domains = self.registry.get_all_domains()
        actions: dict[str, None] = {}
        for domain in domains:
            actions.update(dict.fromkeys(domain.action_names()))
            for resource in domain.resources:
                actions.update(dict.fromkeys(resource.actions))
        commands = {info.command or f"{info.domain} {info.resource} {info.action}": info
                    for info in self.registry.iter_commands()}
        return DiscoveryResult(
            domains=[domain.name for domain in domains],
            resources={domain.name: domain.resource_names() for domain in domains},
            actions=list(actions),
            commands=commands,
            metadata=self.registry.get_stats(),
        )

    # -- Persistence ------------------------------------------------------

    def export_domains(self) -> dict[str, Any]:
        return self.registry.export_domains()

    def import_domains(self, data: Mapping[str, Any], overwrite: bool = False, validate: bool = True) -> list[str]:
        return self.registry.import_domains(data, overwrite=overwrite, validate=validate)

    async def save_domains(self, config_path: Optional[str | Path] = None) -> Path:
        """Write the registry's domains into the config document at ``config_path``."""
        path = self.config.resolve(config_path or self.config.config_path)
        document = await self.config_manager.load_config(path)
        document.domains = self.registry.export_domains()["domains"]
        return await self.config_manager.save_config(document, path)

    async def load_domains(self, config_path: Optional[str | Path] = None, overwrite: bool = False) -> list[str]:
        path = self.config.resolve(config_path or self.config.config_path)
        if not path.exists():
            raise SourceError(f"Config file not found: {path}")
        document = await self.config_manager.load_config(path)
        entries = {
            name: {**definition, "sources": definition.get("sources") or ["config"]}
            for name, definition in document.domains.items()
        }
        return self.registry.import_domains({"domains": entries}, overwrite=overwrite)

    # -- Lifecycle --------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return {
            "registry": self.registry.get_stats(),
            "plugins": self.plugin_system.get_plugin_stats(),
            "templates": len(self.templates.list_templates()),
            "sources": self.loader.get_source_names(),
            "caches": {
                "analyzer": self.analyzer.get_cache_stats()["size"],
                "loader": self.loader.get_cache_stats()["size"],
                "validator": self.validator.get_cache_stats()["size"],
                "config": self.config_manager.get_cache_stats()["size"],
            },
        }

    def clear_caches(self) -> None:
        self.analyzer.clear_cache()
        self.loader.clear_cache()
        self.validator.clear_cache()
        self.config_manager.clear_cache()

    def reset(self) -> None:
        self.registry.reset()
        self.clear_caches()
        self.plugin_system.reset()
        if self.config.enable_plugins:
            self._load_builtin_plugins()
