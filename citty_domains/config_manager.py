"""Persistence of the domain taxonomy and discovery policy to a JSON config file."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import DomainExistsError, DomainNotFoundError
from .files import read_config, write_json
from .models import FallbackStrategy, ValidationResult
from .templates import resolve_placeholders

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("citty-test-config.json")

_UNSUPPORTED_SUFFIXES = {".yaml", ".yml", ".js", ".mjs", ".cjs"}


class DiscoverySettings(BaseModel):
    enabled: bool = True
    sources: list[str] = Field(default_factory=list)
    cli_path: Optional[str] = Field(default=None, alias="cliPath")
    package_json_path: Optional[str] = Field(default=None, alias="packageJsonPath")

    model_config = {"populate_by_name": True, "extra": "allow"}


class ValidationSettings(BaseModel):
    strict: bool = False
    auto_create: bool = Field(default=True, alias="autoCreate")
    fallback_strategy: str = Field(default=FallbackStrategy.GENERIC.value, alias="fallbackStrategy")
    validate_against_cli: bool = Field(default=True, alias="validateAgainstCLI")

    model_config = {"populate_by_name": True, "extra": "allow"}


class PluginSettings(BaseModel):
    enabled: bool = True
    directory: str = "./plugins"
    pattern: str = "*.plugin.json"
    auto_load: bool = Field(default=True, alias="autoLoad")

    model_config = {"populate_by_name": True, "extra": "allow"}


class DomainConfigDocument(BaseModel):
    """Top-level config document. Unknown top-level keys are kept as-is."""

    domains: dict[str, dict[str, Any]] = Field(default_factory=dict)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    testing: dict[str, Any] = Field(default_factory=dict)
    plugins: PluginSettings = Field(default_factory=PluginSettings)

    model_config = {"populate_by_name": True, "extra": "allow"}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Built-in documents
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "domains": {
        "infra": {
            "displayName": "Infrastructure",
            "description": "Infrastructure and operations management",
            "category": "operations",
            "compliance": ["SOC2", "ISO27001"],
            "governance": ["RBAC", "Audit"],
            "resources": [
                {
                    "name": "server",
                    "displayName": "Server",
                    "description": "Compute server instances",
                    "actions": ["create", "list", "show", "update", "delete", "restart", "scale"],
                    "attributes": ["type", "region", "size", "status", "created"],
                    "relationships": ["network", "storage", "monitoring"],
                },
                {
                    "name": "network",
                    "displayName": "Network",
                    "description": "Network infrastructure",
                    "actions": ["create", "list", "show", "update", "delete", "configure"],
                    "attributes": ["cidr", "region", "status", "created"],
                    "relationships": ["server", "security"],
                },
            ],
            "actions": [
                {
                    "name": "create",
                    "description": "Create new resource",
                    "category": "CRUD",
                    "requires": ["name", "type"],
                    "optional": ["region", "size", "config"],
                },
                {
                    "name": "list",
                    "description": "List resources",
                    "category": "CRUD",
                    "requires": [],
                    "optional": ["filter", "format"],
                },
            ],
        },
        "dev": {
            "displayName": "Development",
            "description": "Development and testing operations",
            "category": "development",
            "compliance": ["SOC2"],
            "governance": ["RBAC"],
            "resources": [
                {
                    "name": "project",
                    "displayName": "Project",
                    "description": "Development projects",
                    "actions": ["create", "list", "show", "update", "delete", "deploy"],
                    "attributes": ["name", "type", "status", "created", "updated"],
                    "relationships": ["app", "test", "scenario"],
                },
            ],
            "actions": [
                {
                    "name": "create",
                    "description": "Create new resource",
                    "category": "CRUD",
                    "requires": ["name"],
                    "optional": ["type", "config"],
                },
            ],
        },
    },
    "discovery": {
        "enabled": True,
        "sources": ["cli-help", "package-scripts", "config-files"],
        "cliPath": "./cli.js",
        "packageJsonPath": "./package.json",
    },
    "validation": {
        "strict": False,
        "autoCreate": True,
        "fallbackStrategy": "generic",
        "validateAgainstCLI": True,
    },
    "testing": {
        "defaultTimeout": 30000,
        "enableContext": True,
        "enableAudit": True,
        "enablePerformance": True,
        "enableCompliance": True,
    },
    "plugins": {
        "enabled": True,
        "directory": "./plugins",
        "pattern": "*.plugin.json",
        "autoLoad": True,
    },
}

CONFIG_TEMPLATES: dict[str, dict[str, Any]] = {
    "minimal": {
        "domains": {},
        "discovery": {"enabled": True, "sources": ["cli-help"]},
        "validation": {"strict": False, "autoCreate": True},
        "testing": {"defaultTimeout": 30000},
    },
    "enterprise": {
        "domains": {
            "infra": {
                "displayName": "Infrastructure",
                "category": "operations",
                "compliance": ["SOC2", "ISO27001"],
                "governance": ["RBAC", "Audit"],
                "resources": [
                    {
                        "name": "server",
                        "actions": ["create", "list", "show", "update", "delete"],
                        "attributes": ["type", "region", "size", "status"],
                    },
                ],
            },
        },
        "discovery": {"enabled": True, "sources": ["cli-help", "package-scripts", "config-files"]},
        "validation": {
            "strict": True,
            "autoCreate": False,
            "fallbackStrategy": "error",
            "validateAgainstCLI": True,
        },
        "testing": {
            "defaultTimeout": 60000,
            "enableContext": True,
            "enableAudit": True,
            "enablePerformance": True,
            "enableCompliance": True,
        },
        "plugins": {"enabled": True, "autoLoad": True},
    },
    "development": {
        "domains": {
            "dev": {
                "displayName": "Development",
                "category": "development",
                "resources": [
                    {
                        "name": "project",
                        "actions": ["create", "list", "show", "update", "delete"],
                        "attributes": ["name", "type", "status"],
                    },
                ],
            },
        },
        "discovery": {"enabled": True, "sources": ["package-scripts"]},
        "validation": {"strict": False, "autoCreate": True, "fallbackStrategy": "generic"},
        "testing": {"defaultTimeout": 30000, "enableContext": True},
    },
}


def default_config() -> DomainConfigDocument:
    return DomainConfigDocument.model_validate(copy.deepcopy(DEFAULT_CONFIG))


def validate_config(config: DomainConfigDocument | Mapping[str, Any]) -> ValidationResult:
    """Report structural problems in a config document without raising."""
    data = config.to_dict() if isinstance(config, DomainConfigDocument) else dict(config)
    errors: list[str] = []
    warnings: list[str] = []

    for key, domain in (data.get("domains") or {}).items():
        if not isinstance(domain, Mapping):
            errors.append(f"Domain '{key}' must be an object")
            continue
        if domain.get("name") and domain["name"] != key:
            warnings.append(f"Domain '{key}' declares a different name '{domain['name']}'")
        for index, resource in enumerate(domain.get("resources") or []):
            if not isinstance(resource, Mapping) or not resource.get("name"):
                errors.append(f"Domain '{key}' resource at index {index} missing name")
                continue
            if not isinstance(resource.get("actions"), list):
                errors.append(f"Domain '{key}' resource '{resource['name']}' missing actions array")

    discovery = data.get("discovery") or {}
    if "sources" in discovery and not isinstance(discovery["sources"], list):
        errors.append("Discovery sources must be an array")

    strategy = (data.get("validation") or {}).get("fallbackStrategy")
    if strategy and strategy not in {s.value for s in FallbackStrategy}:
        errors.append(f"Invalid fallback strategy: {strategy}")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


class DomainConfigManager:
    """Loads, caches, and atomically saves domain config documents."""

    def __init__(self, config_path: Path | str = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = Path(config_path)
        self._cache: dict[Path, DomainConfigDocument] = {}

    def _path(self, config_path: Optional[Path | str]) -> Path:
        return Path(config_path) if config_path else self.config_path

    async def load_config(self, config_path: Optional[Path | str] = None) -> DomainConfigDocument:
        """The document at ``config_path``, or the default one when missing or unreadable."""
        path = self._path(config_path)
        if not path.exists():
            return default_config()

        cached = self._cache.get(path)
        if cached is not None:
            logger.debug("Config cache hit for %s", path)
            return cached.model_copy(deep=True)

        try:
            document = DomainConfigDocument.model_validate(await read_config(path))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load config from %s: %s", path, exc)
            return default_config()

        self._cache[path] = document
        return document.model_copy(deep=True)

    async def save_config(
        self,
        config: DomainConfigDocument | Mapping[str, Any],
        config_path: Optional[Path | str] = None,
    ) -> Path:
        path = self._path(config_path)
        if path.suffix.lower() in _UNSUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported config file format: {path.suffix}")
        if not isinstance(config, DomainConfigDocument):
            config = DomainConfigDocument.model_validate(dict(config))

        await write_json(path, config.to_dict())
        self._cache[path] = config.model_copy(deep=True)
        logger.info("Saved domain config to %s", path)
        return path

    # -- Sections ---------------------------------------------------------

    async def get_domains(self, config_path: Optional[Path | str] = None) -> dict[str, dict[str, Any]]:
        return (await self.load_config(config_path)).domains

    async def get_discovery_settings(self, config_path: Optional[Path | str] = None) -> DiscoverySettings:
        return (await self.load_config(config_path)).discovery

    async def get_validation_settings(self, config_path: Optional[Path | str] = None) -> ValidationSettings:
        return (await self.load_config(config_path)).validation

    async def get_testing_settings(self, config_path: Optional[Path | str] = None) -> dict[str, Any]:
        return (await self.load_config(config_path)).testing

    async def get_plugin_settings(self, config_path: Optional[Path | str] = None) -> PluginSettings:
        return (await self.load_config(config_path)).plugins

    async def add_domain(
        self, name: str, definition: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> dict[str, Any]:
        config = await self.load_config(config_path)
        if name in config.domains:
            raise DomainExistsError(name)
        config.domains[name] = {"name": name, **definition}
        await self.save_config(config, config_path)
        return config.domains[name]

    async def update_domain(
        self, name: str, definition: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> dict[str, Any]:
        config = await self.load_config(config_path)
        config.domains[name] = {**config.domains.get(name, {}), **definition, "name": name}
        await self.save_config(config, config_path)
        return config.domains[name]

    async def remove_domain(self, name: str, config_path: Optional[Path | str] = None) -> None:
        config = await self.load_config(config_path)
        if name not in config.domains:
            raise DomainNotFoundError(name)
        del config.domains[name]
        await self.save_config(config, config_path)

    async def _update_section(self, section: str, settings: Mapping[str, Any], config_path) -> Any:
        config = await self.load_config(config_path)
        current = getattr(config, section)
        if isinstance(current, BaseModel):
            updated = type(current).model_validate({**current.model_dump(by_alias=True), **settings})
        else:
            updated = {**current, **settings}
        setattr(config, section, updated)
        await self.save_config(config, config_path)
        return updated

    async def update_discovery_settings(
        self, settings: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> DiscoverySettings:
        return await self._update_section("discovery", settings, config_path)

    async def update_validation_settings(
        self, settings: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> ValidationSettings:
        return await self._update_section("validation", settings, config_path)

    async def update_testing_settings(
        self, settings: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> dict[str, Any]:
        return await self._update_section("testing", settings, config_path)

    async def update_plugin_settings(
        self, settings: Mapping[str, Any], config_path: Optional[Path | str] = None
    ) -> PluginSettings:
        return await self._update_section("plugins", settings, config_path)

    # -- Templates --------------------------------------------------------

    def get_config_template(self, name: str) -> dict[str, Any]:
        return copy.deepcopy(CONFIG_TEMPLATES.get(name, CONFIG_TEMPLATES["minimal"]))

    async def create_config_from_template(
        self,
        name: str,
        data: Optional[Mapping[str, Any]] = None,
        config_path: Optional[Path | str] = None,
    ) -> DomainConfigDocument:
        resolved = resolve_placeholders(self.get_config_template(name), data or {})
        document = DomainConfigDocument.model_validate(resolved)
        await self.save_config(document, config_path)
        return document

    def validate_config(self, config: DomainConfigDocument | Mapping[str, Any]) -> ValidationResult:
        return validate_config(config)

    # -- Cache ------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict[str, Any]:
        return {"size": len(self._cache), "keys": [str(path) for path in self._cache]}
