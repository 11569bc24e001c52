"""Domain plugin system.

Plugins are declarative descriptors. They contribute whole domains, partial
extensions merged into domains by name, and hooks fired at fixed points of
the discovery pipeline. Directory loading accepts ``*.plugin.json``
descriptors and ``*.plugin.py`` modules exposing a ``create_plugin()``
factory; nothing else in such a module is consulted.
"""

from __future__ import annotations

import copy
import importlib.util
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .errors import PluginError
from .files import find_files, read_json
from .models import Action, Domain, Resource, coerce_domain, utc_now

logger = logging.getLogger(__name__)

HOOK_POINTS = (
    "before_discovery",
    "after_discovery",
    "before_domain_create",
    "after_domain_create",
    "before_register",
    "after_register",
)

Hook = Callable[..., Any]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _plain(value: Any) -> dict:
    if isinstance(value, (Resource, Action)):
        return value.model_dump(by_alias=True)
    return dict(value)


@dataclass
class DomainExtension:
    resources: list[dict[str, Any]] = field(default_factory=list)
    actions: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    extend: Optional[Callable[[Domain], Union[Domain, Mapping[str, Any]]]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DomainExtension":
        return cls(
            resources=[_plain(r) for r in data.get("resources") or []],
            actions=[_plain(a) for a in data.get("actions") or []],
            metadata=dict(data.get("metadata") or {}),
            extend=data.get("extend"),
        )


@dataclass
class DomainPlugin:
    name: str
    version: str = "1.0.0"
    description: str = ""
    domains: dict[str, dict[str, Any]] = field(default_factory=dict)
    extensions: dict[str, Union[DomainExtension, list[DomainExtension]]] = field(default_factory=dict)
    hooks: dict[str, Union[Hook, list[Hook]]] = field(default_factory=dict)
    enabled: bool = True
    registered_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DomainPlugin":
        if not isinstance(data, Mapping) or not data.get("name"):
            raise PluginError("Plugin must be an object with a name property")
        extensions = {
            domain: [e if isinstance(e, DomainExtension) else DomainExtension.from_dict(e) for e in _as_list(value)]
            for domain, value in (data.get("extensions") or {}).items()
        }
        return cls(
            name=data["name"],
            version=str(data.get("version", "1.0.0")),
            description=data.get("description", ""),
            domains={name: {**definition, "name": name} for name, definition in (data.get("domains") or {}).items()},
            extensions=extensions,
            hooks=dict(data.get("hooks") or {}),
            enabled=data.get("enabled", True) is not False,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "enabled": self.enabled,
            "domains": list(self.domains),
            "extensions": list(self.extensions),
            "hooks": list(self.hooks),
            "registered_at": self.registered_at,
        }


def apply_extension(domain: Domain, extension: DomainExtension) -> Domain:
    """Merge one extension into a domain and return the new domain.

    A resource whose name already exists gains the extension's actions; an
    action whose name already exists is left alone.
    """
    data = domain.to_dict()
    resources = data["resources"]
    by_name = {resource["name"]: resource for resource in resources}
    for addition in extension.resources:
        existing = by_name.get(addition.get("name"))
        if existing is None:
            added = copy.deepcopy(addition)
            resources.append(added)
            by_name[added.get("name")] = added
            continue
        for action in addition.get("actions") or []:
            if action not in existing["actions"]:
                existing["actions"].append(action)

    known_actions = {action["name"] for action in data["actions"]}
    for addition in extension.actions:
        if addition.get("name") in known_actions:
            continue
        data["actions"].append(copy.deepcopy(addition))
        known_actions.add(addition.get("name"))

    data["metadata"] = {**data.get("metadata", {}), **extension.metadata}
    extended = coerce_domain(data)

    if extension.extend is not None:
        extended = coerce_domain(extension.extend(extended))
    return extended


class DomainPluginSystem:
    def __init__(self, plugin_directory: Optional[Path | str] = None, pattern: str = "*.plugin.json") -> None:
        self.plugin_directory = Path(plugin_directory) if plugin_directory else None
        self.pattern = pattern
        self._plugins: dict[str, DomainPlugin] = {}
        # Hooks and extensions remember the plugin that registered them.
        self._hooks: dict[str, list[tuple[Optional[str], Hook]]] = {}
        self._extensions: dict[str, list[tuple[Optional[str], DomainExtension]]] = {}

    # -- Registration -----------------------------------------------------

    def register_plugin(self, plugin: DomainPlugin | Mapping[str, Any]) -> DomainPlugin:
        if isinstance(plugin, Mapping):
            plugin = DomainPlugin.from_dict(plugin)
        if not isinstance(plugin, DomainPlugin) or not plugin.name:
            raise PluginError("Plugin must be a DomainPlugin or an object with a name property")
        for hook_name in plugin.hooks:
            if hook_name not in HOOK_POINTS:
                raise PluginError(f"Unknown hook point: {hook_name}")

        if plugin.name in self._plugins:
            logger.info("Replacing domain plugin: %s", plugin.name)
            self.unregister_plugin(plugin.name)

        for hook_name, hooks in plugin.hooks.items():
            for hook in _as_list(hooks):
                self.register_hook(hook_name, hook, owner=plugin.name)
        for domain_name, extensions in plugin.extensions.items():
            for extension in _as_list(extensions):
                self.register_domain_extension(domain_name, extension, owner=plugin.name)

        plugin.registered_at = utc_now()
        self._plugins[plugin.name] = plugin
        logger.info("Registered domain plugin: %s", plugin.name)
        return plugin

    def unregister_plugin(self, name: str) -> bool:
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False
        for registry in (self._hooks, self._extensions):
            for key in list(registry):
                registry[key] = [entry for entry in registry[key] if entry[0] != name]
                if not registry[key]:
                    del registry[key]
        return True

    def register_hook(self, hook_name: str, hook: Hook, owner: Optional[str] = None) -> None:
        if hook_name not in HOOK_POINTS:
            raise PluginError(f"Unknown hook point: {hook_name}")
        if not callable(hook):
            raise PluginError(f"Hook {hook_name} must be callable")
        self._hooks.setdefault(hook_name, []).append((owner, hook))

    def register_domain_extension(
        self,
        domain_name: str,
        extension: DomainExtension | Mapping[str, Any],
        owner: Optional[str] = None,
    ) -> None:
        if isinstance(extension, Mapping):
            extension = DomainExtension.from_dict(extension)
        self._extensions.setdefault(domain_name, []).append((owner, extension))

    def _is_active(self, owner: Optional[str]) -> bool:
        if owner is None:
            return True
        plugin = self._plugins.get(owner)
        return plugin is not None and plugin.enabled

    # -- Hooks ------------------------------------------------------------

    async def execute_hooks(self, hook_name: str, *args: Any) -> list[Any]:
        """Run every active hook for ``hook_name`` in registration order.

        A hook that raises is logged and skipped.
        """
        results = []
        for owner, hook in list(self._hooks.get(hook_name, [])):
            if not self._is_active(owner):
                continue
            try:
                result = hook(*args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                logger.warning("Hook %s failed: %s", hook_name, exc)
                continue
            results.append(result)
        return results

    # -- Extensions -------------------------------------------------------

    def get_domain_extensions(self, domain_name: str) -> list[DomainExtension]:
        return [ext for owner, ext in self._extensions.get(domain_name, []) if self._is_active(owner)]

    def apply_domain_extensions(self, domain: Domain) -> Domain:
        for extension in self.get_domain_extensions(domain.name):
            domain = apply_extension(domain, extension)
        return domain

    def contributed_domains(self) -> dict[str, dict[str, Any]]:
        """Whole-domain definitions from enabled plugins; the first plugin to claim a name wins."""
        contributed: dict[str, dict[str, Any]] = {}
        for plugin in self.get_enabled_plugins():
            for name, definition in plugin.domains.items():
                if name in contributed:
                    logger.warning("Plugin %s redefines domain '%s', keeping the earlier definition", plugin.name, name)
                    continue
                contributed[name] = copy.deepcopy(definition)
        return contributed

    # -- Directory loading ------------------------------------------------

    async def load_plugins_from_directory(
        self,
        directory: Optional[Path | str] = None,
        recursive: bool = True,
    ) -> list[str]:
        directory = Path(directory) if directory else self.plugin_directory
        if directory is None or not directory.is_dir():
            logger.warning("Plugin directory not found: %s", directory)
            return []

        paths = find_files(directory, self.pattern, recursive)
        paths += [p for p in find_files(directory, "*.plugin.py", recursive) if p not in paths]

        loaded = []
        for path in paths:
            try:
                plugin = await self.load_plugin_file(path)
                self.register_plugin(plugin)
            except Exception as exc:
                logger.warning("Failed to load plugin %s: %s", path, exc)
                continue
            loaded.append(plugin.name)
        return loaded

    async def load_plugin_file(self, path: Path | str) -> DomainPlugin:
        path = Path(path)
        if path.name.endswith(".plugin.py"):
            return self._load_factory_module(path)
        if path.suffix == ".json":
            return DomainPlugin.from_dict(await read_json(path))
        raise PluginError(f"Unsupported plugin file type: {path.suffix}")

    def _load_factory_module(self, path: Path) -> DomainPlugin:
        module_name = "citty_plugin_" + path.name[: -len(".plugin.py")].replace("-", "_")
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginError(f"Cannot load plugin module {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        factory = getattr(module, "create_plugin", None)
        if not callable(factory):
            raise PluginError(f"Plugin module {path} must define create_plugin()")
        plugin = factory()
        if isinstance(plugin, Mapping):
            plugin = DomainPlugin.from_dict(plugin)
        if not isinstance(plugin, DomainPlugin):
            raise PluginError(f"create_plugin() in {path} must return a DomainPlugin")
        return plugin

    # -- Queries ----------------------------------------------------------

    def get_plugin(self, name: str) -> Optional[DomainPlugin]:
        return self._plugins.get(name)

    def get_plugins(self) -> list[DomainPlugin]:
        return list(self._plugins.values())

    def get_enabled_plugins(self) -> list[DomainPlugin]:
        return [plugin for plugin in self._plugins.values() if plugin.enabled]

    def set_plugin_enabled(self, name: str, enabled: bool) -> bool:
        plugin = self._plugins.get(name)
        if plugin is None:
            return False
        plugin.enabled = enabled
        return True

    def get_plugin_stats(self) -> dict[str, int]:
        enabled = len(self.get_enabled_plugins())
        return {
            "total": len(self._plugins),
            "enabled": enabled,
            "disabled": len(self._plugins) - enabled,
            "hooks": sum(len(hooks) for hooks in self._hooks.values()),
            "domain_extensions": sum(len(exts) for exts in self._extensions.values()),
        }

    def reset(self) -> None:
        self._plugins.clear()
        self._hooks.clear()
        self._extensions.clear()
