"""Runtime domain registry.

The authoritative, mutable store of accepted domains. Resources and actions
are indexed under ``(domain, name)`` keys so that unregistering a domain
drops exactly the entries filed under that domain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any, Optional

from .errors import DomainExistsError, DomainNotFoundError, DomainStructureError, SourceError
from .loader import domains_from_environment
from .models import (
    CRUD_ACTIONS,
    Action,
    CommandCheck,
    CommandInfo,
    DiscoveryResult,
    Domain,
    RegistrationRecord,
    Resource,
    coerce_domain,
    domain_warnings,
    utc_now,
)
from .templates import DomainTemplates

logger = logging.getLogger(__name__)


def _alias_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Rewrite snake_case field names to the aliases used by ``Domain.to_dict``."""
    result = {}
    for key, value in updates.items():
        field = Domain.model_fields.get(key)
        result[field.alias if field is not None and field.alias else key] = value
    return result


def _model_dump(value: Any) -> Any:
    if isinstance(value, (Resource, Action)):
        return value.model_dump(by_alias=True)
    return dict(value)


class RuntimeDomainRegistry:
    def __init__(self, templates: Optional[DomainTemplates] = None) -> None:
        self.templates = templates or DomainTemplates()
        self._domains: dict[str, Domain] = {}
        self._resources: dict[tuple[str, str], Resource] = {}
        self._actions: dict[tuple[str, str], Action] = {}
        self._dynamic: set[str] = set()
        self._history: list[RegistrationRecord] = []

    # -- Registration -----------------------------------------------------

    def register_domain(
        self,
        domain: Domain | Mapping[str, Any],
        overwrite: bool = False,
        validate: bool = True,
        source: str = "runtime",
        dynamic: bool = True,
    ) -> Domain:
        """Install a domain. Fails when the name exists and ``overwrite`` is false."""
        candidate = coerce_domain(domain, validate=validate)
        if candidate.name in self._domains and not overwrite:
            raise DomainExistsError(candidate.name)
        if source not in candidate.sources:
            candidate.sources.append(source)
        return self._install(candidate, source=source, overwrite=overwrite, dynamic=dynamic)

    def _install(self, domain: Domain, source: str, overwrite: bool, dynamic: bool) -> Domain:
        for warning in domain_warnings(domain):
            logger.warning(warning)

        replaced = domain.name in self._domains
        if replaced:
            self._drop_index(domain.name)

        domain.is_dynamic = dynamic
        self._domains[domain.name] = domain
        for resource in domain.resources:
            self._resources[(domain.name, resource.name)] = resource
        for action in domain.actions:
            self._actions[(domain.name, action.name)] = action
        if dynamic:
            self._dynamic.add(domain.name)
        else:
            self._dynamic.discard(domain.name)

        self._history.append(
            RegistrationRecord(domain=domain.name, source=source, action="register", overwrite=overwrite)
        )
        logger.info("Registered domain '%s' from %s%s", domain.name, source, " (overwrite)" if replaced else "")
        return domain.model_copy(deep=True)

    def _drop_index(self, name: str) -> None:
        for index in (self._resources, self._actions):
            for key in [k for k in index if k[0] == name]:
                del index[key]

    def unregister_domain(self, name: str) -> Domain:
        domain = self._domains.pop(name, None)
        if domain is None:
            raise DomainNotFoundError(name)
        self._drop_index(name)
        self._dynamic.discard(name)
        self._history.append(RegistrationRecord(domain=name, source="runtime", action="unregister"))
        logger.info("Unregistered domain '%s'", name)
        return domain

    # -- Builders ---------------------------------------------------------

    def register_domain_from_config(self, name: str, config: Mapping[str, Any], **options: Any) -> Domain:
        options.setdefault("source", "config")
        return self.register_domain({**config, "name": name}, **options)

    def register_domain_from_cli(self, name: str, analysis: DiscoveryResult, **options: Any) -> Domain:
        observed: dict[str, dict[str, None]] = {}
        for info in analysis.commands.values():
            if info.domain == name and info.resource and info.action:
                observed.setdefault(info.resource, {}).setdefault(info.action, None)

        resources = [
            Resource(
                name=resource,
                description=f"Resource: {resource}",
                actions=list(observed.get(resource)) if observed.get(resource) else list(CRUD_ACTIONS),
            )
            for resource in analysis.resources.get(name, [])
        ]
        domain = Domain(
            name=name,
            description=f"Auto-discovered domain: {name}",
            category="discovered",
            resources=resources,
            actions=[
                Action(name=action, description=f"Action: {action}", category="Discovered")
                for action in analysis.actions
            ],
        )
        options.setdefault("source", "cli-analysis")
        return self.register_domain(domain, **options)

    def register_domain_from_scripts(self, name: str, scripts: Mapping[str, str], **options: Any) -> Domain:
        """Build a domain from ``name:resource[:action]`` scripts; a missing action means ``run``."""
        resources: dict[str, dict[str, None]] = {}
        for script_name in scripts:
            parts = script_name.split(":")
            if parts[0] != name or len(parts) < 2 or not parts[1]:
                continue
            action = parts[2] if len(parts) >= 3 and parts[2] else "run"
            resources.setdefault(parts[1], {}).setdefault(action, None)

        action_names: dict[str, None] = {}
        for actions in resources.values():
            action_names.update(actions)

        domain = Domain(
            name=name,
            description=f"Script-based domain: {name}",
            category="scripts",
            resources=[
                Resource(name=resource, description=f"Resource: {resource}", actions=list(actions))
                for resource, actions in resources.items()
            ],
            actions=[
                Action(name=action, description=f"Action: {action}", category="Script")
                for action in action_names
            ],
        )
        options.setdefault("source", "package-scripts")
        return self.register_domain(domain, **options)

    def register_domain_from_environment(
        self,
        name: str,
        environ: Optional[Mapping[str, str]] = None,
        **options: Any,
    ) -> Domain:
        definition = domains_from_environment(environ).get(name.lower())
        if definition is None:
            raise SourceError(f"No environment configuration found for domain '{name}'")
        definition["name"] = name
        definition["resources"] = [
            r if isinstance(r, Mapping) else {"name": r, "actions": list(CRUD_ACTIONS)}
            for r in definition.get("resources") or []
        ]
        definition["actions"] = [
            a if isinstance(a, Mapping) else {"name": a} for a in definition.get("actions") or []
        ]
        options.setdefault("source", "environment")
        return self.register_domain(definition, **options)

    def register_domain_from_template(
        self,
        name: str,
        template: str | Mapping[str, Any],
        data: Optional[Mapping[str, Any]] = None,
        **options: Any,
    ) -> Domain:
        values = {**(data or {}), "domain": name}
        if isinstance(template, str):
            domain = self.templates.create_domain_from_template(template, values)
        else:
            domain = coerce_domain(self.templates.apply_template(template, values))
        options.setdefault("source", "template")
        return self.register_domain(domain, **options)

    # -- Mutation ---------------------------------------------------------

    def update_domain(self, name: str, updates: Mapping[str, Any], validate: bool = True) -> Domain:
        current = self._domains.get(name)
        if current is None:
            raise DomainNotFoundError(name)
        merged = {**current.to_dict(), **_alias_updates(updates), "name": name}
        return self.register_domain(
            merged, overwrite=True, validate=validate, source="update", dynamic=name in self._dynamic
        )

    def add_resource_to_domain(self, name: str, resource: Resource | Mapping[str, Any]) -> Domain:
        current = self._domains.get(name)
        if current is None:
            raise DomainNotFoundError(name)
        data = _model_dump(resource)
        if current.get_resource(data.get("name")) is not None:
            raise DomainStructureError(f"Resource '{data.get('name')}' already exists in domain '{name}'")
        resources = [r.model_dump(by_alias=True) for r in current.resources] + [data]
        return self.update_domain(name, {"resources": resources})

    def add_action_to_domain(self, name: str, action: Action | Mapping[str, Any]) -> Domain:
        current = self._domains.get(name)
        if current is None:
            raise DomainNotFoundError(name)
        data = _model_dump(action)
        if current.get_action(data.get("name")) is not None:
            raise DomainStructureError(f"Action '{data.get('name')}' already exists in domain '{name}'")
        actions = [a.model_dump() for a in current.actions] + [data]
        return self.update_domain(name, {"actions": actions})

    # -- Queries ----------------------------------------------------------

    def has_domain(self, name: str) -> bool:
        return name in self._domains

    def get_domain(self, name: str) -> Optional[Domain]:
        domain = self._domains.get(name)
        return domain.model_copy(deep=True) if domain is not None else None

    def get_all_domains(self) -> list[Domain]:
        return [domain.model_copy(deep=True) for domain in self._domains.values()]

    def get_domain_names(self) -> list[str]:
        return list(self._domains)

    def get_domain_resources(self, name: str) -> list[Resource]:
        domain = self._domains.get(name)
        return [r.model_copy(deep=True) for r in domain.resources] if domain else []

    def get_domain_actions(self, name: str) -> list[Action]:
        domain = self._domains.get(name)
        return [a.model_copy(deep=True) for a in domain.actions] if domain else []

    def get_resource(self, domain: str, resource: str) -> Optional[Resource]:
        found = self._resources.get((domain, resource))
        return found.model_copy(deep=True) if found is not None else None

    def resolve_relationships(self, domain: str, resource: str) -> list[Resource]:
        """Resources named in ``resource.relationships``, looked up now by name."""
        found = self._resources.get((domain, resource))
        if found is None:
            return []
        related = []
        for name in found.relationships:
            target = self._resources.get((domain, name))
            if target is not None:
                related.append(target.model_copy(deep=True))
        return related

    def validate_command(self, domain: str, resource: str, action: str) -> bool:
        if domain not in self._domains:
            return False
        found = self._resources.get((domain, resource))
        return found is not None and action in found.actions

    def validate_command_string(self, command: str) -> CommandCheck:
        parts = command.split()
        if len(parts) < 3:
            return CommandCheck(
                valid=False,
                command=command,
                error="Command must have the form 'domain resource action'",
            )
        domain, resource, action = parts[:3]
        check = CommandCheck(valid=False, command=command, domain=domain, resource=resource, action=action)
        if domain not in self._domains:
            check.error = f"Domain '{domain}' not found"
        elif (domain, resource) not in self._resources:
            check.error = f"Resource '{resource}' not found in domain '{domain}'"
        elif action not in self._resources[(domain, resource)].actions:
            check.error = f"Action '{action}' not supported by resource '{resource}' in domain '{domain}'"
        else:
            check.valid = True
        return check

    def get_command_metadata(self, domain: str, resource: str, action: str) -> Optional[dict[str, Any]]:
        if not self.validate_command(domain, resource, action):
            return None
        found_domain = self._domains[domain]
        found_resource = self._resources[(domain, resource)]
        found_action = self._actions.get((domain, action))
        return {
            "command": f"{domain} {resource} {action}",
            "domain": {"name": found_domain.name, "displayName": found_domain.display_name},
            "resource": {"name": found_resource.name, "displayName": found_resource.display_name},
            "action": found_action.model_dump() if found_action else {"name": action},
            "requires": list(found_action.requires) if found_action else [],
            "optional": list(found_action.optional) if found_action else [],
        }

    def iter_commands(self) -> Iterator[CommandInfo]:
        for domain in self._domains.values():
            for resource in domain.resources:
                for action in resource.actions:
                    found_action = self._actions.get((domain.name, action))
                    yield CommandInfo(
                        domain=domain.name,
                        resource=resource.name,
                        action=action,
                        description=found_action.description if found_action else "",
                    )

    def check_domain_warnings(self, domain: Domain | Mapping[str, Any]) -> list[str]:
        return domain_warnings(coerce_domain(domain))

    def get_dynamic_domains(self) -> list[str]:
        return [name for name in self._domains if name in self._dynamic]

    def get_registration_history(self) -> list[RegistrationRecord]:
        return list(self._history)

    def clear_registration_history(self) -> None:
        self._history.clear()

    # -- Snapshot ---------------------------------------------------------

    def export_domains(self) -> dict[str, Any]:
        domains = {}
        for name, domain in self._domains.items():
            data = domain.to_dict()
            data["isDynamic"] = name in self._dynamic
            domains[name] = data
        return {
            "domains": domains,
            "metadata": {
                "total_domains": len(self._domains),
                "dynamic_domains": len(self._dynamic),
                "exported_at": utc_now(),
            },
        }

    def import_domains(self, data: Mapping[str, Any], overwrite: bool = False, validate: bool = True) -> list[str]:
        """Install every domain from an ``export_domains`` payload.

        Without ``overwrite`` every entry is checked before any is installed,
        so a duplicate leaves the registry untouched.
        """
        entries = data.get("domains") if isinstance(data, Mapping) else None
        if not isinstance(entries, Mapping):
            raise DomainStructureError("Configuration must contain domains")

        candidates = []
        for name, entry in entries.items():
            candidate = coerce_domain({**entry, "name": entry.get("name") or name}, validate=validate)
            if candidate.name in self._domains and not overwrite:
                raise DomainExistsError(candidate.name)
            candidates.append(candidate)

        for candidate in candidates:
            self._install(candidate, source="import", overwrite=overwrite, dynamic=candidate.is_dynamic)
        return [candidate.name for candidate in candidates]

    # -- Lifecycle --------------------------------------------------------

    def get_stats(self) -> dict[str, int]:
        return {
            "total_domains": len(self._domains),
            "dynamic_domains": len(self._dynamic),
            "total_resources": len(self._resources),
            "total_actions": len(self._actions),
            "registration_history": len(self._history),
        }

    def reset(self) -> None:
        self._domains.clear()
        self._resources.clear()
        self._actions.clear()
        self._dynamic.clear()
        self._history.clear()
