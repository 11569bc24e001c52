"""Domain templates for common CLI shapes.

Each template is a skeleton domain whose strings may contain ``{{key}}``
placeholders. Placeholders are filled from caller data, then from
``TEMPLATE_DEFAULTS``; anything still unresolved is left as written.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import TemplateNotFoundError
from .models import Domain, DiscoveryResult, ValidationResult, coerce_domain

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

TEMPLATE_DEFAULTS = {
    "category": "general",
    "compliance": "SOC2",
    "governance": "RBAC",
}


# ---------------------------------------------------------------------------
# Skeleton builders
# ---------------------------------------------------------------------------


def _action(name: str, description: str, category: str, requires=(), optional=()) -> dict:
    return {
        "name": name,
        "description": description,
        "category": category,
        "requires": list(requires),
        "optional": list(optional),
    }


def _crud(subject: str) -> list[dict]:
    plural = "{{resource}}s" if subject == "{{resource}}" else "resources"
    return [
        _action("create", f"Create new {subject}", "CRUD", ["name"], ["type", "config"]),
        _action("list", f"List {plural}", "CRUD", [], ["filter", "format"]),
        _action("show", f"Show {subject} details", "CRUD", ["id"], ["format"]),
        _action("update", f"Update {subject}", "CRUD", ["id"], ["config", "tags"]),
        _action("delete", f"Delete {subject}", "CRUD", ["id"], ["force"]),
    ]


def _resource(name, display_name, description, actions, attributes, relationships=()) -> dict:
    return {
        "name": name,
        "displayName": display_name,
        "description": description,
        "actions": list(actions),
        "attributes": list(attributes),
        "relationships": list(relationships),
    }


def _skeleton(resources: list[dict], actions: list[dict], category: str = "{{category}}") -> dict:
    return {
        "name": "{{domain}}",
        "displayName": "{{displayName}}",
        "description": "{{description}}",
        "category": category,
        "compliance": ["{{compliance}}"],
        "governance": ["{{governance}}"],
        "resources": resources,
        "actions": actions,
    }


_CRUD_NAMES = ["create", "list", "show", "update", "delete"]
_BASIC_ATTRIBUTES = ["name", "type", "status", "created"]


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

BUILTIN_TEMPLATES: dict[str, dict] = {
    "noun-verb": _skeleton(
        [
            _resource(
                "{{resource}}", "{{resourceDisplayName}}", "{{resourceDescription}}",
                _CRUD_NAMES, _BASIC_ATTRIBUTES,
            ),
        ],
        _crud("{{resource}}"),
    ),
    "hierarchical": _skeleton(
        [
            _resource(
                "{{subdomain}}", "{{subdomainDisplayName}}", "{{subdomainDescription}}",
                _CRUD_NAMES, _BASIC_ATTRIBUTES, ["{{resource}}"],
            ),
            _resource(
                "{{resource}}", "{{resourceDisplayName}}", "{{resourceDescription}}",
                _CRUD_NAMES, _BASIC_ATTRIBUTES, ["{{subdomain}}"],
            ),
        ],
        _crud("{{resource}}"),
    ),
    "flat": _skeleton(
        [
            _resource(
                "{{command}}", "{{commandDisplayName}}", "{{commandDescription}}",
                ["run"], ["name", "status"],
            ),
        ],
        [_action("run", "Run {{command}}", "Execution", [], ["args", "config"])],
    ),
    "microservice": _skeleton(
        [
            _resource(
                "service", "Service", "Microservice instances",
                _CRUD_NAMES + ["deploy", "scale"],
                ["name", "version", "status", "replicas", "created"], ["config", "secret"],
            ),
            _resource(
                "config", "Configuration", "Service configurations",
                _CRUD_NAMES + ["apply"], ["name", "environment", "status", "created"], ["service"],
            ),
            _resource(
                "secret", "Secret", "Service secrets",
                _CRUD_NAMES + ["rotate"], ["name", "type", "status", "created", "expires"], ["service"],
            ),
        ],
        _crud("resource") + [
            _action("deploy", "Deploy service", "Operations", ["id"], ["environment", "config"]),
            _action("scale", "Scale service", "Operations", ["id", "replicas"], ["config"]),
            _action("apply", "Apply configuration", "Operations", ["id"], ["config"]),
            _action("rotate", "Rotate secret", "Security", ["id"], ["schedule"]),
        ],
        category="microservice",
    ),
    "database": _skeleton(
        [
            _resource(
                "database", "Database", "Database instances",
                _CRUD_NAMES + ["backup", "restore"],
                ["name", "type", "version", "status", "created"], ["user", "backup"],
            ),
            _resource(
                "user", "User", "Database users",
                _CRUD_NAMES + ["grant"], ["name", "permissions", "status", "created"], ["database"],
            ),
            _resource(
                "backup", "Backup", "Database backups",
                ["create", "list", "show", "delete", "restore"],
                ["name", "size", "status", "created"], ["database"],
            ),
        ],
        _crud("resource") + [
            _action("backup", "Backup database", "Operations", ["id"], ["schedule", "retention"]),
            _action("restore", "Restore database", "Operations", ["id", "backup"], ["target"]),
            _action("grant", "Grant permissions", "Security", ["id", "permissions"], ["database"]),
        ],
        category="database",
    ),
    "api": _skeleton(
        [
            _resource(
                "endpoint", "Endpoint", "API endpoints",
                _CRUD_NAMES + ["test"], ["name", "method", "path", "status", "created"], ["auth"],
            ),
            _resource(
                "auth", "Authentication", "API authentication",
                _CRUD_NAMES + ["validate"], ["name", "type", "status", "created"], ["endpoint"],
            ),
        ],
        _crud("resource") + [
            _action("test", "Test endpoint", "Testing", ["id"], ["method", "data"]),
            _action("validate", "Validate authentication", "Security", ["id"], ["token"]),
        ],
        category="api",
    ),
}


# ---------------------------------------------------------------------------
# Placeholder resolution
# ---------------------------------------------------------------------------


def _lookup(key: str, data: Mapping[str, Any]) -> Any:
    value = data.get(key)
    if value is None:
        value = TEMPLATE_DEFAULTS.get(key)
    return value


def resolve_placeholders(value: Any, data: Mapping[str, Any]) -> Any:
    """Recursively fill ``{{key}}`` markers in strings, lists, and dicts.

    A string that is exactly one placeholder takes the supplied value as-is;
    inside a list, a list value is spliced in rather than nested.
    """
    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value)
        if whole:
            resolved = _lookup(whole.group(1), data)
            return value if resolved is None else copy.deepcopy(resolved)

        def _substitute(match: re.Match) -> str:
            resolved = _lookup(match.group(1), data)
            return match.group(0) if resolved is None else str(resolved)

        return _PLACEHOLDER.sub(_substitute, value)

    if isinstance(value, list):
        result = []
        for item in value:
            resolved = resolve_placeholders(item, data)
            if isinstance(item, str) and _PLACEHOLDER.fullmatch(item) and isinstance(resolved, list):
                result.extend(resolved)
            else:
                result.append(resolved)
        return result

    if isinstance(value, Mapping):
        return {key: resolve_placeholders(item, data) for key, item in value.items()}

    return value


# ---------------------------------------------------------------------------
# Shape classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternCounts:
    total: int = 0
    hierarchical: int = 0
    microservice: int = 0
    database: int = 0
    api: int = 0
    flat: int = 0

    def majority(self, count: int) -> bool:
        return count > self.total * 0.5


_KEYWORDS = {
    "microservice": ("service", "deploy", "scale"),
    "database": ("database", "backup", "restore"),
    "api": ("endpoint", "api", "auth"),
}

# Checked in order; the first rule that holds names the template.
TEMPLATE_RULES: tuple[tuple[str, Callable[[PatternCounts], bool]], ...] = (
    ("hierarchical", lambda c: c.hierarchical > 0),
    ("microservice", lambda c: c.majority(c.microservice)),
    ("database", lambda c: c.majority(c.database)),
    ("api", lambda c: c.majority(c.api)),
    ("flat", lambda c: c.majority(c.flat)),
)
DEFAULT_TEMPLATE = "noun-verb"


def count_command_patterns(commands: list[str]) -> PatternCounts:
    counts = {"hierarchical": 0, "microservice": 0, "database": 0, "api": 0, "flat": 0}
    for command in commands:
        tokens = command.split()
        if len(tokens) >= 3:
            counts["hierarchical"] += 1
        if len(tokens) <= 2:
            counts["flat"] += 1
        for shape, keywords in _KEYWORDS.items():
            if any(keyword in command for keyword in keywords):
                counts[shape] += 1
    return PatternCounts(total=len(commands), **counts)


def classify_commands(commands: list[str]) -> str:
    counts = count_command_patterns(commands)
    for template_name, rule in TEMPLATE_RULES:
        if rule(counts):
            return template_name
    return DEFAULT_TEMPLATE


def _command_list(cli_structure: Any) -> list[str]:
    if isinstance(cli_structure, DiscoveryResult):
        return list(cli_structure.commands)
    if isinstance(cli_structure, Mapping):
        commands = cli_structure.get("commands") or []
    else:
        commands = cli_structure or []
    if isinstance(commands, Mapping):
        return list(commands)
    return [str(c) for c in commands]


# ---------------------------------------------------------------------------
# Registry of templates
# ---------------------------------------------------------------------------


class DomainTemplates:
    """Named domain skeletons plus the heuristic that picks one."""

    def __init__(self) -> None:
        self._templates: dict[str, dict] = {}
        for name, template in BUILTIN_TEMPLATES.items():
            self.register_template(name, template)

    def register_template(self, name: str, template: Mapping[str, Any]) -> None:
        self._templates[name] = copy.deepcopy(dict(template))

    def get_template(self, name: str) -> Optional[dict]:
        template = self._templates.get(name)
        return copy.deepcopy(template) if template is not None else None

    def list_templates(self) -> list[str]:
        return list(self._templates)

    def apply_template(self, template: Mapping[str, Any], data: Mapping[str, Any]) -> dict:
        return resolve_placeholders(template, data)

    def create_domain_from_template(self, template_name: str, data: Mapping[str, Any]) -> Domain:
        template = self._templates.get(template_name)
        if template is None:
            raise TemplateNotFoundError(template_name)
        values = dict(data)
        if "domain" not in values and "name" in values:
            values["domain"] = values["name"]
        return coerce_domain(self.apply_template(template, values))

    def suggest_template(self, cli_structure: Any) -> str:
        """Pick the template whose shape best matches observed commands."""
        return classify_commands(_command_list(cli_structure))

    def analyze_command_patterns(self, commands: list[str]) -> PatternCounts:
        return count_command_patterns(commands)

    def get_template_metadata(self, name: str) -> Optional[dict]:
        template = self._templates.get(name)
        if template is None:
            return None
        return {
            "name": name,
            "description": f"Template for {name} pattern",
            "category": template.get("category", "general"),
            "resources": len(template.get("resources") or []),
            "actions": len(template.get("actions") or []),
            "compliance": template.get("compliance") or [],
            "governance": template.get("governance") or [],
        }

    def list_template_metadata(self) -> list[dict]:
        return [self.get_template_metadata(name) for name in self._templates]

    def validate_template(self, template: Mapping[str, Any]) -> ValidationResult:
        errors = []
        if not template.get("name"):
            errors.append("Template must have a name")
        resources = template.get("resources")
        if not isinstance(resources, list):
            errors.append("Template must have resources array")
            resources = []
        if not isinstance(template.get("actions"), list):
            errors.append("Template must have actions array")
        for index, resource in enumerate(resources):
            if not resource.get("name"):
                errors.append(f"Resource at index {index} must have a name")
            if not isinstance(resource.get("actions"), list):
                errors.append(f"Resource '{resource.get('name')}' must have actions array")
        for index, action in enumerate(template.get("actions") or []):
            if not action.get("name"):
                errors.append(f"Action at index {index} must have a name")
        return ValidationResult(valid=not errors, errors=errors)
