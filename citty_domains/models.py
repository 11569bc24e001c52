"""Data models for the domain → resource → action taxonomy."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import DomainStructureError

CRUD_ACTIONS = ["create", "list", "show", "update", "delete"]


def display_name_for(name: str) -> str:
    return name[:1].upper() + name[1:]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FallbackStrategy(str, Enum):
    GENERIC = "generic"
    ERROR = "error"
    AUTO_DISCOVER = "auto-discover"
    IGNORE = "ignore"


class Action(BaseModel):
    name: str
    description: str = ""
    category: str = "general"
    requires: list[str] = Field(default_factory=list)
    optional: list[str] = Field(default_factory=list)


class Resource(BaseModel):
    name: str
    display_name: str = Field(default="", alias="displayName")
    description: str = ""
    actions: list[str]
    attributes: list[str] = Field(default_factory=list)
    # Names of other resources in the same domain; never object references.
    relationships: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _default_display_name(self) -> "Resource":
        if not self.display_name:
            self.display_name = display_name_for(self.name)
        return self


class Domain(BaseModel):
    name: str
    display_name: str = Field(default="", alias="displayName")
    description: str = ""
    category: str = "general"
    compliance: list[str] = Field(default_factory=list)
    governance: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    is_dynamic: bool = Field(default=False, alias="isDynamic")
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("compliance", "governance", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @model_validator(mode="after")
    def _default_display_name(self) -> "Domain":
        if not self.display_name:
            self.display_name = display_name_for(self.name)
        return self

    def resource_names(self) -> list[str]:
        return [r.name for r in self.resources]

    def action_names(self) -> list[str]:
        return [a.name for a in self.actions]

    def get_resource(self, name: str) -> Optional[Resource]:
        return next((r for r in self.resources if r.name == name), None)

    def get_action(self, name: str) -> Optional[Action]:
        return next((a for a in self.actions if a.name == name), None)

    def implied_commands(self) -> list[str]:
        """Every ``domain resource action`` string this domain declares."""
        return [
            f"{self.name} {resource.name} {action}"
            for resource in self.resources
            for action in resource.actions
        ]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CommandInfo(BaseModel):
    domain: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    description: str = ""
    command: Optional[str] = None
    type: Optional[str] = None


class DiscoveryResult(BaseModel):
    """Normalized candidate taxonomy produced by analysis and loading."""

    domains: list[str] = Field(default_factory=list)
    resources: dict[str, list[str]] = Field(default_factory=dict)
    actions: list[str] = Field(default_factory=list)
    commands: dict[str, CommandInfo] = Field(default_factory=dict)
    # Full domain definitions for sources that know more than names.
    definitions: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty(cls, **metadata: Any) -> "DiscoveryResult":
        return cls(metadata=dict(metadata))

    def is_empty(self) -> bool:
        return not (self.domains or self.resources or self.actions or self.commands)


class Coverage(BaseModel):
    total: int = 0
    covered: int = 0
    percentage: float = 100.0


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    coverage: Coverage = Field(default_factory=Coverage)


class FallbackOutcome(BaseModel):
    """A domain after validation, possibly rewritten by a fallback strategy."""

    domain: Domain
    validation: Optional[ValidationResult] = None
    warnings: list[str] = Field(default_factory=list)
    fallback: Optional[str] = None


class RegistrationRecord(BaseModel):
    domain: str
    source: str = "runtime"
    action: str = "register"
    overwrite: bool = False
    timestamp: str = Field(default_factory=utc_now)


class CommandCheck(BaseModel):
    valid: bool
    command: Optional[str] = None
    domain: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    error: Optional[str] = None


class DiscoveryReport(BaseModel):
    domains: list[Domain] = Field(default_factory=list)
    taxonomy: DiscoveryResult = Field(default_factory=DiscoveryResult)
    outcomes: list[FallbackOutcome] = Field(default_factory=list)
    persisted_to: Optional[str] = None


# ── Structural checks ────────────────────────────────────────────────────


def validate_domain_structure(data: Mapping[str, Any]) -> None:
    """Reject a raw domain definition that is missing required fields."""
    if not isinstance(data, Mapping):
        raise DomainStructureError(f"Domain definition must be a mapping, got {type(data).__name__}")
    if not data.get("name"):
        raise DomainStructureError("Domain must have a name")

    resources = data.get("resources") or []
    if not isinstance(resources, list):
        raise DomainStructureError(f"Domain '{data['name']}' resources must be a list")
    seen: set[str] = set()
    for index, resource in enumerate(resources):
        if not isinstance(resource, Mapping) or not resource.get("name"):
            raise DomainStructureError(f"Resource at index {index} must have a name")
        if not isinstance(resource.get("actions"), list):
            raise DomainStructureError(f"Resource '{resource['name']}' must have actions array")
        if resource["name"] in seen:
            raise DomainStructureError(
                f"Resource '{resource['name']}' is declared twice in domain '{data['name']}'"
            )
        seen.add(resource["name"])

    actions = data.get("actions") or []
    if not isinstance(actions, list):
        raise DomainStructureError(f"Domain '{data['name']}' actions must be a list")
    for index, action in enumerate(actions):
        if not isinstance(action, Mapping) or not action.get("name"):
            raise DomainStructureError(f"Action at index {index} must have a name")


def coerce_domain(value: Domain | Mapping[str, Any], validate: bool = True) -> Domain:
    """Turn a raw definition (or a Domain) into an independent Domain copy."""
    if isinstance(value, Domain):
        data = value.model_dump(by_alias=True)
    else:
        data = dict(value)
    if validate:
        validate_domain_structure(data)
    try:
        return Domain.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise DomainStructureError(
            f"Invalid domain '{data.get('name', '?')}': {location}: {first['msg']}"
        ) from exc


def domain_warnings(domain: Domain) -> list[str]:
    """Resource actions that the domain itself does not declare."""
    declared = set(domain.action_names())
    if not declared:
        return []
    warnings = []
    for resource in domain.resources:
        extra = [a for a in resource.actions if a not in declared]
        if extra:
            warnings.append(
                f"Resource '{resource.name}' in domain '{domain.name}' uses undeclared actions: "
                + ", ".join(extra)
            )
    return warnings
