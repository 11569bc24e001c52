"""Exceptions raised by the domain discovery engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ValidationResult


class DomainDiscoveryError(Exception):
    """Base class for every error the engine surfaces to callers."""


class DomainStructureError(DomainDiscoveryError, ValueError):
    """A domain, resource, or action is missing a required field."""


class DomainExistsError(DomainDiscoveryError):
    """A domain name is already registered and overwrite was not requested."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Domain '{name}' already exists. Use overwrite=True to replace.")
        self.name = name


class DomainNotFoundError(DomainDiscoveryError, KeyError):
    """The requested domain is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Domain '{name}' not found")
        self.name = name

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return self.args[0]


class DomainValidationError(DomainDiscoveryError):
    """A domain failed validation under the ``error`` fallback strategy."""

    def __init__(self, domain_name: str, validation: "ValidationResult") -> None:
        detail = ", ".join(validation.errors) or "validation failed"
        super().__init__(f"Domain '{domain_name}' validation failed: {detail}")
        self.domain_name = domain_name
        self.validation = validation


class UnknownStrategyError(DomainDiscoveryError, ValueError):
    """No fallback strategy is registered under the configured name."""


class TemplateNotFoundError(DomainDiscoveryError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Template '{name}' not found")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class PluginError(DomainDiscoveryError):
    """A plugin descriptor is malformed."""


class SourceError(DomainDiscoveryError):
    """A discovery source is unknown, disabled, or missing required input."""


class ProcessError(DomainDiscoveryError):
    """The introspected CLI could not be run or did not finish in time."""
