"""Validation of domains against the live CLI surface, with fallback recovery."""

from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from .cli_analyzer import parse_help_output
from .errors import DomainValidationError, ProcessError, UnknownStrategyError
from .models import (
    CRUD_ACTIONS,
    Action,
    Coverage,
    Domain,
    FallbackOutcome,
    FallbackStrategy,
    Resource,
    ValidationResult,
    display_name_for,
)
from .process import ProcessRunner, get_help_output, run_process

logger = logging.getLogger(__name__)

FallbackHandler = Callable[
    [Domain, Optional[str], ValidationResult],
    Union[FallbackOutcome, Awaitable[FallbackOutcome]],
]


def generic_domain(domain: Domain) -> Domain:
    """Replace a domain's resources and actions with a CRUD placeholder."""
    return domain.model_copy(
        update={
            "category": "generic",
            "description": f"Generic domain: {domain.name} (auto-generated)",
            "resources": [
                Resource(
                    name="default",
                    display_name="Default",
                    description="Default resource",
                    actions=list(CRUD_ACTIONS),
                )
            ],
            "actions": [
                Action(name=name, description=f"{display_name_for(name)} resource", category="CRUD")
                for name in CRUD_ACTIONS
            ],
        },
        deep=True,
    )


def discover_domain_from_commands(domain_name: str, commands: list[str]) -> Domain:
    """Rebuild a domain from the ``domain resource action`` commands a CLI reports."""
    resources: dict[str, dict[str, None]] = {}
    for command in commands:
        parts = command.split()
        if len(parts) >= 3 and parts[0] == domain_name:
            resources.setdefault(parts[1], {}).setdefault(parts[2], None)

    action_names: dict[str, None] = {}
    for actions in resources.values():
        action_names.update(actions)

    return Domain(
        name=domain_name,
        description=f"Auto-discovered domain: {domain_name}",
        category="discovered",
        resources=[
            Resource(name=name, description=f"Discovered resource: {name}", actions=list(actions))
            for name, actions in resources.items()
        ],
        actions=[
            Action(name=name, description=f"Discovered action: {name}", category="Discovered")
            for name in action_names
        ],
    )


class DomainValidator:
    """Checks candidate domains against ``<cli> --help`` and applies fallbacks.

    Results are cached per ``(domain name, cli path)``. Failed CLI runs are
    reported as invalid results and never cached.
    """

    def __init__(
        self,
        strict_validation: bool = False,
        fallback_strategy: str | FallbackStrategy = FallbackStrategy.GENERIC,
        timeout: float = 10.0,
        runner: ProcessRunner = run_process,
        cwd: Optional[Path] = None,
    ) -> None:
        self.strict_validation = strict_validation
        self.fallback_strategy = getattr(fallback_strategy, "value", fallback_strategy)
        self.timeout = timeout
        self.runner = runner
        self.cwd = cwd
        self._cache: dict[tuple[str, str], ValidationResult] = {}
        self._strategies: dict[str, FallbackHandler] = {}

        self.register_fallback_strategy(FallbackStrategy.GENERIC.value, self._generic_fallback)
        self.register_fallback_strategy(FallbackStrategy.ERROR.value, self._error_fallback)
        self.register_fallback_strategy(FallbackStrategy.AUTO_DISCOVER.value, self._auto_discover_fallback)
        self.register_fallback_strategy(FallbackStrategy.IGNORE.value, self._ignore_fallback)

    # -- Strategy registry ------------------------------------------------

    def register_fallback_strategy(self, name: str, handler: FallbackHandler) -> None:
        self._strategies[name] = handler

    def get_fallback_strategies(self) -> list[str]:
        return list(self._strategies)

    # -- CLI surface ------------------------------------------------------

    async def observe_commands(self, cli_path: str | Path) -> list[str]:
        """Three-token commands reported by ``cli_path --help``."""
        output = await get_help_output(cli_path, self.runner, timeout=self.timeout, cwd=self.cwd)
        return list(parse_help_output(output).commands)

    # -- Validation -------------------------------------------------------

    async def validate_domain(self, domain: Domain, cli_path: str | Path) -> ValidationResult:
        cache_key = (domain.name, str(cli_path))
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Validation cache hit for '%s' against %s", domain.name, cli_path)
            return cached

        try:
            observed = await self.observe_commands(cli_path)
        except ProcessError as exc:
            logger.warning("Could not validate domain '%s': %s", domain.name, exc)
            return ValidationResult(valid=False, errors=[f"CLI analysis failed: {exc}"])

        validation = self.validate_domain_structure(domain, observed)
        self._cache[cache_key] = validation
        return validation

    def validate_domain_structure(self, domain: Domain, observed_commands: list[str]) -> ValidationResult:
        """Diff a domain's implied commands against an observed command list."""
        observed = set(observed_commands)
        implied = domain.implied_commands()
        errors: list[str] = []
        warnings: list[str] = []
        suggestions: list[str] = []

        for command in implied:
            if command in observed:
                continue
            message = f"Command '{command}' not found in CLI"
            if self.strict_validation:
                errors.append(message)
            else:
                warnings.append(message)
                suggestions.append(
                    f"Consider adding '{command}' to your CLI or removing it from domain definition"
                )

        implied_set = set(implied)
        unused = [command for command in observed_commands if command not in implied_set]
        if unused:
            suggestions.append(
                f"Found {len(unused)} CLI commands not covered by domain: {', '.join(unused[:5])}"
            )

        total = len(observed_commands)
        covered = total - len(unused)
        return ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
            coverage=Coverage(
                total=total,
                covered=covered,
                percentage=(covered / total * 100) if total else 100.0,
            ),
        )

    async def validate_domains(self, domains: list[Domain], cli_path: str | Path) -> list[FallbackOutcome]:
        """Validate domains one at a time, applying the fallback to failures.

        Under the ``error`` strategy the first invalid domain raises
        ``DomainValidationError`` and the remaining domains are not checked.
        """
        outcomes = []
        for domain in domains:
            validation = await self.validate_domain(domain, cli_path)
            if validation.valid:
                outcomes.append(FallbackOutcome(domain=domain, validation=validation))
                continue
            outcome = await self.handle_validation_failure(domain, cli_path, validation)
            outcome.validation = validation
            outcomes.append(outcome)
        return outcomes

    # -- Fallbacks --------------------------------------------------------

    async def handle_validation_failure(
        self,
        domain: Domain,
        cli_path: Optional[str | Path],
        validation: ValidationResult,
        strategy: Optional[str] = None,
    ) -> FallbackOutcome:
        name = strategy or self.fallback_strategy
        handler = self._strategies.get(name)
        if handler is None:
            raise UnknownStrategyError(f"Unknown fallback strategy: {name}")

        result = handler(domain, str(cli_path) if cli_path else None, validation)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _generic_fallback(self, domain: Domain, cli_path: Optional[str], validation: ValidationResult) -> FallbackOutcome:
        logger.warning("Domain '%s' validation failed, using generic fallback", domain.name)
        return FallbackOutcome(
            domain=generic_domain(domain),
            warnings=list(validation.warnings),
            fallback=FallbackStrategy.GENERIC.value,
        )

    def _error_fallback(self, domain: Domain, cli_path: Optional[str], validation: ValidationResult) -> FallbackOutcome:
        raise DomainValidationError(domain.name, validation)

    async def _auto_discover_fallback(
        self, domain: Domain, cli_path: Optional[str], validation: ValidationResult
    ) -> FallbackOutcome:
        logger.warning("Domain '%s' validation failed, attempting auto-discovery", domain.name)
        if cli_path:
            try:
                discovered = await self.discover_domain_from_cli(domain.name, cli_path)
            except ProcessError as exc:
                logger.warning("Auto-discovery of '%s' failed: %s", domain.name, exc)
            else:
                if discovered.resources:
                    discovered.sources = list(domain.sources)
                    return FallbackOutcome(
                        domain=discovered,
                        warnings=list(validation.warnings),
                        fallback=FallbackStrategy.AUTO_DISCOVER.value,
                    )
        return self._generic_fallback(domain, cli_path, validation)

    def _ignore_fallback(self, domain: Domain, cli_path: Optional[str], validation: ValidationResult) -> FallbackOutcome:
        logger.warning("Domain '%s' validation failed, ignoring", domain.name)
        return FallbackOutcome(
            domain=domain,
            warnings=list(validation.warnings) + list(validation.errors),
            fallback=FallbackStrategy.IGNORE.value,
        )

    async def discover_domain_from_cli(self, domain_name: str, cli_path: str | Path) -> Domain:
        return discover_domain_from_commands(domain_name, await self.observe_commands(cli_path))

    # -- Cache ------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict[str, Any]:
        return {"size": len(self._cache), "keys": [f"{name}:{path}" for name, path in self._cache]}
