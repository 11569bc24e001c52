"""Tests for CLI validation and fallback strategies."""

import asyncio

import pytest

from citty_domains.errors import DomainValidationError, ProcessError, UnknownStrategyError
from citty_domains.models import Domain, FallbackOutcome, ValidationResult
from citty_domains.validator import DomainValidator, discover_domain_from_commands

HELP = "Commands:\n  infra server create\n  infra server list\n  infra network list\n"


def _domain(name="infra", actions=("create", "list"), resource="server"):
    return Domain.model_validate({
        "name": name,
        "resources": [{"name": resource, "actions": list(actions)}],
    })


class TestValidateDomain:
    def test_fully_covered(self, make_runner):
        validator = DomainValidator(runner=make_runner(stdout=HELP))
        result = asyncio.run(validator.validate_domain(_domain(), "cli.js"))
        assert result.valid
        assert result.warnings == []
        assert result.coverage.total == 3
        assert result.coverage.covered == 2
        assert result.coverage.percentage == pytest.approx(200 / 3)
        assert any("not covered by domain: infra network list" in s for s in result.suggestions)

    def test_missing_command_is_warning_when_not_strict(self, make_runner):
        validator = DomainValidator(runner=make_runner(stdout=HELP))
        result = asyncio.run(validator.validate_domain(_domain(actions=["create", "delete"]), "cli.js"))
        assert result.valid
        assert result.warnings == ["Command 'infra server delete' not found in CLI"]
        assert any("Consider adding 'infra server delete'" in s for s in result.suggestions)

    def test_missing_command_is_error_when_strict(self, make_runner):
        validator = DomainValidator(strict_validation=True, runner=make_runner(stdout=HELP))
        result = asyncio.run(validator.validate_domain(_domain(actions=["delete"]), "cli.js"))
        assert not result.valid
        assert result.errors == ["Command 'infra server delete' not found in CLI"]

    def test_zero_commands_means_full_coverage(self, make_runner):
        validator = DomainValidator(runner=make_runner(stdout=""))
        result = asyncio.run(validator.validate_domain(_domain(), "cli.js"))
        assert result.coverage.total == 0
        assert result.coverage.percentage == 100.0

    def test_process_failure_is_invalid(self, make_runner):
        validator = DomainValidator(runner=make_runner(error=ProcessError("boom")))
        result = asyncio.run(validator.validate_domain(_domain(), "cli.js"))
        assert not result.valid
        assert result.errors[0].startswith("CLI analysis failed")
        assert validator.get_cache_stats()["size"] == 0

    def test_crashing_cli_is_invalid(self, make_runner):
        runner = make_runner(stderr="Traceback (most recent call last):\n  boom\n", exit_code=1)
        validator = DomainValidator(runner=runner)
        result = asyncio.run(validator.validate_domain(_domain(), "cli.py"))
        assert not result.valid
        assert result.errors[0].startswith("CLI analysis failed")
        assert result.coverage.total == 0

    def test_results_cached_per_domain_and_path(self, make_runner):
        runner = make_runner(stdout=HELP)
        validator = DomainValidator(runner=runner)

        async def run():
            await validator.validate_domain(_domain(), "cli.js")
            await validator.validate_domain(_domain(), "cli.js")
            await validator.validate_domain(_domain(), "other.js")

        asyncio.run(run())
        assert len(runner.calls) == 2
        assert validator.get_cache_stats()["keys"] == ["infra:cli.js", "infra:other.js"]


class TestFallbacks:
    def _invalid(self):
        return ValidationResult(valid=False, errors=["broken"], warnings=["w"])

    def test_generic_replaces_resources(self):
        validator = DomainValidator()
        outcome = asyncio.run(validator.handle_validation_failure(_domain(), "cli.js", self._invalid()))
        assert outcome.fallback == "generic"
        assert outcome.domain.category == "generic"
        assert outcome.domain.resource_names() == ["default"]
        assert outcome.domain.resources[0].actions == ["create", "list", "show", "update", "delete"]
        assert outcome.warnings == ["w"]

    def test_ignore_keeps_domain(self):
        validator = DomainValidator(fallback_strategy="ignore")
        domain = _domain()
        outcome = asyncio.run(validator.handle_validation_failure(domain, "cli.js", self._invalid()))
        assert outcome.fallback == "ignore"
        assert outcome.domain == domain

    def test_error_raises(self):
        validator = DomainValidator(fallback_strategy="error")
        with pytest.raises(DomainValidationError, match="broken"):
            asyncio.run(validator.handle_validation_failure(_domain(), "cli.js", self._invalid()))

    def test_auto_discover_rebuilds_from_cli(self, make_runner):
        validator = DomainValidator(fallback_strategy="auto-discover", runner=make_runner(stdout=HELP))
        outcome = asyncio.run(
            validator.handle_validation_failure(_domain(resource="disk"), "cli.js", self._invalid())
        )
        assert outcome.fallback == "auto-discover"
        assert outcome.domain.resource_names() == ["server", "network"]
        assert outcome.domain.get_resource("server").actions == ["create", "list"]
        assert outcome.domain.category == "discovered"

    def test_auto_discover_falls_back_to_generic(self, make_runner):
        validator = DomainValidator(fallback_strategy="auto-discover", runner=make_runner(error=ProcessError("x")))
        outcome = asyncio.run(validator.handle_validation_failure(_domain(), "cli.js", self._invalid()))
        assert outcome.fallback == "generic"

    def test_unknown_strategy(self):
        validator = DomainValidator(fallback_strategy="shrug")
        with pytest.raises(UnknownStrategyError):
            asyncio.run(validator.handle_validation_failure(_domain(), "cli.js", self._invalid()))

    def test_custom_strategy(self):
        validator = DomainValidator(fallback_strategy="custom")
        validator.register_fallback_strategy(
            "custom", lambda domain, cli_path, validation: FallbackOutcome(domain=domain, fallback="custom")
        )
        outcome = asyncio.run(validator.handle_validation_failure(_domain(), None, self._invalid()))
        assert outcome.fallback == "custom"
        assert "custom" in validator.get_fallback_strategies()


class TestValidateDomains:
    def test_error_strategy_aborts_batch_at_first_failure(self):
        validator = DomainValidator(fallback_strategy="error")
        seen = []

        async def fake_validate(domain, cli_path):
            seen.append(domain.name)
            if domain.name == "bad":
                return ValidationResult(valid=False, errors=["broken"])
            return ValidationResult(valid=True)

        validator.validate_domain = fake_validate
        domains = [_domain("first"), _domain("bad"), _domain("last")]
        with pytest.raises(DomainValidationError):
            asyncio.run(validator.validate_domains(domains, "cli.js"))
        assert seen == ["first", "bad"]

    def test_other_strategies_continue(self, make_runner):
        validator = DomainValidator(strict_validation=True, runner=make_runner(stdout=HELP))
        domains = [_domain("infra"), _domain("ghost"), _domain("infra", resource="network", actions=["list"])]
        outcomes = asyncio.run(validator.validate_domains(domains, "cli.js"))
        assert [o.fallback for o in outcomes] == [None, "generic", None]
        assert outcomes[1].validation.valid is False


def test_discover_domain_from_commands():
    domain = discover_domain_from_commands("dev", ["dev project create", "dev project run", "infra server list"])
    assert domain.resource_names() == ["project"]
    assert domain.action_names() == ["create", "run"]
