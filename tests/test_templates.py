"""Tests for domain templates and template suggestion."""

import pytest

from citty_domains.errors import TemplateNotFoundError
from citty_domains.models import DiscoveryResult
from citty_domains.templates import (
    DEFAULT_TEMPLATE,
    TEMPLATE_RULES,
    DomainTemplates,
    classify_commands,
    count_command_patterns,
    resolve_placeholders,
)

NOUN_VERB_DATA = {
    "domain": "infra",
    "displayName": "Infrastructure",
    "description": "Infrastructure management",
    "resource": "server",
    "resourceDisplayName": "Server",
    "resourceDescription": "Compute servers",
}


@pytest.fixture
def templates():
    return DomainTemplates()


class TestSuggestTemplate:
    def test_hierarchical_when_three_token_commands_present(self, templates):
        assert templates.suggest_template({"commands": ["infra server create", "dev project create"]}) == "hierarchical"

    def test_hierarchical_wins_over_keyword_majority(self, templates):
        commands = ["service deploy", "service scale", "infra server create"]
        assert templates.suggest_template({"commands": commands}) == "hierarchical"

    def test_flat(self, templates):
        assert templates.suggest_template({"commands": ["clean", "build"]}) == "flat"

    def test_microservice_checked_before_flat(self, templates):
        commands = ["service deploy", "service scale", "config apply"]
        assert templates.suggest_template({"commands": commands}) == "microservice"

    def test_database(self, templates):
        assert templates.suggest_template({"commands": ["database backup", "backup restore"]}) == "database"

    def test_api(self, templates):
        assert templates.suggest_template({"commands": ["api call", "auth login"]}) == "api"

    def test_default_when_nothing_qualifies(self, templates):
        assert templates.suggest_template({"commands": []}) == DEFAULT_TEMPLATE

    def test_accepts_discovery_result(self, templates):
        result = DiscoveryResult(commands={"infra server create": {"domain": "infra"}})
        assert templates.suggest_template(result) == "hierarchical"

    def test_rule_order(self):
        assert [name for name, _ in TEMPLATE_RULES] == ["hierarchical", "microservice", "database", "api", "flat"]

    def test_counts(self):
        counts = count_command_patterns(["service deploy", "infra server create"])
        assert counts.total == 2
        assert counts.hierarchical == 1
        assert counts.microservice == 1
        assert counts.flat == 1
        assert classify_commands(["service deploy"]) == "microservice"


class TestCreateFromTemplate:
    def test_noun_verb(self, templates):
        domain = templates.create_domain_from_template("noun-verb", NOUN_VERB_DATA)
        assert domain.name == "infra"
        assert domain.display_name == "Infrastructure"
        assert domain.resources[0].name == "server"
        assert domain.resources[0].actions == ["create", "list", "show", "update", "delete"]
        assert domain.get_action("create").description == "Create new server"

    def test_default_table(self, templates):
        domain = templates.create_domain_from_template("noun-verb", NOUN_VERB_DATA)
        assert domain.category == "general"
        assert domain.compliance == ["SOC2"]
        assert domain.governance == ["RBAC"]

    def test_list_values_are_spliced(self, templates):
        data = {**NOUN_VERB_DATA, "compliance": ["SOC2", "ISO27001"]}
        domain = templates.create_domain_from_template("noun-verb", data)
        assert domain.compliance == ["SOC2", "ISO27001"]

    def test_fixed_category_templates(self, templates):
        domain = templates.create_domain_from_template("database", NOUN_VERB_DATA)
        assert domain.category == "database"
        assert domain.resource_names() == ["database", "user", "backup"]

    def test_unknown_template(self, templates):
        with pytest.raises(TemplateNotFoundError):
            templates.create_domain_from_template("nope", NOUN_VERB_DATA)

    def test_resolution_is_idempotent(self, templates):
        template = templates.get_template("hierarchical")
        data = {**NOUN_VERB_DATA, "subdomain": "cluster", "subdomainDisplayName": "Cluster",
                "subdomainDescription": "Clusters"}
        assert templates.apply_template(template, data) == templates.apply_template(template, data)


def test_unresolved_placeholders_stay_literal():
    assert resolve_placeholders({"a": "{{missing}}", "b": ["x {{missing}} y"]}, {}) == {
        "a": "{{missing}}",
        "b": ["x {{missing}} y"],
    }


def test_embedded_placeholders_are_stringified():
    assert resolve_placeholders("{{count}} servers", {"count": 3}) == "3 servers"


def test_template_registry(templates):
    assert set(templates.list_templates()) == {"noun-verb", "hierarchical", "flat", "microservice", "database", "api"}
    metadata = templates.get_template_metadata("api")
    assert metadata["resources"] == 2
    assert templates.get_template_metadata("missing") is None

    templates.register_template("custom", {"name": "{{domain}}", "resources": [], "actions": []})
    assert "custom" in templates.list_templates()
    assert templates.create_domain_from_template("custom", {"domain": "ops"}).name == "ops"


def test_validate_template(templates):
    assert templates.validate_template(templates.get_template("microservice")).valid
    result = templates.validate_template({"resources": [{"name": "x"}]})
    assert not result.valid
    assert "Template must have a name" in result.errors
    assert "Resource 'x' must have actions array" in result.errors
