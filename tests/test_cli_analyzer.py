"""Tests for help-text, script-name, and config analysis."""

import asyncio
import json

import pytest

from citty_domains.cli_analyzer import (
    DEFAULT_DOMAIN,
    CLIAnalyzer,
    analyze_config_document,
    analyze_scripts,
    extract_description,
    is_likely_action,
    parse_command_line,
    parse_help_output,
    parse_script_name,
)
from citty_domains.errors import ProcessError


class TestScriptNames:
    @pytest.mark.parametrize(
        "script, expected",
        [
            ("infra:server:create", ("infra", "server", "create")),
            ("infra:server", ("infra", "server", None)),
            ("infra", ("infra", None, None)),
            ("infra:server:create:extra", ("infra", "server", "create")),
        ],
    )
    def test_segments(self, script, expected):
        assert parse_script_name(script) == expected

    def test_analyze_scripts_records_commands(self):
        result = analyze_scripts({"infra:server:create": "node cli.js infra server create", "build": "tsc"})
        assert result.domains == ["infra", "build"]
        assert result.resources == {"infra": ["server"]}
        assert result.actions == ["create"]
        assert result.commands["infra:server:create"].type == "script"
        assert result.commands["build"].resource is None
        assert result.metadata["scripts_count"] == 2


class TestCommandLines:
    def test_three_tokens(self):
        assert parse_command_line("infra server create <name>") == ("infra", "server", "create")

    @pytest.mark.parametrize("verb", ["create", "list", "delete", "deploy", "backup", "test"])
    def test_two_tokens_with_action_verb_use_default_domain(self, verb):
        domain, resource, action = parse_command_line(f"server {verb}")
        assert domain == DEFAULT_DOMAIN
        assert resource == "server"
        assert action == verb

    def test_two_tokens_without_action_verb(self):
        assert parse_command_line("infra server") == ("infra", "server", None)

    def test_single_token(self):
        assert parse_command_line("infra") == ("infra", None, None)

    def test_no_word(self):
        assert parse_command_line("<name>") is None

    def test_action_verbs_are_case_insensitive(self):
        assert is_likely_action("Create")
        assert not is_likely_action("server")

    def test_extract_description(self):
        assert extract_description("infra server create    Create a new server") == "Create a new server"
        assert extract_description("infra server create - Create a new server") == "Create a new server"
        assert extract_description("infra server create") == ""


class TestHelpOutput:
    def test_scenario_without_header(self):
        result = parse_help_output("infra server create <name>\ninfra server list\ndev project create <name>")
        assert set(result.domains) == {"infra", "dev"}
        assert result.resources == {"infra": ["server"], "dev": ["project"]}
        assert set(result.actions) == {"create", "list"}
        assert set(result.commands) == {"infra server create", "infra server list", "dev project create"}

    def test_lines_before_header_are_ignored(self):
        result = parse_help_output("mycli version 1.0\n\nCOMMANDS:\n  infra server list\n")
        assert result.domains == ["infra"]

    def test_separators_and_blank_lines_skipped(self, help_text):
        text = help_text + "\n---------\n==========\n"
        result = parse_help_output(text)
        assert result.domains == ["infra", "dev"]
        assert result.resources["infra"] == ["server", "network"]

    def test_descriptions(self, help_text):
        result = parse_help_output(help_text)
        assert result.commands["infra server create"].description == "Create a new server"
        assert result.commands["dev project create"].description == "Create a project"

    def test_two_token_lines_do_not_create_commands(self):
        result = parse_help_output("Commands:\n  server create\n")
        assert result.domains == [DEFAULT_DOMAIN]
        assert result.resources == {DEFAULT_DOMAIN: ["server"]}
        assert result.commands == {}


def test_analyze_config_document_keeps_definitions():
    config = {
        "domains": {
            "infra": {"resources": [{"name": "server", "actions": ["create"]}, "network"]},
        },
        "actions": ["create"],
    }
    result = analyze_config_document(config, "citty.json")
    assert result.domains == ["infra"]
    assert result.resources == {"infra": ["server", "network"]}
    assert result.definitions["infra"]["name"] == "infra"
    assert result.metadata["config_path"] == "citty.json"


class TestCLIAnalyzer:
    def test_analyze_runs_help(self, make_runner, help_text, tmp_path):
        runner = make_runner(stdout=help_text)
        analyzer = CLIAnalyzer(runner=runner)
        result = asyncio.run(analyzer.analyze(cli_path=tmp_path / "cli.js"))
        assert runner.calls[0][0] == "node"
        assert runner.calls[0][-1] == "--help"
        assert result.domains == ["infra", "dev"]
        assert result.metadata["total_commands"] == 4
        assert "analyzed_at" in result.metadata

    def test_nonzero_exit_reads_stderr(self, make_runner, help_text):
        runner = make_runner(stdout="", stderr=help_text, exit_code=1)
        result = asyncio.run(CLIAnalyzer(runner=runner).analyze(cli_path="cli"))
        assert "infra" in result.domains

    def test_nonzero_exit_without_help_section_is_empty(self, make_runner):
        traceback = (
            "Traceback (most recent call last):\n"
            '  File "cli.py", line 3, in <module>\n'
            "NameError: name 'main' is not defined\n"
        )
        runner = make_runner(stdout="", stderr=traceback, exit_code=1)
        result = asyncio.run(CLIAnalyzer(runner=runner).analyze(cli_path="cli.py"))
        assert result.domains == []
        assert result.commands == {}

    def test_headerless_output_parsed_on_success(self, make_runner):
        runner = make_runner(stdout="infra server list\n")
        result = asyncio.run(CLIAnalyzer(runner=runner).analyze(cli_path="cli.js"))
        assert result.domains == ["infra"]

    def test_process_failure_degrades_to_empty(self, make_runner):
        runner = make_runner(error=ProcessError("CLI analysis timeout after 10s"))
        result = asyncio.run(CLIAnalyzer(runner=runner).analyze(cli_path="cli.js"))
        assert result.domains == []
        assert result.metadata["total_domains"] == 0

    def test_cli_results_are_cached(self, make_runner, help_text):
        runner = make_runner(stdout=help_text)
        analyzer = CLIAnalyzer(runner=runner)

        async def twice():
            await analyzer.analyze_from_cli("cli.js")
            await analyzer.analyze_from_cli("cli.js")

        asyncio.run(twice())
        assert len(runner.calls) == 1
        assert analyzer.get_cache_stats()["size"] == 1

        analyzer.clear_cache()
        assert analyzer.get_cache_stats()["size"] == 0

    def test_package_json_and_config(self, tmp_path):
        package_json = tmp_path / "package.json"
        package_json.write_text(json.dumps({"scripts": {"dev:project:create": "x"}}))
        config = tmp_path / "citty.json"
        config.write_text(json.dumps({"domains": {"infra": {"resources": ["server"]}}}))

        result = asyncio.run(CLIAnalyzer().analyze(package_json_path=package_json, config_path=config))
        assert set(result.domains) == {"dev", "infra"}
        assert result.resources["dev"] == ["project"]

    def test_unreadable_sources_degrade_to_empty(self, tmp_path):
        broken = tmp_path / "package.json"
        broken.write_text("{not json")
        analyzer = CLIAnalyzer()
        result = asyncio.run(analyzer.analyze(package_json_path=broken, config_path=tmp_path / "missing.json"))
        assert result.domains == []
